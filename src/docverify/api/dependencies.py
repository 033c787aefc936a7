#!/usr/bin/env python3
"""
API Dependencies

Service container and dependency injection functions for FastAPI routes.
Provides database sessions, the shared services and bearer authentication.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import redis.asyncio as redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Config
from ..database import Database, User
from ..database.repository import SettingsRepository, UserRepository
from ..document_classifier import DocumentClassifier
from ..gemini_service import GeminiVerifier
from ..identity import FirebaseIdentityProvider, InvalidTokenError
from ..ocr_service import OCRService
from ..processing import VerificationPipeline
from .rate_limiting import FixedWindowCounter

# Configure logging
logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)

@dataclass
class ServiceContainer:
    """Long-lived services shared by all requests."""
    config: Config
    database: Database
    redis: Any
    identity: Any
    ocr: OCRService
    classifier: Optional[DocumentClassifier]
    counter: FixedWindowCounter
    verifier: GeminiVerifier
    pipeline: VerificationPipeline
    owns_redis: bool = field(default=True, repr=False)

    @classmethod
    def build(
        cls,
        config: Config,
        database: Optional[Database] = None,
        redis_client: Any = None,
        identity: Any = None,
        ocr: Optional[OCRService] = None,
        classifier: Any = "default",
        model: Any = None,
    ) -> "ServiceContainer":
        """Create the services, using any provided instances as-is."""
        database = database or Database(config.database)

        owns_redis = redis_client is None
        if redis_client is None:
            redis_client = redis.from_url(
                config.redis.url,
                decode_responses=True,
                socket_connect_timeout=config.redis.socket_timeout,
                socket_timeout=config.redis.socket_timeout,
            )

        identity = identity or FirebaseIdentityProvider(config.firebase)
        ocr = ocr or OCRService(config.ocr)
        if classifier == "default":
            classifier = DocumentClassifier(config.classifier) if config.classifier.enabled else None

        counter = FixedWindowCounter(redis_client, prefix="ai_calls")
        verifier = GeminiVerifier(config.gemini, ocr, counter, model=model)
        pipeline = VerificationPipeline(ocr, classifier, verifier, config.gemini)

        return cls(
            config=config,
            database=database,
            redis=redis_client,
            identity=identity,
            ocr=ocr,
            classifier=classifier,
            counter=counter,
            verifier=verifier,
            pipeline=pipeline,
            owns_redis=owns_redis,
        )

    async def close(self) -> None:
        await self.database.dispose()
        if self.owns_redis:
            await self.redis.aclose()
            logger.info("Redis connection closed")

def get_services(request: Request) -> ServiceContainer:
    """Get the application's service container."""
    return request.app.state.services

# Database dependency
async def get_session(services: ServiceContainer = Depends(get_services)) -> AsyncIterator[AsyncSession]:
    """Get database session."""
    async with services.database.session() as session:
        yield session

async def get_settings(session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    """Current admin-managed settings merged over defaults."""
    return await SettingsRepository(session).get_all()

# Authentication dependencies

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Verify the bearer ID token and return its claims."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = await services.identity.verify_id_token(credentials.credentials)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not claims.get("uid"):
        claims = {**claims, "uid": claims.get("sub") or claims.get("user_id")}
    return claims

async def require_admin(
    claims: Dict[str, Any] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Require an authenticated caller with the admin flag set."""
    user = await UserRepository(session).get(claims["uid"])
    if user is None or not user.is_admin:
        logger.warning(f"Admin access denied for {claims['uid']}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user
