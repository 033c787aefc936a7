#!/usr/bin/env python3
"""
Identity Provider Module

Verifies client ID tokens and looks up accounts through the Firebase Admin SDK.
The SDK is blocking, so every call is pushed onto the threadpool.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin import exceptions as firebase_exceptions
from starlette.concurrency import run_in_threadpool

from .config import FirebaseConfig

logger = logging.getLogger(__name__)

APP_NAME = "docverify"

class IdentityError(Exception):
    """Base class for identity provider failures."""
    pass

class InvalidTokenError(IdentityError):
    """Token is missing, malformed, expired or revoked."""
    pass

class UserNotFoundError(IdentityError):
    """No account exists for the uid."""
    pass

class ConfigurationError(IdentityError):
    """Identity provider credentials are missing or unusable."""
    pass

@dataclass
class IdentityUser:
    """Account as known to the identity provider."""
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    email_verified: bool = False
    disabled: bool = False
    created_at: Optional[datetime] = None
    last_sign_in: Optional[datetime] = None

def _from_millis(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

def _to_identity_user(record: "auth.UserRecord") -> IdentityUser:
    metadata = getattr(record, "user_metadata", None)
    return IdentityUser(
        uid=record.uid,
        email=record.email,
        display_name=record.display_name,
        photo_url=record.photo_url,
        email_verified=bool(record.email_verified),
        disabled=bool(record.disabled),
        created_at=_from_millis(getattr(metadata, "creation_timestamp", None)),
        last_sign_in=_from_millis(getattr(metadata, "last_sign_in_timestamp", None)),
    )

class FirebaseIdentityProvider:
    """Firebase Admin backed identity provider."""

    def __init__(self, config: FirebaseConfig):
        self.config = config
        self._app: Optional[firebase_admin.App] = None

    def _build_credentials(self) -> credentials.Base:
        if self.config.credentials_path:
            return credentials.Certificate(self.config.credentials_path)

        if self.config.project_id and self.config.client_email and self.config.private_key:
            return credentials.Certificate({
                "type": "service_account",
                "project_id": self.config.project_id,
                "client_email": self.config.client_email,
                "private_key": self.config.normalized_private_key,
                "token_uri": "https://oauth2.googleapis.com/token",
            })

        raise ConfigurationError("Firebase credentials are not configured")

    @property
    def app(self) -> firebase_admin.App:
        """The SDK app, initialised once per process."""
        if self._app is None:
            try:
                self._app = firebase_admin.get_app(APP_NAME)
            except ValueError:
                options = {}
                if self.config.database_url:
                    options["databaseURL"] = self.config.database_url
                self._app = firebase_admin.initialize_app(
                    self._build_credentials(), options, name=APP_NAME
                )
                logger.info("Firebase Admin initialized")
        return self._app

    async def verify_id_token(self, token: str) -> Dict[str, Any]:
        """Verify a client ID token and return its decoded claims."""
        try:
            return await run_in_threadpool(auth.verify_id_token, token, self.app, True)
        except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
                auth.RevokedIdTokenError, auth.UserDisabledError, ValueError) as e:
            logger.warning(f"Token verification failed: {e}")
            raise InvalidTokenError(str(e)) from e

    async def get_user(self, uid: str) -> IdentityUser:
        try:
            record = await run_in_threadpool(auth.get_user, uid, self.app)
        except auth.UserNotFoundError as e:
            raise UserNotFoundError(uid) from e
        except ValueError as e:
            raise UserNotFoundError(uid) from e
        return _to_identity_user(record)

    async def list_users(self, max_results: int = 100) -> List[IdentityUser]:
        try:
            page = await run_in_threadpool(auth.list_users, None, max_results, self.app)
        except firebase_exceptions.FirebaseError as e:
            logger.error(f"Failed to list users: {e}")
            raise IdentityError(str(e)) from e
        return [_to_identity_user(record) for record in page.users]
