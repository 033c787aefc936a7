#!/usr/bin/env python3
"""
Authentication Routes

Registration and profile endpoints. Sign-in itself happens against the
identity provider on the client; these routes mirror the account locally.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...database.repository import SettingsRepository, UserRepository
from ..dependencies import ServiceContainer, get_current_user, get_services, get_session
from ..models import RegisterRequest, RegisterResponse, UserProfile

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

@router.post("/register", response_model=RegisterResponse)
async def register(
    body: RegisterRequest,
    claims: Dict[str, Any] = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Create the caller's profile, or record a login if it already exists."""
    if not body.uid or not body.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    if body.uid != claims["uid"]:
        logger.warning(f"Register uid mismatch: token {claims['uid']}, body {body.uid}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    users = UserRepository(session)
    existing = await users.get(body.uid)
    if existing is None or not existing.is_registered:
        settings = await SettingsRepository(session).get_all()
        if not settings.get("allowSignups", True):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Signups are currently disabled")

    user, created = await users.upsert_login(
        uid=body.uid,
        email=body.email,
        display_name=body.display_name,
        photo_url=body.photo_url,
        is_admin=body.uid in services.config.security.bootstrap_admin_uids,
    )
    await session.commit()

    message = "User registered successfully" if created else "User login recorded"
    logger.info(f"{message}: {body.uid}")
    return {"success": True, "message": message, "user": user.to_profile()}

@router.get("/me", response_model=UserProfile)
async def me(
    claims: Dict[str, Any] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Current user's profile."""
    user = await UserRepository(session).get(claims["uid"])
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user.to_profile()
