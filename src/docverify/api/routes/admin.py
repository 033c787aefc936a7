#!/usr/bin/env python3
"""
Admin Routes

FastAPI routes for user management, document review, statistics and
system settings. Requires an authenticated admin.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import ModerationStatus, User
from ...database.repository import DocumentRepository, SettingsRepository, UserRepository
from ...identity import IdentityError, UserNotFoundError
from ..dependencies import ServiceContainer, get_services, get_session, require_admin
from ..models import AdminDocumentsResponse, AdminStats, MakeAdminRequest, SettingsResponse, SettingsUpdate

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

@router.get("/users")
async def list_users(
    admin: User = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Identity provider accounts merged with stored profiles."""
    try:
        accounts = await services.identity.list_users(max_results=100)
    except IdentityError as e:
        logger.error(f"Error fetching users: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch users")

    profiles = await UserRepository(session).get_many(account.uid for account in accounts)

    users = []
    for account in accounts:
        profile = profiles.get(account.uid)
        users.append({
            "uid": account.uid,
            "email": account.email or (profile.email if profile else None),
            "displayName": account.display_name or (profile.display_name if profile else None),
            "photoURL": account.photo_url or (profile.photo_url if profile else None),
            "emailVerified": account.email_verified,
            "disabled": account.disabled,
            "createdAt": _isoformat(account.created_at),
            "lastSignIn": _isoformat(account.last_sign_in),
            "isAdmin": bool(profile and profile.is_admin),
        })

    return {"users": users}

@router.post("/make-admin")
async def make_admin(
    body: MakeAdminRequest,
    admin: User = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Grant admin privileges to an existing account."""
    if not body.target_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Target user ID is required")

    try:
        account = await services.identity.get_user(body.target_user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    await UserRepository(session).set_admin(account.uid, account.email, granted_by=admin.uid)
    await session.commit()

    logger.info(f"User {account.uid} granted admin privileges by {admin.uid}")
    return {"success": True, "message": "User has been granted admin privileges"}

@router.get("/documents", response_model=AdminDocumentsResponse)
async def list_documents(
    user_id: Optional[str] = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=100),
    page: int = Query(1, ge=1),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """All documents, newest first, with their owner's profile."""
    result = await DocumentRepository(session).list_page(
        user_id=user_id, limit=limit, offset=(page - 1) * limit
    )
    owners = await UserRepository(session).get_many(doc.user_id for doc in result.items)

    documents = []
    for doc in result.items:
        data = doc.to_dict()
        owner = owners.get(doc.user_id)
        if owner is not None:
            data["user"] = {
                "email": owner.email,
                "displayName": owner.display_name,
                "photoURL": owner.photo_url,
            }
        else:
            data["user"] = {"email": "Unknown"}
        documents.append(data)

    return {
        "documents": documents,
        "pagination": {
            "total": result.total,
            "pages": math.ceil(result.total / limit),
            "currentPage": page,
            "limit": limit,
        },
    }

@router.get("/stats", response_model=AdminStats)
async def admin_stats(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, int]:
    """Site-wide totals for the admin dashboard."""
    users = UserRepository(session)
    documents = DocumentRepository(session)

    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    counts = await documents.count_by_status()

    return {
        "totalUsers": await users.count(),
        "totalDocuments": sum(counts.values()),
        "verifiedDocuments": counts.get(ModerationStatus.SAFE.value, 0),
        "flaggedDocuments": counts.get(ModerationStatus.FLAGGED.value, 0),
        "newUsersToday": await users.count_created_since(today),
        "newDocumentsToday": await documents.count_created_since(today),
    }

@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> SettingsResponse:
    return SettingsResponse.from_store(await SettingsRepository(session).get_all())

@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    body: SettingsUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> SettingsResponse:
    """Update any subset of the settings."""
    values = body.to_store()
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No settings provided")

    stored = await SettingsRepository(session).update(values, updated_by=admin.uid)
    await session.commit()
    return SettingsResponse.from_store(stored)
