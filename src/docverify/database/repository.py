#!/usr/bin/env python3
"""
Repositories

Async data access for users, documents and system settings. Each repository
wraps a single AsyncSession; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .schema import User, Document, SystemSetting, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "hiveApiEnabled": False,
    "mockModeEnabled": False,
    "rateLimit": 10,
    "allowSignups": True,
    "requireEmailVerification": False,
    "maxDocumentsPerUser": 50,
}

@dataclass
class Page:
    items: Sequence[Any]
    total: int
    limit: int
    offset: int

async def paginate(session: AsyncSession, stmt, *, limit: int = 50, offset: int = 0) -> Page:
    total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
    items = (await session.execute(stmt.limit(limit).offset(offset))).scalars().all()
    return Page(items=items, total=int(total or 0), limit=limit, offset=offset)

class UserRepository:
    """User profiles keyed by identity provider uid."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, uid: str) -> Optional[User]:
        return await self.session.get(User, uid)

    async def get_many(self, uids: Iterable[str]) -> Dict[str, User]:
        uids = list(set(uids))
        if not uids:
            return {}
        result = await self.session.execute(select(User).where(User.uid.in_(uids)))
        return {user.uid: user for user in result.scalars().all()}

    async def upsert_login(
        self,
        uid: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
        is_admin: bool = False,
    ) -> "tuple[User, bool]":
        """Record a login for an existing user or create a new one.

        Returns the user and whether it was newly created. A bare row left by
        an admin grant counts as new and keeps its admin flag.
        """
        user = await self.get(uid)
        now = utcnow()
        if user is not None and not user.is_registered:
            user.email = email
            user.display_name = display_name
            user.photo_url = photo_url
            user.is_admin = user.is_admin or is_admin
            user.created_at = now
            user.last_login_at = now
            await self.session.flush()
            logger.info(f"Completed admin-granted profile {uid}")
            return user, True

        if user is not None:
            user.last_login_at = now
            if display_name:
                user.display_name = display_name
            if photo_url:
                user.photo_url = photo_url
            await self.session.flush()
            return user, False

        user = User(
            uid=uid,
            email=email,
            display_name=display_name,
            photo_url=photo_url,
            is_admin=is_admin,
            created_at=now,
            last_login_at=now,
        )
        self.session.add(user)
        await self.session.flush()
        logger.info(f"Created user profile {uid}")
        return user, True

    async def set_admin(self, uid: str, email: Optional[str], granted_by: str) -> User:
        """Grant admin rights, creating a bare profile if none exists yet."""
        user = await self.get(uid)
        if user is None:
            user = User(uid=uid, email=email or f"{uid}@unknown", created_at=utcnow(), last_login_at=None)
            self.session.add(user)
        user.is_admin = True
        user.updated_at = utcnow()
        user.updated_by = granted_by
        await self.session.flush()
        return user

    async def count(self) -> int:
        """Registered users; bare admin grants are not counted."""
        stmt = select(func.count()).select_from(User).where(User.last_login_at.is_not(None))
        return int(await self.session.scalar(stmt) or 0)

    async def count_created_since(self, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(User)
            .where(User.last_login_at.is_not(None), User.created_at >= since)
        )
        return int(await self.session.scalar(stmt) or 0)

class DocumentRepository:
    """Verified documents."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, **fields) -> Document:
        document = Document(**fields)
        self.session.add(document)
        await self.session.flush()
        return document

    async def get(self, document_id: str) -> Optional[Document]:
        return await self.session.get(Document, document_id)

    async def list_page(self, user_id: Optional[str] = None, limit: int = 50, offset: int = 0) -> Page:
        stmt = select(Document).order_by(Document.created_at.desc(), Document.id)
        if user_id:
            stmt = stmt.where(Document.user_id == user_id)
        return await paginate(self.session, stmt, limit=limit, offset=offset)

    async def list_for_user(self, user_id: str) -> List[Document]:
        stmt = (
            select(Document)
            .where(Document.user_id == user_id)
            .order_by(Document.created_at.desc(), Document.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def count(self, user_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Document)
        if user_id:
            stmt = stmt.where(Document.user_id == user_id)
        return int(await self.session.scalar(stmt) or 0)

    async def count_by_status(self, user_id: Optional[str] = None) -> Dict[str, int]:
        stmt = select(Document.moderation_status, func.count()).group_by(Document.moderation_status)
        if user_id:
            stmt = stmt.where(Document.user_id == user_id)
        rows = (await self.session.execute(stmt)).all()
        return {status: int(count) for status, count in rows}

    async def count_created_since(self, since: datetime) -> int:
        stmt = select(func.count()).select_from(Document).where(Document.created_at >= since)
        return int(await self.session.scalar(stmt) or 0)

class SettingsRepository:
    """Admin-editable settings stored one row per key."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> Dict[str, Any]:
        settings = dict(DEFAULT_SETTINGS)
        rows = (await self.session.execute(select(SystemSetting))).scalars().all()
        for row in rows:
            settings[row.key] = row.value
        return settings

    async def update(self, values: Dict[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
        for key, value in values.items():
            row = await self.session.get(SystemSetting, key)
            if row is None:
                row = SystemSetting(key=key, value=value, updated_by=updated_by)
                self.session.add(row)
            else:
                row.value = value
                row.updated_by = updated_by
                row.updated_at = utcnow()
        await self.session.flush()
        logger.info(f"Settings updated by {updated_by}: {sorted(values)}")
        return await self.get_all()
