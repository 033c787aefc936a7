#!/usr/bin/env python3
"""
Database Package

Async SQLAlchemy engine and session management for the document store.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.pool import StaticPool

from ..config import DatabaseConfig
from .schema import Base, User, Document, SystemSetting, ModerationStatus, HistoryStatus

logger = logging.getLogger(__name__)

class Database:
    """Owns the async engine and hands out sessions."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine: AsyncEngine = self._create_engine(config)
        self.session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )

    @staticmethod
    def _create_engine(config: DatabaseConfig) -> AsyncEngine:
        kwargs = {"echo": config.echo, "pool_pre_ping": True}
        if config.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in config.url:
                # A single shared connection keeps the in-memory schema alive
                kwargs["poolclass"] = StaticPool
        else:
            kwargs.update(
                pool_size=config.pool_size,
                max_overflow=config.max_overflow,
                pool_recycle=config.pool_recycle,
            )
        return create_async_engine(config.url, **kwargs)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session scope: commit on success, rollback on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                logger.error(f"Database error: {e}")
                await session.rollback()
                raise

    async def init_database(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema initialized")

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")

__all__ = [
    "Base",
    "Database",
    "Document",
    "HistoryStatus",
    "ModerationStatus",
    "SystemSetting",
    "User",
]
