#!/usr/bin/env python3
"""
Unit Tests for Repositories

Tests user, document and settings persistence against in-memory SQLite.
"""

import asyncio
from datetime import timedelta

from docverify.config import DatabaseConfig
from docverify.database import Database
from docverify.database.repository import (
    DEFAULT_SETTINGS,
    DocumentRepository,
    SettingsRepository,
    UserRepository,
)
from docverify.database.schema import utcnow

def run_with_database(scenario):
    """Run scenario(session) against a fresh in-memory database."""
    async def run():
        database = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
        await database.init_database()
        try:
            async with database.session() as session:
                return await scenario(session)
        finally:
            await database.dispose()

    return asyncio.run(run())

def document_fields(user_id, name, status="safe", ai=False):
    return {
        "user_id": user_id,
        "name": name,
        "mime_type": "image/png",
        "size": 2048,
        "moderation_status": status,
        "is_likely_genuine": status == "safe",
        "is_likely_ai_generated": ai,
        "confidence_score": 0.9,
        "detected_anomalies": [],
        "analysis_explanation": "ok",
    }

class TestUserRepository:
    """Test cases for UserRepository."""

    def test_upsert_login(self):
        async def scenario(session):
            users = UserRepository(session)
            created_user, created = await users.upsert_login("u1", "u1@example.com", display_name="One")
            first_login = created_user.last_login_at
            again, created_again = await users.upsert_login("u1", "u1@example.com", photo_url="https://p")
            return created, created_again, again, first_login, await users.count()

        created, created_again, user, first_login, count = run_with_database(scenario)

        assert created is True
        assert created_again is False
        assert user.display_name == "One"
        assert user.photo_url == "https://p"
        assert user.last_login_at >= first_login
        assert count == 1

    def test_set_admin_creates_bare_profile(self):
        async def scenario(session):
            users = UserRepository(session)
            user = await users.set_admin("u2", None, granted_by="root")
            return user, await users.get_many(["u2", "missing"])

        user, found = run_with_database(scenario)

        assert user.is_admin is True
        assert user.updated_by == "root"
        assert user.email == "u2@unknown"
        assert list(found) == ["u2"]
        assert user.is_registered is False

    def test_bare_admin_row_is_not_counted(self):
        async def scenario(session):
            users = UserRepository(session)
            await users.upsert_login("u1", "u1@example.com")
            await users.set_admin("u2", "u2@example.com", granted_by="u1")
            return await users.count(), await users.count_created_since(utcnow() - timedelta(hours=1))

        assert run_with_database(scenario) == (1, 1)

    def test_first_login_completes_bare_admin_row(self):
        async def scenario(session):
            users = UserRepository(session)
            await users.set_admin("u2", None, granted_by="root")
            user, created = await users.upsert_login("u2", "u2@example.com", display_name="Two")
            return user, created, await users.count()

        user, created, count = run_with_database(scenario)

        assert created is True
        assert user.is_admin is True
        assert user.is_registered is True
        assert user.email == "u2@example.com"
        assert user.display_name == "Two"
        assert count == 1

    def test_count_created_since(self):
        async def scenario(session):
            users = UserRepository(session)
            await users.upsert_login("u1", "u1@example.com")
            return (
                await users.count_created_since(utcnow() - timedelta(hours=1)),
                await users.count_created_since(utcnow() + timedelta(hours=1)),
            )

        assert run_with_database(scenario) == (1, 0)

class TestDocumentRepository:
    """Test cases for DocumentRepository."""

    def test_list_page_and_counts(self):
        async def scenario(session):
            documents = DocumentRepository(session)
            for i in range(5):
                await documents.add(**document_fields("u1", f"doc{i}.png"))
            await documents.add(**document_fields("u2", "other.png", status="flagged", ai=True))
            return (
                await documents.list_page(limit=2, offset=0),
                await documents.list_page(user_id="u1", limit=2, offset=4),
                await documents.count(),
                await documents.count(user_id="u2"),
                await documents.count_by_status(),
            )

        first_page, last_page, total, other, by_status = run_with_database(scenario)

        assert first_page.total == 6
        assert len(first_page.items) == 2
        assert last_page.total == 5
        assert len(last_page.items) == 1
        assert total == 6
        assert other == 1
        assert by_status == {"safe": 5, "flagged": 1}

    def test_get_and_history_status(self):
        async def scenario(session):
            documents = DocumentRepository(session)
            fake = await documents.add(**document_fields("u1", "fake.png", status="flagged", ai=True))
            suspicious = await documents.add(**document_fields("u1", "odd.png", status="flagged"))
            return await documents.get(fake.id), await documents.get(suspicious.id), await documents.get("nope")

        fake, suspicious, missing = run_with_database(scenario)

        assert fake.history_status == "fake"
        assert suspicious.history_status == "suspicious"
        assert fake.to_dict()["status"] == "fake"
        assert missing is None

class TestSettingsRepository:
    """Test cases for SettingsRepository."""

    def test_defaults(self):
        async def scenario(session):
            return await SettingsRepository(session).get_all()

        assert run_with_database(scenario) == DEFAULT_SETTINGS

    def test_update_merges_over_defaults(self):
        async def scenario(session):
            settings = SettingsRepository(session)
            await settings.update({"rateLimit": 3}, updated_by="admin")
            return await settings.update({"rateLimit": 4, "allowSignups": False}, updated_by="admin")

        stored = run_with_database(scenario)

        assert stored["rateLimit"] == 4
        assert stored["allowSignups"] is False
        assert stored["maxDocumentsPerUser"] == 50
