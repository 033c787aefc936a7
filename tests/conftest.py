#!/usr/bin/env python3
"""
Global Test Configuration and Fixtures

Shared pytest fixtures: a testing configuration, fake external services,
an in-memory database, fake Redis and a TestClient around the app.
"""

import pytest
from fastapi.testclient import TestClient

from docverify.api.dependencies import ServiceContainer
from docverify.api.main import create_app
from docverify.config import Config

from tests.utils import FakeClassifier, FakeIdentityProvider, FakeModel, FakeOCR, make_redis

ADMIN_UID = "admin-uid"
USER_UID = "user-uid"

@pytest.fixture
def test_config(monkeypatch):
    """Testing configuration with an API key and a bootstrap admin."""
    for name in ("DATABASE_URL", "ADMIN_UIDS", "GOOGLE_GEMINI_API_KEY", "LOG_TO_FILE"):
        monkeypatch.delenv(name, raising=False)
    config = Config(environment="testing")
    config.gemini.api_key = "test-gemini-key"
    config.security.bootstrap_admin_uids = [ADMIN_UID]
    return config

@pytest.fixture
def identity():
    provider = FakeIdentityProvider()
    provider.add_user(ADMIN_UID, "admin@example.com", token="admin-token", display_name="Admin")
    provider.add_user(USER_UID, "user@example.com", token="user-token", display_name="Jane Doe")
    return provider

@pytest.fixture
def fake_model():
    return FakeModel()

@pytest.fixture
def fake_ocr():
    return FakeOCR()

@pytest.fixture
def services(test_config, identity, fake_model, fake_ocr):
    """Service container wired to fakes, in-memory SQLite and fake Redis."""
    return ServiceContainer.build(
        test_config,
        redis_client=make_redis(),
        identity=identity,
        ocr=fake_ocr,
        classifier=FakeClassifier(),
        model=fake_model,
    )

@pytest.fixture
def client(services):
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client

@pytest.fixture
def user_headers():
    return {"Authorization": "Bearer user-token"}

@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer admin-token"}

@pytest.fixture
def registered_user(client, user_headers):
    response = client.post(
        "/api/auth/register",
        json={"uid": USER_UID, "email": "user@example.com", "displayName": "Jane Doe"},
        headers=user_headers,
    )
    assert response.status_code == 200
    return response.json()["user"]

@pytest.fixture
def registered_admin(client, admin_headers):
    response = client.post(
        "/api/auth/register",
        json={"uid": ADMIN_UID, "email": "admin@example.com"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    return response.json()["user"]
