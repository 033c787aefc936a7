#!/usr/bin/env python3
"""
Unit Tests for Configuration

Tests environment loading, environment-specific overrides, validation,
file round trips and secret handling.
"""

import json

import pytest

from docverify.config import Config, Environment, LogLevel

CONFIG_ENV_VARS = [
    "ENVIRONMENT", "DATABASE_URL", "REDIS_HOST", "REDIS_PORT", "GOOGLE_GEMINI_API_KEY",
    "GEMINI_MAX_CALLS_PER_MINUTE", "ADMIN_UIDS", "CORS_ORIGINS", "LOG_LEVEL", "LOG_TO_FILE",
    "API_PORT", "FIREBASE_PRIVATE_KEY", "ENABLE_METRICS",
]

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)

class TestConfig:
    """Test cases for Config class."""

    def test_defaults(self):
        config = Config(environment="staging")

        assert config.environment == Environment.STAGING
        assert config.database.url == "sqlite+aiosqlite:///./docverify.db"
        assert config.database.is_sqlite
        assert config.redis.url == "redis://localhost:6379/0"
        assert config.gemini.max_calls_per_minute == 10
        assert config.gemini.has_api_key is False
        assert config.api.cors_origins == ["*"]

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://db/docverify")
        monkeypatch.setenv("GOOGLE_GEMINI_API_KEY", "secret")
        monkeypatch.setenv("GEMINI_MAX_CALLS_PER_MINUTE", "25")
        monkeypatch.setenv("ADMIN_UIDS", "uid-1, uid-2,")
        monkeypatch.setenv("CORS_ORIGINS", "https://app.example.com,https://admin.example.com")
        monkeypatch.setenv("LOG_LEVEL", "error")

        config = Config(environment="staging")

        assert config.database.url == "postgresql+asyncpg://db/docverify"
        assert not config.database.is_sqlite
        assert config.gemini.api_key == "secret"
        assert config.gemini.max_calls_per_minute == 25
        assert config.security.bootstrap_admin_uids == ["uid-1", "uid-2"]
        assert config.api.cors_origins == ["https://app.example.com", "https://admin.example.com"]
        assert config.logging.level == LogLevel.ERROR

    def test_invalid_log_level_keeps_default(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "verbose")

        assert Config(environment="staging").logging.level == LogLevel.INFO

    def test_testing_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://db/docverify")

        config = Config(environment="testing")

        assert config.is_testing()
        assert config.database.url == "sqlite+aiosqlite:///:memory:"
        assert config.monitoring.enable_metrics is False
        assert config.classifier.enabled is False
        assert config.logging.level == LogLevel.WARNING

    def test_development_overrides(self):
        config = Config(environment="development")

        assert config.is_development()
        assert config.api.debug is True
        assert config.logging.level == LogLevel.DEBUG

    def test_production_requires_api_key(self):
        with pytest.raises(ValueError, match="Gemini API key"):
            Config(environment="production")

    def test_production(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_GEMINI_API_KEY", "secret")

        config = Config(environment="production")

        assert config.is_production()
        assert config.api.enable_docs is False

    def test_invalid_port(self, monkeypatch):
        monkeypatch.setenv("API_PORT", "70000")

        with pytest.raises(ValueError, match="Invalid API port"):
            Config(environment="staging")

    def test_unknown_environment(self):
        with pytest.raises(ValueError):
            Config(environment="qa")

    def test_private_key_newlines(self, monkeypatch):
        monkeypatch.setenv("FIREBASE_PRIVATE_KEY", "-----BEGIN-----\\nabc\\n-----END-----")

        config = Config(environment="staging")

        assert config.firebase.normalized_private_key == "-----BEGIN-----\nabc\n-----END-----"

    def test_save_and_load_file(self, tmp_path):
        config = Config(environment="staging")
        config.gemini.api_key = "secret"
        config.gemini.max_calls_per_minute = 3
        config.logging.level = LogLevel.ERROR
        path = tmp_path / "config" / "docverify.json"

        config.save_to_file(path)
        saved = json.loads(path.read_text())

        assert "api_key" not in saved["gemini"]
        assert "private_key" not in saved["firebase"]
        assert saved["logging"]["level"] == "ERROR"

        loaded = Config(config_file=path, environment="staging")
        assert loaded.gemini.max_calls_per_minute == 3
        assert loaded.logging.level == LogLevel.ERROR
        assert loaded.gemini.api_key == ""

    def test_malformed_file_is_ignored(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        config = Config(config_file=path, environment="staging")

        assert config.gemini.max_calls_per_minute == 10

class TestGlobalConfig:
    """Test cases for the process-wide configuration accessors."""

    def test_init_and_reload(self, monkeypatch):
        from docverify import config as config_module

        monkeypatch.setattr(config_module, "_config", None)
        config = config_module.init_config(environment="staging")

        assert config_module.get_config() is config

        monkeypatch.setenv("GEMINI_MAX_CALLS_PER_MINUTE", "42")
        reloaded = config_module.reload_config()

        assert reloaded is not config
        assert reloaded.environment == Environment.STAGING
        assert config_module.get_config().gemini.max_calls_per_minute == 42
