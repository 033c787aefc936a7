#!/usr/bin/env python3
"""
Configuration Module

Centralized configuration management for the DocVerify service.
Handles settings for the document database, Redis, the identity provider,
the Gemini model, OCR, the image classifier and the HTTP API, plus
environment-specific overrides.
"""

import os
import json
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field, asdict
from enum import Enum

logger = logging.getLogger(__name__)

class Environment(Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

@dataclass
class DatabaseConfig:
    """Document database configuration."""
    url: str = "sqlite+aiosqlite:///./docverify.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20
    pool_recycle: int = 1800

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

@dataclass
class RedisConfig:
    """Redis configuration."""
    host: str = "localhost"
    port: int = 6379
    database: int = 0
    password: Optional[str] = None
    socket_timeout: int = 5

    @property
    def url(self) -> str:
        """Get Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}/{self.database}"
        else:
            return f"redis://{self.host}:{self.port}/{self.database}"

@dataclass
class FirebaseConfig:
    """Identity provider (Firebase Admin) configuration."""
    project_id: str = ""
    client_email: str = ""
    private_key: Optional[str] = None
    credentials_path: Optional[str] = None

    @property
    def database_url(self) -> Optional[str]:
        if not self.project_id:
            return None
        return f"https://{self.project_id}.firebaseio.com"

    @property
    def normalized_private_key(self) -> Optional[str]:
        """Private key with escaped newlines restored."""
        if not self.private_key:
            return None
        return self.private_key.replace("\\n", "\n")

@dataclass
class GeminiConfig:
    """Generative model configuration."""
    api_key: str = ""
    model_name: str = "gemini-1.5-flash"
    timeout_seconds: float = 30.0
    max_calls_per_minute: int = 10
    rate_limit_window: int = 60  # seconds
    large_pdf_threshold: int = 500000  # bytes

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

@dataclass
class OCRConfig:
    """OCR engine configuration."""
    tesseract_cmd: Optional[str] = None
    language: str = "eng"
    tesseract_config: str = ""
    min_text_length: int = 5
    min_confidence: float = 0.3

@dataclass
class ClassifierConfig:
    """Image classifier configuration."""
    enabled: bool = True
    top_k: int = 3
    device: str = "auto"

@dataclass
class APIConfig:
    """API configuration."""
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    reload: bool = False
    enable_docs: bool = True
    max_upload_size: int = 10 * 1024 * 1024  # 10MB
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    trusted_hosts: List[str] = field(default_factory=list)

@dataclass
class SecurityConfig:
    """Security configuration."""
    bootstrap_admin_uids: List[str] = field(default_factory=list)

@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_enabled: bool = False
    file_path: str = "./logs/docverify.log"
    file_max_size: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5
    console_enabled: bool = True

    @property
    def log_file_path(self) -> Path:
        """Get log file path."""
        return Path(self.file_path).resolve()

@dataclass
class MonitoringConfig:
    """Monitoring and metrics configuration."""
    enable_metrics: bool = True
    metrics_endpoint: str = "/metrics"

def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]

class Config:
    """Main configuration class."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None, environment: Optional[str] = None):
        self.environment = Environment(environment or os.getenv("ENVIRONMENT", "development"))
        self.config_file = Path(config_file) if config_file else None

        # Initialize configuration sections
        self.database = DatabaseConfig()
        self.redis = RedisConfig()
        self.firebase = FirebaseConfig()
        self.gemini = GeminiConfig()
        self.ocr = OCRConfig()
        self.classifier = ClassifierConfig()
        self.api = APIConfig()
        self.security = SecurityConfig()
        self.logging = LoggingConfig()
        self.monitoring = MonitoringConfig()

        # Load configuration
        self._load_from_environment()
        if self.config_file and self.config_file.exists():
            self._load_from_file()

        # Apply environment-specific overrides
        self._apply_environment_overrides()

        # Validate configuration
        self._validate_config()

        logger.info(f"Configuration loaded for {self.environment.value} environment")

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Database
        self.database.url = os.getenv("DATABASE_URL", self.database.url)
        self.database.echo = os.getenv("DATABASE_ECHO", "false").lower() == "true"

        # Redis
        self.redis.host = os.getenv("REDIS_HOST", self.redis.host)
        self.redis.port = int(os.getenv("REDIS_PORT", self.redis.port))
        self.redis.database = int(os.getenv("REDIS_DB", self.redis.database))
        self.redis.password = os.getenv("REDIS_PASSWORD", self.redis.password)

        # Identity provider
        self.firebase.project_id = os.getenv("FIREBASE_PROJECT_ID", self.firebase.project_id)
        self.firebase.client_email = os.getenv("FIREBASE_CLIENT_EMAIL", self.firebase.client_email)
        self.firebase.private_key = os.getenv("FIREBASE_PRIVATE_KEY", self.firebase.private_key)
        self.firebase.credentials_path = os.getenv("FIREBASE_CREDENTIALS_PATH", self.firebase.credentials_path)

        # Gemini
        self.gemini.api_key = os.getenv("GOOGLE_GEMINI_API_KEY", self.gemini.api_key)
        self.gemini.model_name = os.getenv("GEMINI_MODEL", self.gemini.model_name)
        self.gemini.timeout_seconds = float(os.getenv("GEMINI_TIMEOUT", self.gemini.timeout_seconds))
        self.gemini.max_calls_per_minute = int(
            os.getenv("GEMINI_MAX_CALLS_PER_MINUTE", self.gemini.max_calls_per_minute)
        )

        # OCR
        self.ocr.tesseract_cmd = os.getenv("TESSERACT_CMD", self.ocr.tesseract_cmd)
        self.ocr.language = os.getenv("OCR_LANGUAGE", self.ocr.language)

        # Classifier
        self.classifier.enabled = os.getenv("CLASSIFIER_ENABLED", "true").lower() == "true"

        # API
        self.api.host = os.getenv("API_HOST", self.api.host)
        self.api.port = int(os.getenv("API_PORT", self.api.port))
        self.api.debug = os.getenv("API_DEBUG", "false").lower() == "true"
        cors_origins = os.getenv("CORS_ORIGINS")
        if cors_origins:
            self.api.cors_origins = _split_list(cors_origins)
        trusted_hosts = os.getenv("TRUSTED_HOSTS")
        if trusted_hosts:
            self.api.trusted_hosts = _split_list(trusted_hosts)

        # Security
        admin_uids = os.getenv("ADMIN_UIDS")
        if admin_uids:
            self.security.bootstrap_admin_uids = _split_list(admin_uids)

        # Logging
        log_level = os.getenv("LOG_LEVEL", self.logging.level.value)
        try:
            self.logging.level = LogLevel(log_level.upper())
        except ValueError:
            logger.warning(f"Invalid log level '{log_level}', using default")
        self.logging.file_enabled = os.getenv("LOG_TO_FILE", "false").lower() == "true"
        self.logging.file_path = os.getenv("LOG_FILE", self.logging.file_path)

        # Monitoring
        self.monitoring.enable_metrics = os.getenv("ENABLE_METRICS", "true").lower() == "true"

    def _load_from_file(self):
        """Load configuration from JSON file."""
        try:
            with open(self.config_file, 'r') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load configuration from {self.config_file}: {e}")
            return

        # Update configuration sections
        for section_name, section_data in config_data.items():
            if section_name in self._section_names() and isinstance(section_data, dict):
                section = getattr(self, section_name)
                for key, value in section_data.items():
                    if not hasattr(section, key):
                        continue
                    if key == "level" and section_name == "logging":
                        value = LogLevel(str(value).upper())
                    setattr(section, key, value)

        logger.info(f"Configuration loaded from {self.config_file}")

    def _apply_environment_overrides(self):
        """Apply environment-specific configuration overrides."""
        if self.environment == Environment.DEVELOPMENT:
            self.api.debug = True
            self.api.reload = True
            self.logging.level = LogLevel.DEBUG

        elif self.environment == Environment.TESTING:
            self.database.url = "sqlite+aiosqlite:///:memory:"
            self.redis.database = 1
            self.logging.level = LogLevel.WARNING
            self.logging.file_enabled = False
            self.monitoring.enable_metrics = False
            self.classifier.enabled = False

        elif self.environment == Environment.PRODUCTION:
            self.api.debug = False
            self.api.reload = False
            self.api.enable_docs = False
            self.logging.level = LogLevel.INFO

    def _validate_config(self):
        """Validate configuration settings."""
        errors = []

        if self.environment == Environment.PRODUCTION and not self.gemini.has_api_key:
            errors.append("Gemini API key must be set for production environment")

        if self.api.port < 1 or self.api.port > 65535:
            errors.append(f"Invalid API port: {self.api.port}")

        if self.redis.port < 1 or self.redis.port > 65535:
            errors.append(f"Invalid Redis port: {self.redis.port}")

        if self.gemini.max_calls_per_minute < 1:
            errors.append(f"Invalid Gemini call budget: {self.gemini.max_calls_per_minute}")

        if self.gemini.timeout_seconds <= 0:
            errors.append(f"Invalid Gemini timeout: {self.gemini.timeout_seconds}")

        if self.api.max_upload_size <= 0:
            errors.append(f"Invalid maximum upload size: {self.api.max_upload_size}")

        if self.logging.file_enabled:
            try:
                self.logging.log_file_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create logs directory: {e}")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

    @staticmethod
    def _section_names() -> List[str]:
        return [
            "database", "redis", "firebase", "gemini", "ocr",
            "classifier", "api", "security", "logging", "monitoring",
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, leaving out secrets."""
        data: Dict[str, Any] = {"environment": self.environment.value}
        for name in self._section_names():
            data[name] = asdict(getattr(self, name))

        data["logging"]["level"] = self.logging.level.value
        data["firebase"].pop("private_key", None)
        data["gemini"].pop("api_key", None)
        data["redis"].pop("password", None)
        return data

    def save_to_file(self, file_path: Union[str, Path]):
        """Save configuration to JSON file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {file_path}")

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

# Global configuration instance
_config: Optional[Config] = None

def get_config() -> Config:
    """Get global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config

def init_config(config_file: Optional[Union[str, Path]] = None, environment: Optional[str] = None) -> Config:
    """Initialize global configuration."""
    global _config
    _config = Config(config_file=config_file, environment=environment)
    return _config

def reload_config() -> Config:
    """Reload global configuration."""
    global _config
    if _config:
        config_file = _config.config_file
        environment = _config.environment.value
        _config = Config(config_file=config_file, environment=environment)
    else:
        _config = Config()
    return _config

def setup_logging(config: Config) -> None:
    """Configure the root logger from the logging section."""
    log_config = config.logging
    root = logging.getLogger()
    root.setLevel(log_config.level.value)

    for handler in list(root.handlers):
        if getattr(handler, "_docverify", False):
            root.removeHandler(handler)

    formatter = logging.Formatter(log_config.format, datefmt=log_config.date_format)
    handlers: List[logging.Handler] = []

    if log_config.console_enabled:
        handlers.append(logging.StreamHandler())

    if log_config.file_enabled:
        handlers.append(logging.handlers.RotatingFileHandler(
            log_config.log_file_path,
            maxBytes=log_config.file_max_size,
            backupCount=log_config.file_backup_count,
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._docverify = True
        root.addHandler(handler)
