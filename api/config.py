"""
Environment-aware configuration.

Flask config classes are read from the environment (.env is loaded if present).
The auth core never reads app.config directly: create_app() turns the loaded
config into an immutable AuthSettings and hands it to the codec, the ledger and
the password hasher.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping

from dotenv import load_dotenv

load_dotenv()  # Read .env if present


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_seconds(name: str, default: int) -> timedelta:
    return timedelta(seconds=int(os.getenv(name, str(default))))


class ConfigurationError(RuntimeError):
    """Raised when the service cannot start securely."""


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY")
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///cosmos-auth.db")
    SQL_ECHO = _env_bool("SQL_ECHO", "false")

    # Two independent secrets; neither has a default
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET")
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "cosmos-admin")
    ACCESS_TOKEN_EXPIRES = _env_seconds("ACCESS_TOKEN_EXPIRES_SECONDS", 15 * 60)
    REFRESH_TOKEN_EXPIRES = _env_seconds("REFRESH_TOKEN_EXPIRES_SECONDS", 7 * 24 * 3600)
    # How long expired ledger rows are kept for audit before pruning
    REFRESH_TOKEN_RETENTION = _env_seconds("REFRESH_TOKEN_RETENTION_SECONDS", 30 * 24 * 3600)

    ACCESS_TOKEN_COOKIE = os.getenv("ACCESS_TOKEN_COOKIE", "access_token")
    REFRESH_TOKEN_COOKIE = os.getenv("REFRESH_TOKEN_COOKIE", "refresh_token")
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "false")

    # argon2id cost parameters (argon2-cffi defaults)
    PASSWORD_HASH_TIME_COST = int(os.getenv("PASSWORD_HASH_TIME_COST", "3"))
    PASSWORD_HASH_MEMORY_COST = int(os.getenv("PASSWORD_HASH_MEMORY_COST", "65536"))
    PASSWORD_HASH_PARALLELISM = int(os.getenv("PASSWORD_HASH_PARALLELISM", "4"))
    PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    SQL_ECHO = False
    SECRET_KEY = "test-secret-key"
    JWT_ACCESS_SECRET = "test-access-secret-do-not-use-in-production"
    JWT_REFRESH_SECRET = "test-refresh-secret-do-not-use-in-production"
    # Cheap hashing keeps the suite fast
    PASSWORD_HASH_TIME_COST = 1
    PASSWORD_HASH_MEMORY_COST = 8192
    PASSWORD_HASH_PARALLELISM = 1


class ProductionConfig(BaseConfig):
    DEBUG = False
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "true")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


@dataclass(frozen=True)
class AuthSettings:
    """Immutable auth configuration, built once at startup."""

    access_secret: str
    refresh_secret: str
    algorithm: str = "HS256"
    issuer: str = "cosmos-admin"
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    refresh_retention: timedelta = timedelta(days=30)
    access_cookie: str = "access_token"
    refresh_cookie: str = "refresh_token"
    cookie_secure: bool = False
    hash_time_cost: int = 3
    hash_memory_cost: int = 65536
    hash_parallelism: int = 4
    password_min_length: int = 6

    def __post_init__(self):
        if not self.access_secret or not self.refresh_secret:
            raise ConfigurationError(
                "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must both be set"
            )
        if self.access_secret == self.refresh_secret:
            raise ConfigurationError(
                "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ"
            )
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ConfigurationError("token lifetimes must be positive")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AuthSettings":
        return cls(
            access_secret=config.get("JWT_ACCESS_SECRET"),
            refresh_secret=config.get("JWT_REFRESH_SECRET"),
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            issuer=config.get("JWT_ISSUER", "cosmos-admin"),
            access_ttl=config.get("ACCESS_TOKEN_EXPIRES", timedelta(minutes=15)),
            refresh_ttl=config.get("REFRESH_TOKEN_EXPIRES", timedelta(days=7)),
            refresh_retention=config.get("REFRESH_TOKEN_RETENTION", timedelta(days=30)),
            access_cookie=config.get("ACCESS_TOKEN_COOKIE", "access_token"),
            refresh_cookie=config.get("REFRESH_TOKEN_COOKIE", "refresh_token"),
            cookie_secure=bool(config.get("COOKIE_SECURE", False)),
            hash_time_cost=config.get("PASSWORD_HASH_TIME_COST", 3),
            hash_memory_cost=config.get("PASSWORD_HASH_MEMORY_COST", 65536),
            hash_parallelism=config.get("PASSWORD_HASH_PARALLELISM", 4),
            password_min_length=config.get("PASSWORD_MIN_LENGTH", 6),
        )
