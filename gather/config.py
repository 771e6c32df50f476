"""
Configuration classes for the Flask application factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'gather_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _db_url(raw: str) -> str:
    # Heroku-style postgres:// is rejected by SQLAlchemy 2.0
    return raw.replace("postgres://", "postgresql://", 1) if raw else raw


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Rate limiter storage
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Public base URL used when rendering invite and magic links
    APP_URL = os.getenv("APP_URL", "http://localhost:3000")

    # Entitlements
    FREE_TIER_EVENT_LIMIT = int(os.getenv("FREE_TIER_EVENT_LIMIT", "1"))

    # Workflow gates
    FREEZE_COMPLIANCE_THRESHOLD = float(os.getenv("FREEZE_COMPLIANCE_THRESHOLD", "0.8"))
    GATE_MIN_TEAMS = int(os.getenv("GATE_MIN_TEAMS", "1"))
    GATE_MIN_ITEMS = int(os.getenv("GATE_MIN_ITEMS", "1"))

    # Credentials
    ACCESS_TOKEN_TTL_DAYS = int(os.getenv("ACCESS_TOKEN_TTL_DAYS", "90"))
    SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "30"))
    MAGIC_LINK_TTL_MINUTES = int(os.getenv("MAGIC_LINK_TTL_MINUTES", "15"))
    MAGIC_LINK_MAX_REQUESTS = int(os.getenv("MAGIC_LINK_MAX_REQUESTS", "3"))
    MAGIC_LINK_WINDOW_MINUTES = int(os.getenv("MAGIC_LINK_WINDOW_MINUTES", "15"))

    # Cron trigger shared secret (nudge scheduler)
    CRON_SECRET = os.getenv("CRON_SECRET")

    # Email / SMTP (optional; unset server means log-only)
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@gather.local")

    # SMS gateway (optional; unset URL means log-only)
    SMS_GATEWAY_URL = os.getenv("SMS_GATEWAY_URL")
    SMS_GATEWAY_TOKEN = os.getenv("SMS_GATEWAY_TOKEN")
    SMS_FROM = os.getenv("SMS_FROM")
    SMS_TIMEOUT_SECONDS = int(os.getenv("SMS_TIMEOUT_SECONDS", "10"))

    # Nudges
    NUDGE_TIMEZONE = os.getenv("NUDGE_TIMEZONE", "Pacific/Auckland")
    NUDGE_QUIET_START_HOUR = 21
    NUDGE_QUIET_END_HOUR = 8


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _db_url(os.getenv("DATABASE_URL", "")) or _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    CRON_SECRET = "test-cron-secret"
    APP_URL = "http://gather.test"
    MAIL_SERVER = None
    SMS_GATEWAY_URL = None


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _db_url(os.getenv("DATABASE_URL", "")) or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    SESSION_COOKIE_SECURE = True

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
