"""
Application configuration — environment-aware settings.

All environment variables are documented here. See .env.example for a template.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv()


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    WTF_CSRF_ENABLED = True

    # Session security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    PERMANENT_SESSION_LIFETIME = 86400

    # Hosted document store (Parse REST API, e.g. Back4App)
    PARSE_APP_ID = os.environ.get("PARSE_APP_ID", "")
    PARSE_REST_KEY = os.environ.get("PARSE_REST_KEY", "")
    PARSE_BASE_URL = os.environ.get("PARSE_BASE_URL", "https://parseapi.back4app.com/classes")
    CLOUD_REQUEST_TIMEOUT = float(os.environ.get("CLOUD_REQUEST_TIMEOUT", "10"))

    # Sync loop
    SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "15"))
    SYNC_JITTER_SECONDS = float(os.environ.get("SYNC_JITTER_SECONDS", "0"))
    HEARTBEAT_ENABLED = True
    SESSION_DATA_DIR = os.environ.get("SESSION_DATA_DIR", str(BASE_DIR / "session_data"))
    # Live sessions untouched this long are closed; 0 keeps them forever
    SESSION_IDLE_SECONDS = float(os.environ.get("SESSION_IDLE_SECONDS", "3600"))

    # Admin console sign-in (werkzeug password hash, never a plaintext password)
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@exampro.ng")
    ADMIN_PASSWORD_HASH = os.environ.get("ADMIN_PASSWORD_HASH", "")

    # AI provider
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rate limiting (in-memory unless a storage URI is given)
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "") or "memory://"


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        if not cls.PARSE_APP_ID or not cls.PARSE_REST_KEY:
            errors.append("PARSE_APP_ID and PARSE_REST_KEY must be set.")

        if not cls.ADMIN_PASSWORD_HASH:
            errors.append("ADMIN_PASSWORD_HASH must be set (generate with werkzeug.security.generate_password_hash).")

        if not cls.GOOGLE_API_KEY:
            warnings.warn("GOOGLE_API_KEY is not set — AI tutor features will be unavailable.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    WTF_CSRF_ENABLED = False
    HEARTBEAT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
