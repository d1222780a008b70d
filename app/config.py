"""
Cozy Connect — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.

Nothing here is required at import time: a missing Airtable key or bucket name
surfaces as a ``StoreUnavailable`` / ``StorageUnavailable`` error on first use,
not as a crash during startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Cozy Connect API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Record store
    # ------------------------------------------------------------------ #
    STORE_BACKEND: str = "airtable"  # airtable / sql / memory
    STORE_TIMEOUT_SECONDS: float = 10.0
    STORE_READ_ATTEMPTS: int = 3

    # ------------------------------------------------------------------ #
    # Airtable
    # ------------------------------------------------------------------ #
    AIRTABLE_API_KEY: str = ""
    AIRTABLE_BASE_ID: str = ""
    AIRTABLE_ENDPOINT_URL: str = "https://api.airtable.com"
    PROFILES_TABLE_ID: str = "tbl9Jj8pIUABtsXRo"
    MATCHES_TABLE_ID: str = "tbl4jHhNHZVBhP4Up"
    FEEDBACK_TABLE_ID: str = "tblZA2JMTTwHsnN3b"

    # ------------------------------------------------------------------ #
    # Database – only used when STORE_BACKEND == "sql"
    # ------------------------------------------------------------------ #
    DATABASE_URL: str = "sqlite+aiosqlite:///./cozy_connect.db"

    # ------------------------------------------------------------------ #
    # Google identity
    # ------------------------------------------------------------------ #
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_JWKS_URL: str = "https://www.googleapis.com/oauth2/v3/certs"

    # ------------------------------------------------------------------ #
    # Transactional email (Resend)
    # ------------------------------------------------------------------ #
    RESEND_API_KEY: str = ""
    RESEND_ENDPOINT_URL: str = "https://api.resend.com"
    EMAIL_FROM: str = "verification@cozy.zerocomputing.com"

    # ------------------------------------------------------------------ #
    # Google Cloud Storage – profile pictures
    # ------------------------------------------------------------------ #
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""
    GCS_PICTURE_PREFIX: str = "profile-pictures/"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------ #
    # Browse feed curation (comma-separated display names)
    # ------------------------------------------------------------------ #
    BLACKLISTED_PROFILES: str = "☕️ Join Cozy Networking"
    PRIORITY_PROFILES: str = ""

    # ------------------------------------------------------------------ #
    # Profile-existence gate
    # ------------------------------------------------------------------ #
    PROFILE_CHECK_ATTEMPTS: int = 3
    PROFILE_CHECK_DELAY_SECONDS: float = 1.0

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def blacklisted_profiles_list(self) -> list[str]:
        return _split_names(self.BLACKLISTED_PROFILES)

    @property
    def priority_profiles_list(self) -> list[str]:
        return _split_names(self.PRIORITY_PROFILES)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("STORE_BACKEND")
    @classmethod
    def _backend_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"airtable", "sql", "memory"}:
            raise ValueError(f"Unknown STORE_BACKEND {v!r}")
        return v

    @field_validator("STORE_READ_ATTEMPTS", "PROFILE_CHECK_ATTEMPTS")
    @classmethod
    def _attempts_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Attempt count must be at least 1, got {v}")
        return v


def _split_names(raw: str) -> list[str]:
    return [name.strip() for name in raw.split(",") if name.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from app.config import get_settings
        settings = get_settings()
    """
    return Settings()
