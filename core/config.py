"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for HealthTrack happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a key with a warning,
      production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session tokens are
  stored as HMAC-SHA256(SECRET_KEY, token), so a short key weakens the
  protection of the sessions table.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
  hard startup failure. A random key would silently invalidate every stored
  session on restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or records/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("healthtrack.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'healthtrack.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Credentials and lockout
    # ------------------------------------------------------------------

    # bcrypt work factor. Tests drop this to 4 to keep hashing fast.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    max_login_attempts: int = Field(default=5, ge=1)
    lockout_window_seconds: int = Field(default=15 * 60, gt=0)
    revoke_sessions_on_lockout: bool = True

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_short_ttl_seconds: int = Field(default=30 * 60, gt=0)
    session_long_ttl_seconds: int = Field(default=30 * 24 * 60 * 60, gt=0)
    session_purge_interval_seconds: int = Field(default=60 * 60, gt=0)
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    self_registration_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Stored sessions will not validate after a restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_session_ttls(self) -> "Settings":
        """Remember-me sessions must not be shorter than regular ones."""
        if self.session_long_ttl_seconds < self.session_short_ttl_seconds:
            raise ValueError("SESSION_LONG_TTL_SECONDS must be >= SESSION_SHORT_TTL_SECONDS.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
