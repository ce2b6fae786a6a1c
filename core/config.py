"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for SessionGuard happen here. No module should
call os.getenv() or os.environ.get() directly. Components receive a Settings
instance through their constructors; only the edges (api/main.py lifespan,
main.py CLI) call get_settings().

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. rate_limit_max -> RATE_LIMIT_MAX). Type coercion and range checks
      are declared on the fields with Field(ge=..., le=...).

  Bounded ranges: an out-of-range value raises pydantic.ValidationError when
      Settings() is constructed, so a misconfiguration (LOCKOUT_THRESHOLD=0,
      a negative window) fails startup instead of being clamped.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionguard.config")

# Shared bounds. Mirrors the guardrails on the original env schema.
SESSION_MIN_SECONDS = 300
SESSION_MAX_SECONDS = 31_536_000
RATE_LIMIT_MIN = 1
RATE_LIMIT_MAX = 1000
RATE_LIMIT_WINDOW_MIN_MS = 1_000
RATE_LIMIT_WINDOW_MAX_MS = 3_600_000
LOCKOUT_THRESHOLD_MIN = 1
LOCKOUT_THRESHOLD_MAX = 100
LOCKOUT_DURATION_MIN_MS = 60_000
LOCKOUT_DURATION_MAX_MS = 86_400_000
PASSWORD_LENGTH_MIN = 1
PASSWORD_LENGTH_MAX = 1000
# bcrypt.gensalt() rejects rounds outside 4..31.
HASH_COST_MIN = 4
HASH_COST_MAX = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Keyword arguments passed to the
    constructor take precedence over the environment, which is how tests
    build narrow configurations (e.g. Settings(lockout_threshold=3)).
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
    database_url: str = "sqlite:///sessionguard.db"
    secure_cookies: bool = False
    log_mask_pii: bool = True

    # ------------------------------------------------------------------
    # Rate limiting (per source identifier)
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    rate_limit_max: int = Field(default=5, ge=RATE_LIMIT_MIN, le=RATE_LIMIT_MAX)
    rate_limit_window_ms: int = Field(default=60_000, ge=RATE_LIMIT_WINDOW_MIN_MS, le=RATE_LIMIT_WINDOW_MAX_MS)
    # Coarse slowapi ceiling for every other HTTP route.
    api_rate_limit: str = "60/minute"

    # ------------------------------------------------------------------
    # Account lockout (per email)
    # ------------------------------------------------------------------

    lockout_enabled: bool = True
    lockout_threshold: int = Field(default=5, ge=LOCKOUT_THRESHOLD_MIN, le=LOCKOUT_THRESHOLD_MAX)
    lockout_duration_ms: int = Field(default=900_000, ge=LOCKOUT_DURATION_MIN_MS, le=LOCKOUT_DURATION_MAX_MS)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    access_token_max_age: int = Field(default=3_600, ge=SESSION_MIN_SECONDS, le=SESSION_MAX_SECONDS)
    session_max_age_seconds: int = Field(default=2_592_000, ge=SESSION_MIN_SECONDS, le=SESSION_MAX_SECONDS)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    password_min_length: int = Field(default=8, ge=PASSWORD_LENGTH_MIN, le=PASSWORD_LENGTH_MAX)
    password_max_length: int = Field(default=128, ge=PASSWORD_LENGTH_MIN, le=PASSWORD_LENGTH_MAX)
    password_check_user_info: bool = True
    hash_cost_factor: int = Field(default=12, ge=HASH_COST_MIN, le=HASH_COST_MAX)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Session JWTs and token digests will not survive a restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing. Token digests are keyed with it, so a
            rotating key would invalidate every stored session.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
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
    def validate_password_lengths(self) -> "Settings":
        """PASSWORD_MIN_LENGTH greater than PASSWORD_MAX_LENGTH would reject every password."""
        if self.password_min_length > self.password_max_length:
            raise ValueError(
                f"PASSWORD_MIN_LENGTH ({self.password_min_length}) must not exceed "
                f"PASSWORD_MAX_LENGTH ({self.password_max_length})."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once. Call sites are
    the API lifespan and the CLI; everything below them takes the instance as
    a constructor argument.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
