"""
core/config.py -- identity-core settings, read from the environment once.

Every tunable lives on Settings; nothing else in the tree reads os.environ.
get_settings() is cached, so values are fixed for the life of the process:
the signing key in particular is handed to the TokenCodec at startup and is
never re-read. Changing SECRET_KEY invalidates every outstanding token;
there is no rotation.

Env var names are the upper-cased field names (TOKEN_TTL_SECONDS, ...). A .env
file in the working directory is honoured when present.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("identity.config")

MIN_SECRET_KEY_LENGTH = 32


class Settings(BaseSettings):
    """All fields default, so tests can build Settings() without a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = False
    # "" means unset; validate_secret_key replaces or rejects it.
    secret_key: str = ""
    database_url: str = "sqlite:///identity.db"

    token_issuer: str = "identity-core"
    token_ttl_seconds: int = 3600
    # How long past `exp` a token may still be exchanged at /auth/refresh.
    refresh_grace_seconds: int = 7 * 24 * 3600

    store_timeout_seconds: float = 5.0
    revocation_purge_interval_seconds: int = 3600

    login_rate_limit: str = "10/minute"

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """DEBUG=true may run without SECRET_KEY (a random one is generated and
        tokens die with the process). Otherwise a key of at least 32
        characters is required.
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true.")
            self.secret_key = secrets.token_hex(MIN_SECRET_KEY_LENGTH)
            logger.warning("SECRET_KEY not set; generated a throwaway key for this DEBUG process.")
        if len(self.secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters.")
        return self

    @model_validator(mode="after")
    def validate_durations(self) -> "Settings":
        if self.token_ttl_seconds <= 0:
            raise ValueError("TOKEN_TTL_SECONDS must be positive.")
        if self.refresh_grace_seconds < 0:
            raise ValueError("REFRESH_GRACE_SECONDS must not be negative.")
        if self.store_timeout_seconds <= 0:
            raise ValueError("STORE_TIMEOUT_SECONDS must be positive.")
        if self.revocation_purge_interval_seconds <= 0:
            raise ValueError("REVOCATION_PURGE_INTERVAL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings. Tests that patch the environment call get_settings.cache_clear()."""
    return Settings()
