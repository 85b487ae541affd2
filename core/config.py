"""
core/config.py -- KeyRelay settings, read from the environment and .env.

Every environment read goes through get_settings(). Modules never touch
os.environ themselves; tests set variables before the first call (see
tests/conftest.py) or construct Settings() with keyword overrides.

get_settings() is lru_cached, so the validator below runs once per process
and every module sees the same secrets. Field names map one-to-one onto
upper-case variables (session_secret -> SESSION_SECRET).

The secret policy lives in validate_secrets():
  [S1] ENCRYPTION_SECRET and SESSION_SECRET shorter than 32 chars are rejected.
       PBKDF2 key derivation and HS256 signing both rely on secret entropy.

  [S2] The two secrets must differ. A leaked session-signing secret must not
       also open the encrypted credential cookie.

  [S3] Secrets are never logged, not even their length.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or relay/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("keyrelay.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Process-wide configuration. Every field has a default except the secrets,
    which validate_secrets() fills (debug) or demands (production).
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
    # below either generates a dev secret or raises, so callers never see "".
    encryption_secret: str = ""
    session_secret: str = ""

    # ------------------------------------------------------------------
    # Session cookies
    # ------------------------------------------------------------------

    # None means "follow the environment": secure outside debug mode.
    secure_cookies: Optional[bool] = None
    session_ttl_seconds: int = 24 * 60 * 60

    # ------------------------------------------------------------------
    # Outbound calls
    # ------------------------------------------------------------------

    provider_base_url: str = "https://api.openai.com/v1"
    upstream_base_url: str = "http://localhost:8000"
    liveness_timeout_seconds: float = 10.0
    chat_timeout_seconds: float = 30.0

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    key_submit_rate_limit: str = "10/minute"
    chat_rate_limit: str = "30/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [S1] [S2].

        Dev mode (DEBUG=true): auto-generate any missing secret with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing. A random
            secret in production would silently invalidate every browser
            session on restart.
        """
        for name in ("encryption_secret", "session_secret"):
            value = getattr(self, name)
            env_name = name.upper()
            if not value:
                if self.debug:
                    setattr(self, name, secrets.token_urlsafe(48))
                    logger.warning(
                        "WARNING: Using auto-generated %s. Sessions will not persist across restarts.",
                        env_name,
                    )
                    continue
                raise ValueError(
                    f"{env_name} is required in production mode. "
                    f"Set {env_name} in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{env_name} must be at least {_MIN_SECRET_LENGTH} characters.")

        if self.encryption_secret == self.session_secret:
            raise ValueError("ENCRYPTION_SECRET and SESSION_SECRET must be different values.")

        if self.secure_cookies is None:
            self.secure_cookies = not self.debug
        return self

    @property
    def chat_url(self) -> str:
        return f"{self.upstream_base_url.rstrip('/')}/api/chat"


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings. Call get_settings.cache_clear() after changing the environment."""
    return Settings()
