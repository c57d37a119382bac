"""
core/config.py -- Auth service settings, read from the environment by pydantic-settings.

Every environment variable the service understands is declared on Settings.
Other modules never read os.environ themselves; they call get_settings().

How it is wired:
  get_settings() is wrapped in lru_cache, so the first caller builds Settings
      and every later caller shares that object. FastAPI's Depends(get_settings)
      pattern works unchanged.

  Settings extends BaseSettings. An attribute such as
      access_token_expire_minutes is filled from ACCESS_TOKEN_EXPIRE_MINUTES
      (or a .env line of that name) and coerced to its annotated type.

  model_validator(mode="after") sees the resolved values and applies the
      signing-key policy below.

Signing-key policy:
  [M6] A SECRET_KEY under 32 characters is refused. Every HS256 token is only
       as strong as this key.

  [M7] Outside debug mode a missing SECRET_KEY stops startup. A generated key
       would log every user out on each restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("icafe.config")


class Settings(BaseSettings):
    """Environment-backed configuration for the API, services and CLI.

    Every field has a default, so tests can build Settings(debug=True) with no
    .env present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; validate_signing_key replaces or rejects it.
    secret_key: str = ""
    database_url: str = "sqlite:///icafe_auth.db"
    # Budget for one service call: store round-trips plus bcrypt.
    request_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_expire_minutes: int = 15
    refresh_token_expire_hours: int = 168  # 7 days

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # slowapi limit strings, per client IP
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    self_registration_enabled: bool = True

    # Bootstrap admin -- created at startup only when the users table is empty.
    admin_username: str = ""
    admin_password: str = ""
    admin_phone: str = ""
    admin_email: str = ""

    @model_validator(mode="after")
    def validate_signing_key(self) -> "Settings":
        """Fill in or reject SECRET_KEY.

        With DEBUG=true a missing key is replaced by a random one and a warning
        is logged [M7]. Without DEBUG a missing key is an error. Either way the
        final key must be at least 32 characters [M6].
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true (environment or .env).")
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a throwaway key. Issued tokens die with this process.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY is shorter than 32 characters.")
        return self

    @property
    def bootstrap_admin_configured(self) -> bool:
        return bool(self.admin_username and self.admin_password and self.admin_phone)


@lru_cache
def get_settings() -> Settings:
    """Shared Settings instance, built on first use.

    Tests that change environment variables must call get_settings.cache_clear().
    """
    return Settings()
