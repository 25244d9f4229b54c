"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the gateway happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. strapi_url -> STRAPI_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning, production mode refuses to start without one.

Upstream credentials:
  Two kinds of Strapi credential exist per role. The long-lived API tokens
  (STRAPI_API_TOKEN_<ROLE>) are created in the Strapi admin and used as-is.
  The proxy identities (STRAPI_PROXY_<ROLE>_EMAIL / _PASSWORD) are exchanged
  for short-lived admin session tokens by proxy/authenticator.py. Empty string
  means "not configured" for both.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, content/, proxy/, or cache/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("contentgateway.config")

PROXY_ROLES = ("admin", "editor", "author", "viewer")


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
    database_url: str = "sqlite:///contentgateway.db"
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # 7 days, the lifetime of the tokens issued by register/login.
    token_expire_seconds: int = 7 * 24 * 60 * 60
    login_rate_limit: str = "10/minute"
    platform_identity_header: str = "x-ms-client-principal"
    session_idle_seconds: int = 24 * 60 * 60
    # Must stay <= 24h so idle sessions never outlive two sweep windows.
    session_sweep_interval_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Strapi upstream
    # ------------------------------------------------------------------

    strapi_url: str = "http://localhost:1337"
    strapi_timeout_seconds: float = 15.0

    strapi_api_token_admin: str = ""
    strapi_api_token_editor: str = ""
    strapi_api_token_author: str = ""
    strapi_api_token_viewer: str = ""

    strapi_proxy_admin_email: str = ""
    strapi_proxy_admin_password: str = ""
    strapi_proxy_editor_email: str = ""
    strapi_proxy_editor_password: str = ""
    strapi_proxy_author_email: str = ""
    strapi_proxy_author_password: str = ""
    strapi_proxy_viewer_email: str = ""
    strapi_proxy_viewer_password: str = ""

    # Strapi admin JWTs live 7 days; cache them for 6 so a token the upstream
    # already rejected is never served.
    proxy_token_cache_seconds: int = 6 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def api_tokens(self) -> dict[str, str]:
        """Return the static per-role API tokens keyed by proxy role."""
        return {role: getattr(self, f"strapi_api_token_{role}") for role in PROXY_ROLES}

    def proxy_credentials(self) -> dict[str, tuple[str, str]]:
        """Return (email, password) pairs for every role with both values set."""
        creds: dict[str, tuple[str, str]] = {}
        for role in PROXY_ROLES:
            email = getattr(self, f"strapi_proxy_{role}_email")
            password = getattr(self, f"strapi_proxy_{role}_password")
            if email and password:
                creds[role] = (email, password)
        return creds

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.session_sweep_interval_seconds > 24 * 60 * 60:
            raise ValueError("SESSION_SWEEP_INTERVAL_SECONDS must not exceed 24 hours.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
