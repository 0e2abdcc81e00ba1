"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CommitStreams happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or accept a Settings instance (create_app(settings) does the latter so tests
never depend on process environment).

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY logic. Dev mode
      generates a key with a warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. It signs the OAuth
  state cookie and, when TOKEN_ENCRYPTION_KEY is not set, derives the key the
  token codec uses for stored GitHub access tokens.

  TOKEN_ENCRYPTION_KEY should be set separately in production. Rotating
  SECRET_KEY without it makes every stored access token undecryptable.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or domains/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("commitstreams.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'commitstreams.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (as long as DEBUG=true or a
    SECRET_KEY is passed explicitly).
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
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    # Frontend origin. OAuth and logout redirects land here.
    client_host: str = "http://localhost:3000"
    cors_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Sessions and cookies
    # ------------------------------------------------------------------

    secure_cookies: bool = True
    session_cookie_name: str = "cs_session"
    identity_cookie_name: str = "userId"
    session_ttl_seconds: int = 7 * 24 * 3600
    session_purge_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # Token codec
    # ------------------------------------------------------------------

    token_encryption_key: str = ""

    # ------------------------------------------------------------------
    # GitHub (empty client id means the OAuth strategy is disabled)
    # ------------------------------------------------------------------

    github_client_id: str = ""
    github_client_secret: str = ""
    github_scope: str = "read:user user:email"
    oauth_timeout_seconds: float = 10.0
    github_api_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    # Off in tests: the limiter keeps its counters in process memory and the
    # whole suite logs in from one client address.
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            OAuth state cookies and tokens encrypted with a derived key will
            not survive a restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Encrypted tokens will not survive restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def github_enabled(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)

    @property
    def effective_token_key(self) -> str:
        """Secret the token codec derives its AES key from."""
        return self.token_encryption_key or self.secret_key


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or pass Settings(...) to
    create_app() directly.
    """
    return Settings()
