"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for KeyShelf happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. vault_master_key -> VAULT_MASTER_KEY). Type coercion and validation
      are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used for the DEBUG-conditional handling of
      SECRET_KEY and VAULT_MASTER_KEY: dev mode generates a key with a warning,
      production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens it.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY or
       VAULT_MASTER_KEY is a hard startup failure. A random VAULT_MASTER_KEY
       in production would make every stored secret unreadable after restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or vault/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from cryptography.fernet import Fernet
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("keyshelf.config")

_ROOT = Path(__file__).resolve().parent.parent


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

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    auth_db_url: str = f"sqlite:///{_ROOT / 'auth' / 'keyshelf_auth.db'}"
    vault_db_url: str = f"sqlite:///{_ROOT / 'vault' / 'keyshelf_vault.db'}"
    # The secret store keeps ciphertext apart from the application records.
    secret_store_db_url: str = f"sqlite:///{_ROOT / 'vault' / 'keyshelf_secrets.db'}"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"
    self_registration_enabled: bool = True
    min_password_length: int = 6

    # ------------------------------------------------------------------
    # Vault
    # ------------------------------------------------------------------

    # urlsafe base64 Fernet key (Fernet.generate_key()).
    vault_master_key: str = ""
    key_prefix_length: int = 7
    reveal_display_seconds: int = 30

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
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
    def validate_vault_master_key(self) -> "Settings":
        """Enforce the VAULT_MASTER_KEY policy [M7].

        Dev mode: generate a throwaway Fernet key. Secrets stored with it
        cannot be revealed after a restart -- acceptable for local dev only.
        Production mode: the key is mandatory and must be a valid Fernet key.
        """
        if not self.vault_master_key:
            if self.debug:
                self.vault_master_key = Fernet.generate_key().decode("ascii")
                logger.warning(
                    "WARNING: Using auto-generated VAULT_MASTER_KEY. Stored secrets will be unreadable after restart."
                )
            else:
                raise ValueError(
                    "VAULT_MASTER_KEY is required in production mode. "
                    "Generate one with `python main.py generate-master-key`."
                )
        try:
            Fernet(self.vault_master_key.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise ValueError("VAULT_MASTER_KEY must be a 32-byte urlsafe base64 Fernet key.") from exc
        return self

    @model_validator(mode="after")
    def validate_display_bounds(self) -> "Settings":
        """Reject a zero or negative prefix length or reveal window."""
        if self.key_prefix_length < 1:
            raise ValueError("KEY_PREFIX_LENGTH must be at least 1.")
        if self.reveal_display_seconds < 1:
            raise ValueError("REVEAL_DISPLAY_SECONDS must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
