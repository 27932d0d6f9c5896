"""
Client configuration.

``AppConfig`` reads the Supabase project, local store location, session
timings and logging settings from the environment and an optional
``.env`` file.  Timings are in seconds.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr, field_validator, model_validator


class AppConfig(BaseSettings):
    """Settings for the session layer and its stores."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # Base URL used for e-mail confirmation and password-reset redirects.
    SITE_URL: str = "http://localhost:5173"

    # --- Local store ---
    LOCAL_DB_PATH: str = "techcare_local.db"

    # --- Session reconciliation ---
    PROFILE_FETCH_TIMEOUT_S: float = 12.0
    PROFILE_FRESHNESS_WINDOW_S: float = 10.0
    INIT_SOFT_DEADLINE_S: float = 5.0
    PROFILE_CACHE_MAX_AGE_DAYS: int = 7

    # Keys written by the auth client start with this prefix; logout wipes them.
    AUTH_STORAGE_PREFIX: str = "sb-"
    LEGACY_CACHE_KEYS: list[str] = Field(
        default_factory=lambda: ["user_profile", "techcare_user"],
    )

    # --- Validation ---
    MIN_PASSWORD_LENGTH: int = 6

    # --- Logging ---
    LOG_FILE: str = "techcare.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator(
        "PROFILE_FETCH_TIMEOUT_S",
        "PROFILE_FRESHNESS_WINDOW_S",
        "INIT_SOFT_DEADLINE_S",
    )
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("SITE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _report_offline(self) -> "AppConfig":
        """Log when the client will start without a Supabase project."""
        log = logging.getLogger("techcare.config")
        if not Path(".env").exists():
            log.info("No .env file; using environment variables and defaults.")
        if not (self.SUPABASE_URL and self.SUPABASE_ANON_KEY.get_secret_value()):
            log.warning(
                "Supabase URL or anon key not set; the client starts offline "
                "and can only paint cached profiles."
            )
        return self

    @property
    def password_reset_url(self) -> str:
        """Redirect target embedded in password-reset e-mails."""
        return f"{self.SITE_URL}/reset-password"

    def dashboard_url(self, path: str) -> str:
        """Absolute URL for an in-app *path* (sign-up confirmation links)."""
        return f"{self.SITE_URL}{path}"


_config: Optional[AppConfig] = None
_config_lock = threading.Lock()


def get_config() -> AppConfig:
    """Process-wide ``AppConfig``, built on first use.

    Services receive their config through the constructor; this accessor
    is for the entry point and the logger defaults.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = AppConfig()
    return _config


def reset_config() -> None:
    """Forget the cached ``AppConfig`` so the next call re-reads the environment."""
    global _config
    with _config_lock:
        _config = None
