"""
Store Configuration.

Pydantic Settings model for the record store.
All configuration is loaded from environment variables and .env files.
Inject a StoreConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class StoreConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Store location ---
    APP_NAME: str = Field(default="VHIRegister", min_length=1)
    STORE_DIRECTORY_OVERRIDE: str = ""

    # --- SQLite ---
    SQLITE_BUSY_TIMEOUT_S: float = Field(default=5.0, ge=0)

    # --- Logging ---
    LOG_FILE: str = "recordstore.log"  # empty disables the file handler
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_override(self) -> "StoreConfig":
        """Warn when the configured store directory does not exist yet.

        The store is still created there on first open; the warning makes
        a mistyped override visible in the startup log.
        """
        if self.STORE_DIRECTORY_OVERRIDE and not Path(self.STORE_DIRECTORY_OVERRIDE).is_dir():
            logging.getLogger("recordstore.config").warning(
                "STORE_DIRECTORY_OVERRIDE '%s' does not exist; it will be "
                "created when the store is opened.",
                self.STORE_DIRECTORY_OVERRIDE,
            )
        return self

    @property
    def store_filename(self) -> str:
        """Name of the backing SQLite file, ``<APP_NAME>.sqlite``."""
        return f"{self.APP_NAME}.sqlite"

    @property
    def log_level(self) -> int:
        """``LOG_LEVEL`` resolved to a ``logging`` constant (INFO if unknown)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO


# ---------------------------------------------------------------------------
# Module-level cached factory
# ---------------------------------------------------------------------------

_config_instance: Optional[StoreConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> StoreConfig:
    """Return a cached ``StoreConfig``.

    Uses a check-lock-check pattern so the fast path stays lock-free while
    first initialisation remains thread-safe.  Prefer passing a
    ``StoreConfig`` explicitly in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = StoreConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached instance so the next ``get_config()`` re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None
