"""
Application Support Directory Resolution.

Locates the per-user directory that holds the record store file.

Resolution cascade:
    1. ``STORE_DIRECTORY_OVERRIDE`` setting (manual override).
    2. macOS: ``~/Library/Application Support``.
    3. Windows: ``%APPDATA%``.
    4. Other platforms: ``$XDG_DATA_HOME``, then ``~/.local/share``.
    5. ``None`` when no candidate can be determined (e.g. no home
       directory).
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from recordstore.config import StoreConfig
from recordstore.logger import StructuredLogger
from recordstore.services.base_service import BaseService


class SupportDirectoryService(BaseService):
    """Resolve the application-support directory and the store file inside it.

    Parameters
    ----------
    config:
        Store configuration (application name and directory override).
    logger:
        Structured logger instance.
    platform:
        ``sys.platform`` value to resolve for.  Defaults to the running
        platform.
    """

    def __init__(
        self,
        config: StoreConfig,
        logger: StructuredLogger,
        platform: Optional[str] = None,
    ) -> None:
        super().__init__(logger)
        self._config = config
        self._platform = platform or sys.platform

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self) -> Optional[Path]:
        """Return the support directory, or ``None`` if it cannot be determined.

        The directory is not required to exist; see :meth:`ensure_directory`.
        """
        directory = self._try_config_override() or self._try_platform_default()
        if directory is None:
            self._logger.warning("Application support directory could not be determined.")
        return directory

    def store_file_path(self) -> Optional[Path]:
        """Return ``<support dir>/<APP_NAME>.sqlite``, or ``None``."""
        directory = self.resolve()
        return directory / self._config.store_filename if directory is not None else None

    def ensure_directory(self) -> Path:
        """Resolve the support directory and create it if missing.

        Raises
        ------
        FileNotFoundError
            If no support directory can be determined on this machine.
        """
        directory = self.resolve()
        if directory is None:
            raise FileNotFoundError(
                "Could not determine the application support directory. "
                "Set STORE_DIRECTORY_OVERRIDE to the folder that should "
                "hold the record store."
            )
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    # ------------------------------------------------------------------
    # Discovery strategies
    # ------------------------------------------------------------------

    def _try_config_override(self) -> Optional[Path]:
        override = self._config.STORE_DIRECTORY_OVERRIDE.strip()
        if not override:
            return None
        self._logger.debug("Using STORE_DIRECTORY_OVERRIDE: %s", override)
        return Path(override).expanduser()

    def _try_platform_default(self) -> Optional[Path]:
        if self._platform.startswith("win"):
            appdata = os.environ.get("APPDATA")
            return Path(appdata) if appdata else None

        home = self._home()
        if self._platform == "darwin":
            return home / "Library" / "Application Support" if home else None

        xdg = os.environ.get("XDG_DATA_HOME")
        if xdg and Path(xdg).is_absolute():
            return Path(xdg)
        return home / ".local" / "share" if home else None

    @staticmethod
    def _home() -> Optional[Path]:
        try:
            return Path.home()
        except (RuntimeError, KeyError):
            # No HOME and no passwd entry for the current user
            return None
