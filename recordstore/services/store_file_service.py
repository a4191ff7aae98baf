"""
Store File Service.

Deletes the record store's backing file from the application support
directory.  Used for "reset all local data" flows.

The service only removes files.  It does not close the live store, so
callers must close their :class:`~recordstore.database.StoreManager`
first; deleting a file that is still open leaves the open handle
pointing at unlinked data (POSIX) or fails with a sharing violation
(Windows).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from recordstore.errors import (
    DirectoryNotFoundError,
    FileDoesNotExistError,
    FileRemovalError,
    StoreFileError,
)
from recordstore.logger import StructuredLogger
from recordstore.models.result_models import StoreResult
from recordstore.services.base_service import BaseService
from recordstore.services.support_directory import SupportDirectoryService

# SQLite WAL-mode companions of the store file
_SIDECAR_SUFFIXES: tuple[str, ...] = ("-wal", "-shm")


class StoreFileService(BaseService):
    """Removes the persistent store file.

    Parameters
    ----------
    support_directory:
        Resolves the directory and file name of the store.
    logger:
        Structured logger instance.
    """

    def __init__(
        self,
        support_directory: SupportDirectoryService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._support_directory = support_directory

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def delete_store_file(self) -> StoreResult[None]:
        """Remove ``<APP_NAME>.sqlite`` from the support directory.

        Returns
        -------
        StoreResult
            ``success=True`` once the file is gone.  On failure
            ``error_code`` is ``DIRECTORY_NOT_FOUND`` (no support
            directory), ``FILE_DOES_NOT_EXIST`` (nothing to delete) or
            ``FILESYSTEM_ERROR`` (the OS refused the removal).
        """
        try:
            path = self._locate_store_file()
            self._remove(path)
        except StoreFileError as exc:
            return self._failure(exc)

        self._logger.info("SQLite file removed successfully: %s", path)
        return StoreResult.ok()

    def store_file_path(self) -> Optional[Path]:
        """Path the store file is expected at, or ``None`` if undeterminable."""
        return self._support_directory.store_file_path()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _locate_store_file(self) -> Path:
        directory = self._support_directory.resolve()
        if directory is None or not directory.is_dir():
            self._logger.warning("Store file not deleted: support directory %s not found.", directory)
            raise DirectoryNotFoundError(directory)

        path = self._support_directory.store_file_path()
        if path is None or not path.is_file():
            self._logger.info("Store file not deleted: %s does not exist.", path)
            raise FileDoesNotExistError(path)
        return path

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError as exc:
            # Removed concurrently between the check and the unlink
            raise FileDoesNotExistError(path) from exc
        except OSError as exc:
            self._logger.error("Error while removing SQLite file %s: %s", path, exc)
            raise FileRemovalError(f"Could not remove {path}: {exc}", path) from exc

        for suffix in _SIDECAR_SUFFIXES:
            sidecar = path.with_name(path.name + suffix)
            try:
                sidecar.unlink(missing_ok=True)
            except OSError as exc:
                self._logger.warning("Could not remove %s: %s", sidecar, exc)
