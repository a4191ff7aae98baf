"""
Record Store Composition Root.

Builds the whole dependency graph via constructor injection: config,
loggers, support-directory resolution, the store manager and the
repository.  Nothing is created lazily on first access and there are no
module-level store handles; the application owns the returned container
and closes it on shutdown.

Usage::

    from recordstore.bootstrap import create_store

    store = create_store(schemas=[VEHICLE, OWNER])
    try:
        vehicles = store["repository"].fetch_all(VEHICLE)
    finally:
        store["manager"].close()
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional, TypedDict

from recordstore.config import StoreConfig, get_config
from recordstore.database import StoreManager
from recordstore.logger import StructuredLogger
from recordstore.models.record import Record
from recordstore.repositories.record_repository import RecordRepository
from recordstore.schema import RecordSchema
from recordstore.services.store_file_service import StoreFileService
from recordstore.services.support_directory import SupportDirectoryService


class StoreContainer(TypedDict):
    """Typed container for the wired record store."""

    config: StoreConfig
    support_directory: SupportDirectoryService
    store_files: StoreFileService
    manager: StoreManager
    repository: RecordRepository


def create_store(
    schemas: Iterable[RecordSchema[Record]],
    config: Optional[StoreConfig] = None,
    log_file: Optional[str] = None,
) -> StoreContainer:
    """Open the record store for *schemas* and wire its collaborators.

    The store file is ``<support dir>/<APP_NAME>.sqlite``; the support
    directory is created if it does not exist.

    Parameters
    ----------
    schemas:
        Record types the store serves.
    config:
        Store configuration.  Defaults to :func:`get_config`.
    log_file:
        Overrides ``StoreConfig.LOG_FILE`` for every logger created here
        (``""`` disables file logging).
        Every other logging setting comes from *config*.

    Raises
    ------
    FileNotFoundError
        If no support directory can be determined.
    StoreLoadError
        If the store file cannot be opened or initialised.
    """
    config = config or get_config()

    def _logger(name: str) -> StructuredLogger:
        return StructuredLogger(name=name, log_file=log_file, config=config)

    logger = _logger("recordstore")
    logger.info("Opening record store for %s...", config.APP_NAME)

    support_directory = SupportDirectoryService(
        config=config,
        logger=_logger("recordstore.support_directory"),
    )
    store_path = support_directory.ensure_directory() / config.store_filename

    manager = StoreManager(
        store_path=store_path,
        schemas=schemas,
        logger=_logger("recordstore.database"),
        busy_timeout_s=config.SQLITE_BUSY_TIMEOUT_S,
    )
    store_files = StoreFileService(
        support_directory=support_directory,
        logger=_logger("recordstore.store_files"),
    )
    repository = RecordRepository(
        db=manager,
        store_files=store_files,
        logger=_logger("recordstore.repository"),
    )

    logger.info("Record store ready at %s.", store_path)
    return StoreContainer(
        config=config,
        support_directory=support_directory,
        store_files=store_files,
        manager=manager,
        repository=repository,
    )
