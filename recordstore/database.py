"""
Persistent Store Manager.

Owns the connection layer for the local record store:

- **Primary context**: the foreground unit of work every facade call
  uses by default.  Its connection is shared across threads and guarded
  by :pyattr:`StoreManager.write_lock`.
- **Background contexts**: created on demand, each with its own
  connection and worker thread (see :mod:`recordstore.context`).

The store file is opened in WAL journal mode so background readers never
block on the primary context and vice versa.  Data access goes through
:class:`~recordstore.repositories.RecordRepository`; this module holds no
query logic.

Usage (dependency injection at application start)::

    from recordstore.database import StoreManager
    from recordstore.logger import StructuredLogger

    manager = StoreManager(
        store_path=support_dir / "VHIRegister.sqlite",
        schemas=[VEHICLE, OWNER],
        logger=StructuredLogger(name="recordstore.database"),
    )
    # Inject `manager` into repositories that need it.
    ...
    manager.close()
"""

from __future__ import annotations

import itertools
import sqlite3
import threading
from collections.abc import Iterable
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Optional, TypeVar

from recordstore.context import ExecutionContext
from recordstore.errors import StorageError, StoreLoadError
from recordstore.logger import StructuredLogger
from recordstore.models.enums import ContextKind
from recordstore.models.record import Record
from recordstore.schema import RecordSchema, SchemaRegistry, initialize_schema

T = TypeVar("T")

_DEFAULT_BUSY_TIMEOUT_S: float = 5.0


class StoreManager:
    """Opens the persistent store and hands out execution contexts.

    Fully configured at construction time; there is no lazy first-access
    initialisation.  A failure to open the store raises
    :class:`~recordstore.errors.StoreLoadError`.

    Parameters
    ----------
    store_path:
        Filesystem path of the SQLite store file.  The parent directory
        is created if missing.  In-memory databases are not supported
        because background contexts open their own connections.
    schemas:
        The record types this store serves.  Tables are created for each.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    busy_timeout_s:
        How long a connection waits on a locked database before failing.
    """

    def __init__(
        self,
        store_path: Path,
        schemas: Iterable[RecordSchema[Record]],
        logger: StructuredLogger,
        busy_timeout_s: float = _DEFAULT_BUSY_TIMEOUT_S,
    ) -> None:
        if str(store_path) == ":memory:":
            raise StoreLoadError("The record store requires a file-backed database.")
        self._logger: StructuredLogger = logger
        self._store_path: Path = Path(store_path)
        self._busy_timeout_s: float = busy_timeout_s
        self._write_lock: threading.RLock = threading.RLock()
        self._registry: SchemaRegistry = SchemaRegistry(schemas)
        self._background: set[ExecutionContext] = set()
        self._background_lock: threading.Lock = threading.Lock()
        self._background_seq = itertools.count(1)
        self._closed: bool = False

        conn = self._connect_sqlite(self._store_path)
        try:
            initialize_schema(conn, self._registry, self._logger)
        except sqlite3.Error as exc:
            conn.close()
            raise StoreLoadError(
                f"Could not create record tables in '{self._store_path}': {exc}"
            ) from exc

        self._primary: ExecutionContext = ExecutionContext(
            conn,
            self._registry,
            self._write_lock,
            self._logger,
            name="primary",
            kind=ContextKind.PRIMARY,
        )

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def schemas(self) -> SchemaRegistry:
        return self._registry

    @property
    def primary_context(self) -> ExecutionContext:
        """Return the foreground context.

        Raises
        ------
        StorageError
            If the store has been closed.
        """
        if self._closed:
            raise StorageError("The record store is closed.")
        return self._primary

    @property
    def write_lock(self) -> threading.RLock:
        """Return the lock guarding the primary context's connection.

        Code that needs several primary-context calls to happen without
        interleaving from other threads should hold it::

            with manager.write_lock:
                ctx = manager.primary_context
                ctx.insert(VEHICLE, vehicle)
                ctx.save()
        """
        return self._write_lock

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def background_context_count(self) -> int:
        """Number of background contexts created and not yet closed."""
        with self._background_lock:
            return len(self._background)

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def new_background_context(self, automatically_merges_changes: bool = True) -> ExecutionContext:
        """Create an independent context with its own connection and worker thread.

        The caller owns the returned context and must :meth:`close
        <ExecutionContext.close>` it; contexts still open when the
        manager closes are closed with it.
        """
        if self._closed:
            raise StorageError("The record store is closed.")
        name = f"background-{next(self._background_seq)}"
        context = ExecutionContext(
            self._connect_sqlite(self._store_path),
            self._registry,
            threading.RLock(),
            self._logger,
            name=name,
            kind=ContextKind.BACKGROUND,
            automatically_merges_changes=automatically_merges_changes,
            on_close=self._forget_background,
        )
        with self._background_lock:
            self._background.add(context)
        self._logger.debug("Created %s context.", name)
        return context

    def perform_background_task(self, block: Callable[[ExecutionContext], T]) -> "Future[T]":
        """Run ``block(context)`` on a fresh background context, then close it.

        The returned future resolves with the block's return value (or
        its exception) after the context has been closed.
        """
        context = self.new_background_context()
        result: Future[T] = Future()

        def _task(ctx: ExecutionContext) -> T:
            try:
                return block(ctx)
            finally:
                ctx.close()

        def _relay(done: "Future[T]") -> None:
            exc = done.exception()
            if exc is not None:
                result.set_exception(exc)
            else:
                result.set_result(done.result())

        context.perform(_task).add_done_callback(_relay)
        return result

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close every background context, then the primary context.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._closed:
                return
            self._closed = True

        with self._background_lock:
            outstanding = list(self._background)
        for context in outstanding:
            context.close()

        self._primary.close()
        self._logger.info("Record store at %s closed.", self._store_path)

    def __enter__(self) -> "StoreManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _forget_background(self, context: ExecutionContext) -> None:
        with self._background_lock:
            self._background.discard(context)

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open (or create) the store file.

        Connections run in autocommit mode; execution contexts issue
        ``BEGIN`` themselves so that the pending-changes flag and the
        SQLite transaction stay in step.

        Raises
        ------
        StoreLoadError
            If the OS denies access to the file or SQLite cannot open it.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(path),
                timeout=self._busy_timeout_s,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys = ON;")
            self._logger.debug("SQLite store opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the record store at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise StoreLoadError(msg) from exc
        except (OSError, sqlite3.Error) as exc:
            self._logger.error("Failed to open record store at %s: %s", path, exc)
            raise StoreLoadError(f"Cannot open the record store at '{path}': {exc}") from exc
