"""
Execution Contexts.

An :class:`ExecutionContext` is a unit of work over one SQLite connection.
Mutations (insert, update, delete, batch delete) open a transaction and
set the pending-changes flag; :meth:`ExecutionContext.save` commits them
and clears the flag.  Nothing a context deletes is durable before save.
A mutation whose statement fails is undone on the spot: the flag, the
transaction and earlier pending changes are left as they were.

Two kinds exist:

- **Primary**: the application's foreground context, owned by
  :class:`~recordstore.database.StoreManager` and guarded by its write
  lock.  ``perform`` runs blocks inline.
- **Background**: created on demand.  Each owns its own connection and a
  single worker thread; every ``perform`` block runs on that thread, so
  the connection is only ever touched from one place.

Merging
-------
The store runs in WAL mode, so a context reading outside a transaction
always observes the latest committed state.  A context created with
``automatically_merges_changes=False`` instead pins a read snapshot
(``BEGIN`` followed by a read) and keeps seeing it until
:meth:`ExecutionContext.refresh`, :meth:`ExecutionContext.save` or
:meth:`ExecutionContext.rollback`.  Writing from a pinned snapshot that
has gone stale fails with a :class:`~recordstore.errors.QueryError`.
"""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, TypeVar

from pydantic import ValidationError

from recordstore.errors import CommitError, QueryError, StorageError
from recordstore.logger import StructuredLogger
from recordstore.models.enums import ContextKind
from recordstore.models.record import Record
from recordstore.query import FetchRequest
from recordstore.schema import RecordSchema, SchemaRegistry
from recordstore.utils.string_helpers import quote_identifier

__all__ = ["ExecutionContext"]

R = TypeVar("R", bound=Record)
T = TypeVar("T")

_WRITE_SAVEPOINT: str = "pending_write"


class ExecutionContext:
    """A confined unit of work over the persistent store.

    Parameters
    ----------
    connection:
        Open SQLite connection in autocommit mode (``isolation_level=None``)
        with ``row_factory = sqlite3.Row``.  The context takes ownership
        and closes it in :meth:`close`.
    registry:
        Record types this context may touch.
    lock:
        Lock serialising access to *connection*.
    logger:
        Structured logger instance.
    name:
        Label used in log output and errors.
    kind:
        Primary or background.
    automatically_merges_changes:
        When ``False`` the context reads from a pinned snapshot.
    on_close:
        Called once with this context after it has closed.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        registry: SchemaRegistry,
        lock: threading.RLock,
        logger: StructuredLogger,
        *,
        name: str,
        kind: ContextKind = ContextKind.PRIMARY,
        automatically_merges_changes: bool = True,
        on_close: Optional[Callable[["ExecutionContext"], None]] = None,
    ) -> None:
        self._conn = connection
        self._registry = registry
        self._lock = lock
        self._logger = logger
        self._name = name
        self._kind = kind
        self._merges = automatically_merges_changes
        self._on_close = on_close
        self._has_changes: bool = False
        self._closed: bool = False
        self._executor: Optional[ThreadPoolExecutor] = None
        self._worker_ident: Optional[int] = None

        if kind is ContextKind.BACKGROUND:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

        self._pin_snapshot()

    def __repr__(self) -> str:
        return f"ExecutionContext({self._name}, kind={self._kind}, changes={self._has_changes})"

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> ContextKind:
        return self._kind

    @property
    def is_background(self) -> bool:
        return self._kind is ContextKind.BACKGROUND

    @property
    def automatically_merges_changes(self) -> bool:
        return self._merges

    @property
    def has_changes(self) -> bool:
        """``True`` between the first unsaved mutation and the next save or rollback."""
        return self._has_changes

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def in_transaction(self) -> bool:
        """``True`` while the connection holds an open SQLite transaction."""
        return self._conn.in_transaction

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(self, request: FetchRequest[R]) -> list[R]:
        """Return every record matching *request*, in store order.

        Raises:
            QueryError: If the statement fails or a stored row no longer
                validates against the record model.
        """
        schema = self._registry.require(request.schema)
        sql, params = request.select_sql()

        def _op() -> list[R]:
            rows = self._conn.execute(sql, params).fetchall()
            return [schema.from_row(row) for row in rows]

        return self._run(_op, "fetch", schema)

    def fetch_first(self, request: FetchRequest[R]) -> Optional[R]:
        """Return the first matching record, or ``None``."""
        results = self.fetch(FetchRequest(request.schema, request.predicate, limit=1))
        return results[0] if results else None

    def count(self, request: FetchRequest[R]) -> int:
        """Return the number of records matching *request*."""
        schema = self._registry.require(request.schema)
        sql, params = request.count_sql()

        def _op() -> int:
            row = self._conn.execute(sql, params).fetchone()
            return int(row[0]) if row else 0

        return self._run(_op, "count", schema)

    # ------------------------------------------------------------------
    # Mutations (pending until save)
    # ------------------------------------------------------------------

    def insert(self, schema: RecordSchema[R], record: R) -> R:
        """Insert *record* and return a copy carrying its assigned ``id``.

        An ``id`` already set on *record* is kept.
        """
        schema = self._registry.require(schema)
        row = schema.to_row(record)
        if record.is_persisted:
            row = {"id": record.id, **row}
        table = quote_identifier(schema.table)
        if row:
            columns = ", ".join(quote_identifier(name) for name in row)
            placeholders = ", ".join("?" for _ in row)
            sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"
        params = tuple(row.values())

        def _op() -> R:
            cursor = self._execute_write(sql, params)
            return record.model_copy(update={"id": cursor.lastrowid})

        return self._run(_op, "insert", schema)

    def update(self, schema: RecordSchema[R], record: R) -> bool:
        """Write every attribute of a persisted *record*.

        Returns ``True`` if a row with the record's ``id`` was updated.
        """
        schema = self._registry.require(schema)
        if not record.is_persisted:
            raise ValueError(f"Cannot update an unsaved {schema.entity} (id is None).")
        row = schema.to_row(record)
        if not row:
            return False
        assignments = ", ".join(f"{quote_identifier(name)} = ?" for name in row)
        sql = f"UPDATE {quote_identifier(schema.table)} SET {assignments} WHERE \"id\" = ?"
        params = (*row.values(), record.id)

        def _op() -> bool:
            return self._execute_write(sql, params).rowcount > 0

        return self._run(_op, "update", schema)

    def delete(self, schema: RecordSchema[R], record: R) -> bool:
        """Delete the row behind a persisted *record*.

        Returns ``True`` if a row was removed.
        """
        schema = self._registry.require(schema)
        if not record.is_persisted:
            raise ValueError(f"Cannot delete an unsaved {schema.entity} (id is None).")
        sql = f"DELETE FROM {quote_identifier(schema.table)} WHERE \"id\" = ?"

        def _op() -> bool:
            return self._execute_write(sql, (record.id,)).rowcount > 0

        return self._run(_op, "delete", schema)

    def execute_batch_delete(self, request: FetchRequest[R]) -> int:
        """Delete every row matching *request* in one statement.

        No record is loaded into memory.  Returns the number of rows
        removed.
        """
        schema = self._registry.require(request.schema)
        sql, params = request.delete_sql()

        def _op() -> int:
            return self._execute_write(sql, params).rowcount

        return self._run(_op, "batch_delete", schema)

    # ------------------------------------------------------------------
    # Unit-of-work control
    # ------------------------------------------------------------------

    def save(self) -> bool:
        """Commit pending changes.

        Returns ``False`` when there was nothing to commit.

        Raises:
            CommitError: If the commit fails.  The pending changes are
                rolled back so the context matches the store on disk.
        """
        self._ensure_open()
        with self._lock:
            if not self._has_changes:
                return False
            try:
                self._conn.commit()
            except sqlite3.Error as exc:
                self._logger.error(
                    "Commit failed on %s context; rolling back: %s",
                    self._name,
                    exc,
                )
                self._rollback_connection()
                self._has_changes = False
                self._pin_snapshot()
                raise CommitError(
                    f"Could not save the {self._name} context: {exc}", self._name
                ) from exc
            self._has_changes = False
            self._logger.debug("Saved %s context.", self._name)
            self._pin_snapshot()
            return True

    def rollback(self) -> None:
        """Discard pending changes."""
        self._ensure_open()
        with self._lock:
            self._rollback_connection()
            if self._has_changes:
                self._logger.info("Discarded pending changes on %s context.", self._name)
            self._has_changes = False
            self._pin_snapshot()

    def refresh(self) -> None:
        """Move a snapshot-pinned context to the latest committed state.

        A no-op for merging contexts and for contexts with pending
        changes (save or roll back first).
        """
        self._ensure_open()
        with self._lock:
            if self._merges or self._has_changes:
                return
            self._rollback_connection()
            self._pin_snapshot()

    def perform(self, block: Callable[["ExecutionContext"], T]) -> "Future[T]":
        """Run ``block(self)`` on this context's own thread.

        Background contexts queue the block on their worker thread and
        return immediately.  The primary context runs it inline and
        returns an already-completed future.  Exceptions raised by the
        block are delivered through the future.
        """
        self._ensure_open()
        if self._executor is not None:
            return self._executor.submit(self._perform, block)

        future: Future[T] = Future()
        try:
            future.set_result(self._perform(block))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def close(self) -> None:
        """Roll back anything unsaved and release the connection.

        Safe to call multiple times; subsequent calls are no-ops.  Called
        from the context's own worker thread (e.g. from a completion
        callback) it does not wait for the worker to exit.
        """
        if self._closed:
            return
        if self._executor is not None:
            own_thread = threading.get_ident() == self._worker_ident
            self._executor.shutdown(wait=not own_thread)
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._has_changes:
                self._logger.warning(
                    "Closing %s context with unsaved changes; they are discarded.",
                    self._name,
                )
            try:
                self._rollback_connection()
                self._conn.close()
            except sqlite3.ProgrammingError:
                # Connection was already closed
                pass
            self._has_changes = False
        self._logger.debug("Closed %s context.", self._name)
        if self._on_close is not None:
            self._on_close(self)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _perform(self, block: Callable[["ExecutionContext"], T]) -> T:
        self._worker_ident = threading.get_ident()
        with self._lock:
            return block(self)

    def _run(self, op: Callable[[], T], operation: str, schema: RecordSchema[R]) -> T:
        """Execute *op* under the context lock, translating engine errors."""
        self._ensure_open()
        with self._lock:
            try:
                return op()
            except sqlite3.Error as exc:
                raise QueryError(
                    f"{operation} on {schema.entity} failed in {self._name} context: {exc}",
                    schema.entity,
                ) from exc
            except ValidationError as exc:
                raise QueryError(
                    f"Stored {schema.entity} row does not match its model: {exc}",
                    schema.entity,
                ) from exc

    def _execute_write(self, sql: str, params: tuple[object, ...]) -> sqlite3.Cursor:
        """Run one mutating statement; a failed statement leaves no trace.

        The first write opens the transaction and is rolled back entirely
        if it fails.  Later writes run inside a savepoint so a failure
        discards only that statement and earlier pending changes remain.
        """
        opens_transaction = not self._conn.in_transaction
        self._conn.execute("BEGIN" if opens_transaction else f"SAVEPOINT {_WRITE_SAVEPOINT}")
        try:
            cursor = self._conn.execute(sql, params)
        except sqlite3.Error:
            self._undo_write(opens_transaction)
            raise
        if not opens_transaction:
            self._conn.execute(f"RELEASE {_WRITE_SAVEPOINT}")
        self._has_changes = True
        return cursor

    def _undo_write(self, opened_transaction: bool) -> None:
        if opened_transaction:
            self._conn.rollback()
            self._pin_snapshot()
            return
        try:
            self._conn.execute(f"ROLLBACK TO {_WRITE_SAVEPOINT}")
            self._conn.execute(f"RELEASE {_WRITE_SAVEPOINT}")
        except sqlite3.Error:
            self._logger.error(
                "Could not undo a failed write on %s context; discarding pending changes.",
                self._name,
                exc_info=True,
            )
            self._rollback_connection()
            self._has_changes = False
            self._pin_snapshot()

    def _pin_snapshot(self) -> None:
        if self._merges:
            return
        self._conn.execute("BEGIN")
        self._conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()

    def _rollback_connection(self) -> None:
        if self._conn.in_transaction:
            self._conn.rollback()

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError(f"The {self._name} context is closed.")
