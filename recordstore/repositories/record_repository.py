"""
Record Repository.

The record store facade: uniform fetch, existence-check and delete
operations over any registered record type, plus whole-store teardown.

Error contract
--------------
- Read failures (``fetch_all``, ``fetch_all_async``, ``fetch_one``,
  ``exists``) are logged and degrade to ``None`` / ``False``.
- Save failures raise :class:`~recordstore.errors.CommitError` after the
  primary context has been rolled back.
- ``delete_all`` and ``delete_store_file`` report failure in a
  :class:`~recordstore.models.StoreResult`.
- Programming errors (unregistered record type, unknown attribute,
  identifier of the wrong type) always raise.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Callable, Optional, TypeVar, Union

from recordstore.context import ExecutionContext
from recordstore.database import StoreManager
from recordstore.errors import CommitError, QueryError, StorageError
from recordstore.logger import StructuredLogger
from recordstore.models.record import Record
from recordstore.models.result_models import StoreResult
from recordstore.query import FetchRequest
from recordstore.repositories.base_repository import BaseRepository
from recordstore.schema import Attribute, RecordSchema
from recordstore.services.store_file_service import StoreFileService

R = TypeVar("R", bound=Record)

AttributeRef = Union[str, Attribute]


class RecordRepository(BaseRepository):
    """Data access facade for every record type registered with the store.

    Parameters
    ----------
    db:
        The opened store.
    store_files:
        Service that removes the store file from disk.
    logger:
        Structured logger instance.
    """

    def __init__(
        self,
        db: StoreManager,
        store_files: StoreFileService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(db, logger)
        self._store_files = store_files

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch_all(self, schema: RecordSchema[R]) -> Optional[list[R]]:
        """Return every record of *schema* from the primary context.

        Records come back in store order.  An empty store yields ``[]``;
        ``None`` means the query failed.
        """
        request = FetchRequest(self._db.schemas.require(schema))
        return self._execute_read(
            lambda: self.primary_context.fetch(request),
            lambda: None,
            operation_name=f"fetch_all ({schema.entity})",
        )

    def fetch_all_async(
        self,
        schema: RecordSchema[R],
        completion: Optional[Callable[[Optional[list[R]]], None]] = None,
    ) -> "Future[Optional[list[R]]]":
        """Fetch every record of *schema* on a new background context.

        Returns immediately.  ``completion`` (if given) is called on the
        background worker with the same value the returned future
        resolves to, before the future resolves.  The context reads the
        latest committed state and is closed afterwards.
        """
        request = FetchRequest(self._db.schemas.require(schema))
        operation_name = f"fetch_all_async ({schema.entity})"

        def _block(ctx: ExecutionContext) -> Optional[list[R]]:
            records = self._execute_read(
                lambda: ctx.fetch(request),
                lambda: None,
                operation_name=operation_name,
            )
            if completion is not None:
                try:
                    completion(records)
                except Exception:
                    self._logger.error(
                        "Completion handler for %s raised.", operation_name, exc_info=True,
                    )
                    raise
            return records

        return self._db.perform_background_task(_block)

    def fetch_one(
        self,
        schema: RecordSchema[R],
        attribute: AttributeRef,
        identifier: object,
    ) -> Optional[R]:
        """Return the first record whose *attribute* equals *identifier*.

        Raises
        ------
        UnknownAttributeError
            If *attribute* is not a field of the record type.
        InvalidQueryValueError
            If *identifier* does not validate against the field's type.
        """
        request = self._equality_request(schema, attribute, identifier)
        return self._execute_read(
            lambda: self.primary_context.fetch_first(request),
            lambda: None,
            operation_name=f"fetch_one ({schema.entity})",
        )

    def exists(
        self,
        schema: RecordSchema[R],
        attribute: AttributeRef,
        identifier: object,
        context: Optional[ExecutionContext] = None,
    ) -> bool:
        """``True`` if at least one record has *attribute* equal to *identifier*.

        Counts on *context* (primary by default).  Pass a background
        context only from inside one of its ``perform`` blocks.  A
        failed count returns ``False``.
        """
        request = self._equality_request(schema, attribute, identifier)
        ctx = context if context is not None else self.primary_context
        return self._execute_read(
            lambda: ctx.count(request) > 0,
            lambda: False,
            operation_name=f"exists ({schema.entity})",
        )

    # ------------------------------------------------------------------
    # Insert / delete
    # ------------------------------------------------------------------

    def insert(self, schema: RecordSchema[R], record: R, save: bool = True) -> R:
        """Insert *record* on the primary context and return it with its ``id``.

        With ``save=False`` the insert stays pending until
        :meth:`save_context`.

        Raises
        ------
        QueryError
            If the row violates a constraint.  The failed insert is undone;
            other pending changes are kept.
        CommitError
            If ``save`` is set and the commit fails.
        """
        self._db.schemas.require(schema)
        with self._db.write_lock:
            ctx = self.primary_context
            created = ctx.insert(schema, record)
            if save:
                ctx.save()
        return created

    def delete(self, schema: RecordSchema[R], attribute: AttributeRef, identifier: object) -> bool:
        """Delete the first record whose *attribute* equals *identifier*, then save.

        Returns ``True`` if a record was found, deleted and saved, and
        ``False`` if nothing matched (the store is left unchanged).

        Raises
        ------
        QueryError
            If the delete statement fails.  Nothing is deleted and other
            pending changes are kept.
        CommitError
            If the save fails; the primary context is rolled back.
        """
        with self._db.write_lock:
            record = self.fetch_one(schema, attribute, identifier)
            if record is None:
                return False

            ctx = self.primary_context
            ctx.delete(schema, record)
            ctx.save()

        self._logger.info(
            "Deleted %s (id=%s) matched on %s.",
            schema.entity,
            record.id,
            schema.resolve(attribute).name,
        )
        return True

    def delete_all(
        self,
        schema: RecordSchema[R],
        completion: Optional[Callable[[Optional[StorageError]], None]] = None,
    ) -> StoreResult[int]:
        """Remove every record of *schema* without loading them, then save.

        Other record types are untouched.  ``completion`` (if given) is
        called with ``None`` on success or the error on failure.

        Returns
        -------
        StoreResult
            On success ``data`` is the number of records removed.
        """
        self._db.schemas.require(schema)
        error: Optional[StorageError] = None
        removed = 0

        with self._db.write_lock:
            ctx = self.primary_context
            try:
                removed = ctx.execute_batch_delete(FetchRequest(schema))
                ctx.save()
            except (QueryError, CommitError) as exc:
                error = exc

        if completion is not None:
            completion(error)

        if error is not None:
            self._logger.error("Failed to remove %s contents: %s", schema.entity, error)
            return StoreResult.fail(error.code, error.message)

        self._logger.info("Removed %d %s record(s).", removed, schema.entity)
        return StoreResult.ok(removed)

    # ------------------------------------------------------------------
    # Store-level operations
    # ------------------------------------------------------------------

    def save_context(self) -> None:
        """Commit pending primary-context changes, if any.

        Raises
        ------
        CommitError
            If the commit fails; pending changes are rolled back.
        """
        self.primary_context.save()

    def delete_store_file(self) -> StoreResult[None]:
        """Delete the store's SQLite file from the support directory.

        The live store is not closed; close the ``StoreManager`` before
        calling this.
        """
        if self._db.is_open and self._store_files.store_file_path() == self._db.store_path:
            self._logger.warning(
                "Deleting the store file while the store at %s is still open.",
                self._db.store_path,
            )
        return self._store_files.delete_store_file()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _equality_request(
        self,
        schema: RecordSchema[R],
        attribute: AttributeRef,
        identifier: object,
    ) -> FetchRequest[R]:
        schema = self._db.schemas.require(schema)
        return FetchRequest(schema, schema.resolve(attribute).eq(identifier))
