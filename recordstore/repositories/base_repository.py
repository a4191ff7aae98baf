"""
Base Repository.

Provides shared infrastructure for repositories:
- StoreManager reference (primary context, background contexts)
- Logger reference
- Read wrapper that logs query failures and degrades to a default
"""

from __future__ import annotations

from typing import Callable, TypeVar

from recordstore.context import ExecutionContext
from recordstore.database import StoreManager
from recordstore.errors import QueryError
from recordstore.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    def __init__(self, db: StoreManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def primary_context(self) -> ExecutionContext:
        """Returns the store's foreground context."""
        return self._db.primary_context

    def _execute_read(
        self,
        read_op: Callable[[], T],
        default_factory: Callable[[], T],
        *,
        operation_name: str,
    ) -> T:
        """Execute a read, returning ``default_factory()`` if the query fails.

        Only :class:`~recordstore.errors.QueryError` is absorbed; it is
        logged with its traceback.  Anything else (unknown record type,
        closed store) propagates.

        Parameters
        ----------
        read_op:
            Zero-argument callable performing the query.
        default_factory:
            Produces the value returned on query failure.
        operation_name:
            Human-readable label for log messages, e.g.
            ``"fetch_all (Vehicle)"``.
        """
        try:
            return read_op()
        except QueryError as exc:
            self._logger.error(
                "Error while fetching the values for %s: %s",
                operation_name,
                exc,
                exc_info=True,
            )
            return default_factory()
