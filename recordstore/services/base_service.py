"""
Base Service Class.

Store services receive their logger through ``__init__`` and report
expected filesystem failures as :class:`~recordstore.models.StoreResult`
envelopes instead of raising.
"""

from __future__ import annotations

from typing import Any

from recordstore.errors import StorageError
from recordstore.logger import StructuredLogger
from recordstore.models.result_models import StoreResult


class BaseService:
    """Base class for all store services. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    @staticmethod
    def _failure(error: StorageError) -> StoreResult[Any]:
        """Wrap *error* in a failed result carrying its code and message."""
        return StoreResult.fail(error.code, error.message)
