"""
Store Result Envelope.

Pydantic model returned by operations that report failure as data rather
than by raising (store-file deletion, bulk delete).
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from recordstore.models.enums import StoreErrorCode

T = TypeVar("T")

__all__ = ["StoreResult"]


class StoreResult(BaseModel, Generic[T]):
    """
    Standard return envelope for store operations.

    ``success`` is ``True`` exactly when ``error_code`` is ``None``.
    ``data`` carries the payload on success (``None`` for void
    operations).
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[StoreErrorCode] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "StoreResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error_code: StoreErrorCode, error: str) -> "StoreResult[T]":
        return cls(success=False, error=error, error_code=error_code)
