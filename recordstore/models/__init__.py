"""
Data Models Package.

Re-exports the record base class, result envelope and enumerations:
    from recordstore.models import Record, StoreResult, StoreErrorCode
"""

from __future__ import annotations

from recordstore.models.enums import ColumnType, ContextKind, StoreErrorCode
from recordstore.models.record import Record
from recordstore.models.result_models import StoreResult

__all__ = [
    "ColumnType",
    "ContextKind",
    "Record",
    "StoreErrorCode",
    "StoreResult",
]
