"""
Shared Enumerations for the Record Store.

StrEnum values compare equal to their string equivalents, so callers can
match on plain strings (``result.error_code == "file_does_not_exist"``).
"""

from __future__ import annotations
from enum import StrEnum


class StoreErrorCode(StrEnum):
    """Exhaustive classification of storage failures.

    Carried by every ``StorageError`` and by failed ``StoreResult``
    envelopes so callers can branch without inspecting messages.
    """

    DIRECTORY_NOT_FOUND = "directory_not_found"
    FILE_DOES_NOT_EXIST = "file_does_not_exist"
    FILESYSTEM_ERROR = "filesystem_error"
    QUERY_FAILED = "query_failed"
    COMMIT_FAILED = "commit_failed"
    STORE_UNAVAILABLE = "store_unavailable"
    UNKNOWN_RECORD_TYPE = "unknown_record_type"
    UNKNOWN_ATTRIBUTE = "unknown_attribute"
    INVALID_QUERY_VALUE = "invalid_query_value"


class ColumnType(StrEnum):
    """SQLite storage class chosen for a record attribute.

    ``JSON`` columns are declared ``TEXT`` and hold a JSON document.
    """

    INTEGER = "INTEGER"
    REAL = "REAL"
    TEXT = "TEXT"
    BLOB = "BLOB"
    JSON = "JSON"

    @property
    def sql_type(self) -> str:
        return "TEXT" if self is ColumnType.JSON else self.value


class ContextKind(StrEnum):
    """Which execution surface a context belongs to."""

    PRIMARY = "PRIMARY"
    BACKGROUND = "BACKGROUND"
