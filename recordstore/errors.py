"""
Storage Error Hierarchy.

Every failure raised by the store derives from :class:`StorageError` and
carries a :class:`~recordstore.models.enums.StoreErrorCode`.  Query
failures are caught and logged by the facade; commit failures and
programming errors (unknown record type, unknown attribute, badly typed
identifier) propagate to the caller.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from recordstore.models.enums import StoreErrorCode

__all__ = [
    "CommitError",
    "DirectoryNotFoundError",
    "FileDoesNotExistError",
    "FileRemovalError",
    "InvalidQueryValueError",
    "QueryError",
    "StorageError",
    "StoreFileError",
    "StoreLoadError",
    "UnknownAttributeError",
    "UnknownRecordTypeError",
]


class StorageError(Exception):
    """Base class for all record store failures."""

    code: StoreErrorCode = StoreErrorCode.STORE_UNAVAILABLE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StoreLoadError(StorageError):
    """The persistent store could not be opened or its schema created."""

    code = StoreErrorCode.STORE_UNAVAILABLE


class QueryError(StorageError):
    """A fetch, count or delete statement failed to execute."""

    code = StoreErrorCode.QUERY_FAILED

    def __init__(self, message: str, entity: Optional[str] = None) -> None:
        super().__init__(message)
        self.entity = entity


class CommitError(StorageError):
    """Saving a context failed; its pending changes were rolled back."""

    code = StoreErrorCode.COMMIT_FAILED

    def __init__(self, message: str, context_name: str) -> None:
        super().__init__(message)
        self.context_name = context_name


class UnknownRecordTypeError(StorageError, LookupError):
    """The record schema is not registered with the store."""

    code = StoreErrorCode.UNKNOWN_RECORD_TYPE


class UnknownAttributeError(StorageError, LookupError):
    """The attribute name is not a field of the record type."""

    code = StoreErrorCode.UNKNOWN_ATTRIBUTE

    def __init__(self, entity: str, attribute: str) -> None:
        super().__init__(f"{entity} has no attribute {attribute!r}.")
        self.entity = entity
        self.attribute = attribute


class InvalidQueryValueError(StorageError, ValueError):
    """The query value does not validate against the attribute's type."""

    code = StoreErrorCode.INVALID_QUERY_VALUE


# ---------------------------------------------------------------------------
# Store file errors
# ---------------------------------------------------------------------------

class StoreFileError(StorageError):
    """Base class for store-file deletion failures."""

    code = StoreErrorCode.FILESYSTEM_ERROR

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class DirectoryNotFoundError(StoreFileError):
    code = StoreErrorCode.DIRECTORY_NOT_FOUND

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__("Application support directory not found.", path)


class FileDoesNotExistError(StoreFileError):
    code = StoreErrorCode.FILE_DOES_NOT_EXIST

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__("SQLite file does not exist.", path)


class FileRemovalError(StoreFileError):
    """The OS refused to remove the store file."""

    code = StoreErrorCode.FILESYSTEM_ERROR
