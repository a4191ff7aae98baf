"""
recordstore: a persistence-access facade over a local SQLite store.

Typical wiring::

    from recordstore import Record, RecordSchema, create_store

    class Vehicle(Record):
        registration: str

    VEHICLE = RecordSchema(Vehicle, indexes=("registration",))
    store = create_store(schemas=[VEHICLE])
    repo = store["repository"]
    repo.exists(VEHICLE, "registration", "AB-123")
"""

from recordstore.bootstrap import StoreContainer, create_store
from recordstore.config import StoreConfig, get_config
from recordstore.context import ExecutionContext
from recordstore.database import StoreManager
from recordstore.errors import (
    CommitError,
    DirectoryNotFoundError,
    FileDoesNotExistError,
    FileRemovalError,
    InvalidQueryValueError,
    QueryError,
    StorageError,
    StoreFileError,
    StoreLoadError,
    UnknownAttributeError,
    UnknownRecordTypeError,
)
from recordstore.models import ContextKind, Record, StoreErrorCode, StoreResult
from recordstore.query import Equals, FetchRequest
from recordstore.repositories import RecordRepository
from recordstore.schema import Attribute, RecordSchema, SchemaRegistry

__version__ = "1.0.0"

__all__ = [
    "Attribute",
    "CommitError",
    "ContextKind",
    "DirectoryNotFoundError",
    "Equals",
    "ExecutionContext",
    "FetchRequest",
    "FileDoesNotExistError",
    "FileRemovalError",
    "InvalidQueryValueError",
    "QueryError",
    "Record",
    "RecordRepository",
    "RecordSchema",
    "SchemaRegistry",
    "StorageError",
    "StoreConfig",
    "StoreContainer",
    "StoreErrorCode",
    "StoreFileError",
    "StoreLoadError",
    "StoreManager",
    "StoreResult",
    "UnknownAttributeError",
    "UnknownRecordTypeError",
    "create_store",
    "get_config",
]
