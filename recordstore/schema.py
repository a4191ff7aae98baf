"""
Record Schemas and Local Table Initialization.

A :class:`RecordSchema` is the tag that names a record type everywhere in
the store.  It is built from a :class:`~recordstore.models.Record`
subclass and derives one :class:`Attribute` per model field, each with
the SQLite column type it is stored in.  Queries refer to attributes
through the schema, so an attribute name that is not a field of the
record type is rejected before any SQL is built.

Column Mapping
~~~~~~~~~~~~~~
- ``bool`` / ``int`` / ``IntEnum``          -> ``INTEGER``
- ``float``                                -> ``REAL``
- ``bytes``                                -> ``BLOB``
- ``str``, ``StrEnum``, dates, ``Decimal``,
  ``UUID``, ``Path``                       -> ``TEXT``
- anything else (lists, dicts, nested
  models, multi-member unions)             -> ``TEXT`` holding JSON

``id`` is always ``INTEGER PRIMARY KEY AUTOINCREMENT`` so identities are
never reused after a delete.

Usage::

    class Vehicle(Record):
        registration: str
        make: str = ""

    VEHICLE = RecordSchema(Vehicle, indexes=("registration",))
    initialize_schema(conn, [VEHICLE], logger)
"""

from __future__ import annotations

import enum
import json
import sqlite3
import types
import uuid
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, time, timedelta
from decimal import Decimal
from pathlib import PurePath
from typing import Generic, Literal, TypeVar, Union, get_args, get_origin

from pydantic import TypeAdapter, ValidationError

from recordstore.errors import (
    InvalidQueryValueError,
    UnknownAttributeError,
    UnknownRecordTypeError,
)
from recordstore.logger import StructuredLogger
from recordstore.models.enums import ColumnType
from recordstore.models.record import Record
from recordstore.query import Equals
from recordstore.utils.string_helpers import is_valid_identifier, quote_identifier, to_snake_case

__all__ = [
    "Attribute",
    "RecordSchema",
    "SchemaRegistry",
    "column_type_for",
    "initialize_schema",
]

R = TypeVar("R", bound=Record)

_PRIMARY_KEY: str = "id"

_TEXT_TYPES: tuple[type, ...] = (str, date, time, timedelta, Decimal, uuid.UUID, PurePath)


# ---------------------------------------------------------------------------
# Column type resolution
# ---------------------------------------------------------------------------

def _is_optional(annotation: object) -> bool:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return type(None) in get_args(annotation)
    return annotation is None or annotation is type(None)


def _column_type_for_values(values: Iterable[object]) -> ColumnType:
    values = list(values)
    if values and all(isinstance(v, str) for v in values):
        return ColumnType.TEXT
    if values and all(isinstance(v, int) for v in values):
        return ColumnType.INTEGER
    return ColumnType.JSON


def column_type_for(annotation: object) -> ColumnType:
    """Return the storage class for a field annotation."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [a for a in get_args(annotation) if a is not type(None)]
        return column_type_for(members[0]) if len(members) == 1 else ColumnType.JSON
    if origin is Literal:
        return _column_type_for_values(get_args(annotation))
    if not isinstance(annotation, type):
        return ColumnType.JSON
    if issubclass(annotation, enum.Enum):
        return _column_type_for_values(member.value for member in annotation)
    if issubclass(annotation, int):
        return ColumnType.INTEGER
    if issubclass(annotation, float):
        return ColumnType.REAL
    if issubclass(annotation, (bytes, bytearray)):
        return ColumnType.BLOB
    if issubclass(annotation, _TEXT_TYPES):
        return ColumnType.TEXT
    return ColumnType.JSON


def _canonical_decimal(value: Decimal) -> str:
    if not value.is_finite():
        return str(value)
    if value.is_zero():
        return "0"
    return format(value.normalize(), "f")


# ---------------------------------------------------------------------------
# Attribute
# ---------------------------------------------------------------------------

class Attribute:
    """One field of a record type, bound to its storage column.

    Values travelling to SQLite pass through :meth:`to_column`; values
    coming back pass through :meth:`from_column` before the record model
    validates them.
    """

    def __init__(self, entity: str, name: str, annotation: object, required: bool) -> None:
        if not is_valid_identifier(name):
            raise ValueError(f"{entity}.{name} cannot be stored: not a plain identifier.")
        self.entity = entity
        self.name = name
        self.annotation = annotation
        self.column_type = column_type_for(annotation)
        self.nullable = not required or _is_optional(annotation)
        self._adapter: TypeAdapter[object] = TypeAdapter(annotation)

    def __repr__(self) -> str:
        return f"Attribute({self.entity}.{self.name}: {self.column_type})"

    @property
    def column(self) -> str:
        """The quoted column name."""
        return quote_identifier(self.name)

    @property
    def is_primary_key(self) -> bool:
        return self.name == _PRIMARY_KEY

    def validate(self, value: object) -> object:
        """Validate *value* against the field type and return the coerced value.

        Raises:
            InvalidQueryValueError: If the value does not fit the field.
        """
        try:
            return self._adapter.validate_python(value)
        except ValidationError as exc:
            reason = exc.errors()[0]["msg"] if exc.errors() else str(exc)
            raise InvalidQueryValueError(
                f"{value!r} is not a valid value for {self.entity}.{self.name}: {reason}"
            ) from exc

    def eq(self, value: object) -> Equals:
        """Build the predicate ``<attribute> == value``."""
        return Equals(self, self.validate(value))

    def to_column(self, value: object) -> object:
        """Storage form of *value*.

        Decimals and JSON documents are written in a canonical form so
        that equal values always compare equal in SQL: ``Decimal("1.50")``
        is stored as ``"1.5"`` and JSON objects have their keys sorted.
        """
        if value is None:
            return None
        if isinstance(value, Decimal) and self.column_type is ColumnType.TEXT:
            return _canonical_decimal(value)
        if self.column_type is ColumnType.BLOB:
            return bytes(value)  # type: ignore[arg-type]
        dumped = self._adapter.dump_python(value, mode="json")
        if self.column_type is ColumnType.JSON:
            return json.dumps(dumped, ensure_ascii=False, sort_keys=True)
        if isinstance(dumped, bool):
            return int(dumped)
        return dumped

    def from_column(self, raw: object) -> object:
        if raw is not None and self.column_type is ColumnType.JSON:
            return json.loads(raw)  # type: ignore[arg-type]
        return raw

    def column_definition(self) -> str:
        if self.is_primary_key:
            return f"{self.column} INTEGER PRIMARY KEY AUTOINCREMENT"
        definition = f"{self.column} {self.column_type.sql_type}"
        return definition if self.nullable else f"{definition} NOT NULL"


# ---------------------------------------------------------------------------
# Record schema
# ---------------------------------------------------------------------------

class RecordSchema(Generic[R]):
    """Descriptor naming a record type and its table.

    Parameters
    ----------
    model:
        The :class:`Record` subclass whose instances are stored.
    entity:
        Entity name used in log output and errors.  Defaults to the model
        class name.
    table:
        SQLite table name.  Defaults to the snake_case entity name.
    indexes:
        Attribute names to index; typically the identifier attribute
        that lookups, existence checks and deletes filter on.
    """

    def __init__(
        self,
        model: type[R],
        *,
        entity: str | None = None,
        table: str | None = None,
        indexes: Iterable[str] = (),
    ) -> None:
        if not (isinstance(model, type) and issubclass(model, Record)):
            raise TypeError(f"{model!r} is not a Record subclass.")
        self.model: type[R] = model
        self.entity: str = entity or model.__name__
        self.table: str = table or to_snake_case(self.entity)
        if not is_valid_identifier(self.table):
            raise ValueError(f"Invalid table name for {self.entity}: {self.table!r}")

        self._attributes: dict[str, Attribute] = {
            name: Attribute(self.entity, name, field.annotation, field.is_required())
            for name, field in model.model_fields.items()
        }
        self.indexes: tuple[str, ...] = tuple(self.attribute(name).name for name in indexes)

    def __repr__(self) -> str:
        return f"RecordSchema({self.entity} -> {self.table})"

    # -- Attribute lookup -----------------------------------------------------

    @property
    def attributes(self) -> Mapping[str, Attribute]:
        return types.MappingProxyType(self._attributes)

    def attribute(self, name: str) -> Attribute:
        """Return the attribute called *name*.

        Raises:
            UnknownAttributeError: If the record type has no such field.
        """
        try:
            return self._attributes[name]
        except KeyError:
            raise UnknownAttributeError(self.entity, name) from None

    __getitem__ = attribute

    def resolve(self, attribute: str | Attribute) -> Attribute:
        """Accept an attribute name or an :class:`Attribute` of this schema."""
        if isinstance(attribute, Attribute):
            if attribute.entity != self.entity or self._attributes.get(attribute.name) is not attribute:
                raise UnknownAttributeError(self.entity, f"{attribute.entity}.{attribute.name}")
            return attribute
        return self.attribute(attribute)

    # -- Row conversion -------------------------------------------------------

    def to_row(self, record: R) -> dict[str, object]:
        """Column values for *record*, without the primary key."""
        if not isinstance(record, self.model):
            raise TypeError(f"Expected {self.model.__name__}, got {type(record).__name__}.")
        return {
            name: attr.to_column(getattr(record, name))
            for name, attr in self._attributes.items()
            if not attr.is_primary_key
        }

    def from_row(self, row: sqlite3.Row) -> R:
        values = {
            key: self._attributes[key].from_column(row[key])
            for key in row.keys()
            if key in self._attributes
        }
        return self.model.model_validate(values)

    # -- DDL ------------------------------------------------------------------

    def create_table_sql(self) -> str:
        columns = ",\n    ".join(attr.column_definition() for attr in self._attributes.values())
        return f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.table)} (\n    {columns}\n)"

    def create_index_sql(self) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS {quote_identifier(f'ix_{self.table}_{name}')} "
            f"ON {quote_identifier(self.table)} ({quote_identifier(name)})"
            for name in self.indexes
        ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(
    conn: sqlite3.Connection,
    schemas: Iterable[RecordSchema[Record]],
    logger: StructuredLogger,
) -> None:
    """Create the table and indexes of every schema, idempotently.

    Runs inside a single transaction: either every table exists
    afterwards or none of the new ones do.  Existing tables are left
    untouched (columns are never added or dropped here).

    Args:
        conn: An open SQLite connection in autocommit mode.
        schemas: The record types the store will serve.
        logger: Structured logger for progress output.
    """
    schemas = list(schemas)
    conn.execute("BEGIN")
    try:
        for schema in schemas:
            conn.execute(schema.create_table_sql())
            for ddl in schema.create_index_sql():
                conn.execute(ddl)
        conn.execute("COMMIT")
    except sqlite3.Error:
        conn.execute("ROLLBACK")
        logger.error("Schema initialisation failed; rolled back.", exc_info=True)
        raise

    logger.info(
        "%d record table(s) created or verified: %s",
        len(schemas),
        ", ".join(schema.table for schema in schemas) or "-",
    )


class SchemaRegistry:
    """The closed set of record types a store serves.

    Entities are keyed by name; registering a second schema under an
    existing entity or table name is rejected.
    """

    def __init__(self, schemas: Iterable[RecordSchema[Record]] = ()) -> None:
        self._schemas: dict[str, RecordSchema[Record]] = {}
        for schema in schemas:
            self.register(schema)

    def __iter__(self) -> Iterator[RecordSchema[Record]]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)

    def __contains__(self, schema: object) -> bool:
        return isinstance(schema, RecordSchema) and self._schemas.get(schema.entity) is schema

    def register(self, schema: RecordSchema[Record]) -> None:
        if schema.entity in self._schemas:
            raise ValueError(f"Record type {schema.entity!r} is already registered.")
        if any(existing.table == schema.table for existing in self._schemas.values()):
            raise ValueError(f"Table {schema.table!r} is already used by another record type.")
        self._schemas[schema.entity] = schema

    def require(self, schema: RecordSchema[R]) -> RecordSchema[R]:
        """Return *schema* if registered.

        Raises:
            UnknownRecordTypeError: If the schema is not part of this store.
        """
        if schema not in self:
            raise UnknownRecordTypeError(
                f"Record type {getattr(schema, 'entity', schema)!r} is not registered with this store."
            )
        return schema
