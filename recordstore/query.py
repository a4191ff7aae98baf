"""
Typed Query Builder.

Predicates are built from schema attributes (``VEHICLE["registration"].eq("AB-123")``)
and compiled to parameterised SQL.  Attribute names come from the record
model's fields and are quoted as identifiers; values are always bound as
parameters, never interpolated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Optional, TypeVar

from recordstore.models.record import Record
from recordstore.utils.string_helpers import quote_identifier

if TYPE_CHECKING:
    from recordstore.schema import Attribute, RecordSchema

__all__ = ["Equals", "FetchRequest"]

R = TypeVar("R", bound=Record)


@dataclass(frozen=True)
class Equals:
    """``attribute == value``; a ``None`` value matches NULL columns."""

    attribute: "Attribute"
    value: object

    def to_sql(self) -> tuple[str, tuple[object, ...]]:
        if self.value is None:
            return f"{self.attribute.column} IS NULL", ()
        return f"{self.attribute.column} = ?", (self.attribute.to_column(self.value),)


@dataclass(frozen=True)
class FetchRequest(Generic[R]):
    """A query against one record type, optionally filtered and limited."""

    schema: "RecordSchema[R]"
    predicate: Optional[Equals] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.predicate is not None and self.predicate.attribute.entity != self.schema.entity:
            raise ValueError(
                f"Predicate on {self.predicate.attribute.entity} cannot filter "
                f"{self.schema.entity}."
            )
        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be a positive integer.")

    @property
    def entity(self) -> str:
        return self.schema.entity

    def _where(self) -> tuple[str, tuple[object, ...]]:
        if self.predicate is None:
            return "", ()
        clause, params = self.predicate.to_sql()
        return f" WHERE {clause}", params

    def select_sql(self) -> tuple[str, tuple[object, ...]]:
        where, params = self._where()
        sql = (
            f"SELECT * FROM {quote_identifier(self.schema.table)}{where} "
            f"ORDER BY {quote_identifier('id')}"
        )
        if self.limit is not None:
            sql += f" LIMIT {int(self.limit)}"
        return sql, params

    def count_sql(self) -> tuple[str, tuple[object, ...]]:
        where, params = self._where()
        return f"SELECT COUNT(*) FROM {quote_identifier(self.schema.table)}{where}", params

    def delete_sql(self) -> tuple[str, tuple[object, ...]]:
        where, params = self._where()
        return f"DELETE FROM {quote_identifier(self.schema.table)}{where}", params
