"""Shared helpers for the record store."""

from recordstore.utils.string_helpers import (
    is_valid_identifier,
    quote_identifier,
    to_snake_case,
)

__all__ = [
    "is_valid_identifier",
    "quote_identifier",
    "to_snake_case",
]
