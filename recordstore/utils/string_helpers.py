"""
String Helpers.

Naming conversion for entity and table names, and SQL identifier
handling.  Every identifier interpolated into a statement passes through
:func:`quote_identifier`; values are always bound as parameters.
"""

from __future__ import annotations

import re

__all__ = [
    "is_valid_identifier",
    "quote_identifier",
    "to_snake_case",
]

# "VHIRecord" -> "VHI_Record"
_RE_UPPER_RUN = re.compile(r"([A-Z]+)([A-Z][a-z])")

# "vehicleOwner" -> "vehicle_Owner"
_RE_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")

_RE_MULTI_UNDERSCORE = re.compile(r"_+")

_RE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def to_snake_case(name: str) -> str:
    """Convert a PascalCase or camelCase name to snake_case.

        VehicleRecord  -> vehicle_record
        VHIRegister    -> vhi_register
        insuranceClaim -> insurance_claim
    """
    s1 = _RE_UPPER_RUN.sub(r"\1_\2", name)
    s2 = _RE_CAMEL_BOUNDARY.sub(r"\1_\2", s1)
    return _RE_MULTI_UNDERSCORE.sub("_", s2).strip("_").lower()


def is_valid_identifier(name: str) -> bool:
    """``True`` for plain ASCII identifiers (letters, digits, underscore)."""
    return bool(_RE_IDENTIFIER.match(name))


def quote_identifier(name: str) -> str:
    """Return *name* as a double-quoted SQLite identifier.

    Raises:
        ValueError: If *name* is not a plain identifier.
    """
    if not is_valid_identifier(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'
