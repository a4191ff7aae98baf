"""
Record Base Model.

Every record type stored through the facade is a Pydantic model deriving
from :class:`Record`.  The store assigns ``id`` on insert; application
code identifies records through its own attributes (e.g. a string
registration number).
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class Record(BaseModel):
    """Base class for all stored record instances."""

    id: Optional[int] = None

    @property
    def is_persisted(self) -> bool:
        """``True`` once the store has assigned an ``id``."""
        return self.id is not None
