"""
Repository Layer Package.

All record access flows through repositories; callers never touch the
store's connections directly.

Usage:
    from recordstore.repositories import RecordRepository
"""

from recordstore.repositories.base_repository import BaseRepository
from recordstore.repositories.record_repository import RecordRepository

__all__ = [
    "BaseRepository",
    "RecordRepository",
]
