"""
Store Services Package.

Filesystem-facing services used by the record store: resolving the
application support directory and deleting the store file.
"""

from __future__ import annotations

from recordstore.services.base_service import BaseService
from recordstore.services.store_file_service import StoreFileService
from recordstore.services.support_directory import SupportDirectoryService

__all__ = [
    "BaseService",
    "StoreFileService",
    "SupportDirectoryService",
]
