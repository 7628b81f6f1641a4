"""
Storage backends and the service that selects between them.

DuckDBBackend lives in ``sensor_store.storage.analytical`` and is imported
only when selected, so this package imports cleanly without duckdb installed.
"""

from .base import StorageBackend
from .probe import BackendProbe
from .relational import SQLiteBackend
from .flatfile import JsonFileBackend
from .service import StorageService
from .registry import (
    StorageRegistry,
    get_registry,
    get_storage_service,
    close_storage_service,
    close_all,
)

__all__ = [
    "StorageBackend",
    "BackendProbe",
    "SQLiteBackend",
    "JsonFileBackend",
    "StorageService",
    "StorageRegistry",
    "get_registry",
    "get_storage_service",
    "close_storage_service",
    "close_all",
]
