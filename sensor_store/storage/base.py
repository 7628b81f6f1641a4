"""
Abstract base class for storage backends.

Each backend implements the same contract against one storage technology.
StorageService holds exactly one of them, chosen at initialize() time, and
never branches on backend kind outside of that selection.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, TypeVar

from sensor_store.models import (
    BackendKind,
    DeleteResult,
    InsertResult,
    QueryFilters,
    QueryResult,
    StatsResult,
    UpdateResult,
)
from sensor_store.utils import get_logger

T = TypeVar("T")


class StorageBackend(ABC):
    """Base class for all storage backends."""

    kind: BackendKind

    def __init__(self, location: str):
        """
        Initialize backend.

        Args:
            location: File (database backends) or directory (flat-file) backing this backend
        """
        self.location = str(location)
        self.logger = get_logger(__name__)
        # Serializes use of the single native handle across worker threads
        self._lock = asyncio.Lock()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking call on the native handle in a worker thread."""
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    @abstractmethod
    async def open(self) -> None:
        """Open the handle and make sure the schema exists."""
        pass

    @abstractmethod
    async def insert(self, records: List[Dict[str, Any]]) -> InsertResult:
        """
        Persist a batch of prepared records.

        Args:
            records: Records already normalized by prepare_records()

        Returns:
            Insert result with the number of records written
        """
        pass

    @abstractmethod
    async def query(self, filters: QueryFilters) -> QueryResult:
        """Return records matching all filters, newest timestamp first."""
        pass

    @abstractmethod
    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> UpdateResult:
        """Overwrite the given fields of one record; a missing id yields updated=0."""
        pass

    @abstractmethod
    async def delete(self, record_id: Any) -> DeleteResult:
        """Remove one record; a missing id yields deleted=0."""
        pass

    @abstractmethod
    async def get_stats(self) -> StatsResult:
        """Total count, per-type counts and the latest timestamp."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the native handle. Safe to call more than once."""
        pass
