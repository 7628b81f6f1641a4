"""
Storage service with cascading backend selection.

The single entry point for storage operations. initialize() probes DuckDB,
then SQLite, and settles on flat JSON files when neither engine works; the
chosen backend then serves every call until close(). Backend selection is a
startup decision only: operational errors during CRUD calls propagate to the
caller and never trigger a switch to another backend.
"""

from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from sensor_store.config import StorageSettings
from sensor_store.models import (
    BackendKind,
    DeleteResult,
    InitResult,
    InsertResult,
    ParquetReadResult,
    QueryFilters,
    QueryResult,
    SensorReading,
    ServiceState,
    StatsResult,
    UpdateResult,
)
from sensor_store.storage.base import StorageBackend
from sensor_store.storage.probe import BackendProbe
from sensor_store.storage.schema import RecordInput, prepare_records, prepare_update
from sensor_store.utils import (
    StorageNotInitializedError,
    UnsupportedOperationError,
    get_logger,
)

BackendFactory = Callable[[StorageSettings], StorageBackend]


def _duckdb_backend(settings: StorageSettings) -> StorageBackend:
    from sensor_store.storage.analytical import DuckDBBackend
    return DuckDBBackend(str(settings.duckdb_path))


def _sqlite_backend(settings: StorageSettings) -> StorageBackend:
    from sensor_store.storage.relational import SQLiteBackend
    return SQLiteBackend(str(settings.sqlite_path))


def _json_backend(settings: StorageSettings) -> StorageBackend:
    from sensor_store.storage.flatfile import JsonFileBackend
    return JsonFileBackend(str(settings.processed_data_path))


DEFAULT_BACKEND_FACTORIES: Dict[BackendKind, BackendFactory] = {
    BackendKind.ANALYTICAL: _duckdb_backend,
    BackendKind.RELATIONAL: _sqlite_backend,
    BackendKind.FLATFILE: _json_backend,
}

# Order in which database engines are tried before the flat-file fallback
ENGINE_PRIORITY = (BackendKind.ANALYTICAL, BackendKind.RELATIONAL)


class StorageService:
    """Unified CRUD/query interface over whichever backend works in this runtime."""

    def __init__(
        self,
        settings: StorageSettings,
        probe: Optional[BackendProbe] = None,
        backend_factories: Optional[Mapping[BackendKind, BackendFactory]] = None,
    ):
        """
        Initialize storage service.

        Args:
            settings: Backing paths and probe timeout
            probe: Engine availability checker (defaults to BackendProbe with the configured timeout)
            backend_factories: Overrides for how each backend kind is constructed
        """
        self.settings = settings
        self.probe = probe or BackendProbe(timeout=settings.probe_timeout_seconds)
        self.backend_factories = dict(DEFAULT_BACKEND_FACTORIES)
        if backend_factories:
            self.backend_factories.update(backend_factories)

        self.logger = get_logger(__name__)
        self.state = ServiceState.UNINITIALIZED
        self._backend: Optional[StorageBackend] = None
        self._init_result: Optional[InitResult] = None

    @property
    def backend_kind(self) -> Optional[BackendKind]:
        return self._backend.kind if self._backend is not None else None

    @property
    def is_available(self) -> bool:
        """True once a real database engine is live."""
        return (
            self.state is ServiceState.READY
            and self.backend_kind is not None
            and self.backend_kind is not BackendKind.FLATFILE
        )

    @property
    def paths(self) -> Dict[BackendKind, str]:
        return {
            BackendKind.ANALYTICAL: str(self.settings.duckdb_path),
            BackendKind.RELATIONAL: str(self.settings.sqlite_path),
            BackendKind.FLATFILE: str(self.settings.processed_data_path),
        }

    async def initialize(self) -> InitResult:
        """
        Select and open a backend.

        Never raises for engine problems: a probe that fails moves on to the
        next engine, and any unexpected error while opening an engine forces
        the flat-file fallback with the error recorded on the result. Only a
        failure to create the flat-file directory itself propagates.

        Returns:
            Initialization result naming the selected backend
        """
        if self.state is ServiceState.READY and self._init_result is not None:
            return self._init_result

        self.logger.info("Initializing storage service...")
        self.state = ServiceState.PROBING
        error: Optional[str] = None

        try:
            backend = await self._select_backend()
        except Exception as e:
            self.logger.error(f"Storage initialization failed, forcing file-based fallback: {e}")
            error = str(e)
            backend = await self._open_backend(BackendKind.FLATFILE)

        self._backend = backend
        self.state = ServiceState.READY
        self._init_result = InitResult(success=True, backend=backend.kind, path=backend.location, error=error)
        self.logger.info(f"Storage service ready in {backend.kind.value} mode: {backend.location}")
        return self._init_result

    async def _select_backend(self) -> StorageBackend:
        for kind in ENGINE_PRIORITY:
            if await self.probe.probe(kind):
                self.logger.info(f"{kind.value} engine is available, initializing...")
                return await self._open_backend(kind)
            self.logger.warning(f"{kind.value} engine not available")

        self.logger.warning("No database engine available, using file-based fallback")
        return await self._open_backend(BackendKind.FLATFILE)

    async def _open_backend(self, kind: BackendKind) -> StorageBackend:
        backend = self.backend_factories[kind](self.settings)
        try:
            await backend.open()
        except BaseException:
            try:
                await backend.close()
            except Exception as close_error:
                self.logger.warning(f"Failed to close partially opened {kind.value} backend: {close_error}")
            raise
        return backend

    def _require_backend(self) -> StorageBackend:
        if self.state is not ServiceState.READY or self._backend is None:
            raise StorageNotInitializedError(
                f"Storage service is {self.state.value}; call initialize() first"
            )
        return self._backend

    async def insert(self, records: Union[RecordInput, Iterable[RecordInput]]) -> InsertResult:
        """
        Insert one reading or a batch of readings.

        A batch is written atomically: on error nothing from it is committed.
        """
        backend = self._require_backend()
        prepared = prepare_records(records)
        try:
            return await backend.insert(prepared)
        except Exception as e:
            self.logger.error(f"Failed to insert data into {backend.kind.value}: {e}")
            raise

    async def query(self, filters: Union[QueryFilters, Mapping[str, Any], None] = None, **kwargs) -> QueryResult:
        """
        Query readings. Filters (sensor_id, reading_type, start_date/startDate,
        end_date/endDate, field, limit) are ANDed; results are newest first.
        """
        backend = self._require_backend()
        if not isinstance(filters, QueryFilters):
            filters = QueryFilters.model_validate({**dict(filters or {}), **kwargs})
        try:
            return await backend.query(filters)
        except Exception as e:
            self.logger.error(f"Failed to query {backend.kind.value}: {e}")
            raise

    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> UpdateResult:
        """
        Overwrite fields of one reading.

        A missing id resolves with updated=0. The flat-file backend cannot
        update and resolves with success=False and a message.
        """
        backend = self._require_backend()
        updates = prepare_update(fields)
        try:
            return await backend.update(record_id, updates)
        except Exception as e:
            self.logger.error(f"Failed to update data in {backend.kind.value}: {e}")
            raise

    async def delete(self, record_id: Any) -> DeleteResult:
        """Delete one reading; same not-found and flat-file rules as update()."""
        backend = self._require_backend()
        try:
            return await backend.delete(record_id)
        except Exception as e:
            self.logger.error(f"Failed to delete data in {backend.kind.value}: {e}")
            raise

    async def get_stats(self) -> StatsResult:
        backend = self._require_backend()
        try:
            return await backend.get_stats()
        except Exception as e:
            self.logger.error(f"Failed to get {backend.kind.value} stats: {e}")
            raise

    async def read_parquet(
        self,
        file_path: str,
        where: Optional[str] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ParquetReadResult:
        """Read a Parquet file through DuckDB. Only available on the analytical backend."""
        backend = self._require_backend()
        if backend.kind is not BackendKind.ANALYTICAL:
            raise UnsupportedOperationError("DuckDB is required for Parquet file reading")

        self.logger.info(f"Reading Parquet file with DuckDB: {file_path}")
        rows = await backend.read_parquet(file_path, where=where, order_by=order_by, limit=limit)
        return ParquetReadResult(success=True, data=rows, file_path=str(file_path))

    async def close(self) -> None:
        """Release the backend handle. Closing a closed service is a no-op."""
        backend, self._backend = self._backend, None
        self._init_result = None
        if self.state is not ServiceState.UNINITIALIZED:
            self.state = ServiceState.CLOSED
        if backend is not None:
            try:
                await backend.close()
            except Exception as e:
                self.logger.error(f"Error closing {backend.kind.value} backend: {e}")
