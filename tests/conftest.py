"""
Pytest configuration and shared fixtures for testing.

Provides temporary backing paths, sample readings and storage services pinned
to a specific backend through a probe with a fixed answer.
"""

import asyncio
import tempfile
from pathlib import Path

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import pytest
import pytest_asyncio

from sensor_store.config import StorageSettings
from sensor_store.models import BackendKind
from sensor_store.storage import BackendProbe, StorageService


class StaticProbe(BackendProbe):
    """Probe that reports a fixed set of engines as available and records every call."""

    def __init__(self, available=(), delay: float = 0.0):
        super().__init__(timeout=1.0)
        self.available = set(available)
        self.delay = delay
        self.calls = []

    async def probe(self, kind: BackendKind) -> bool:
        self.calls.append(kind)
        if self.delay:
            await asyncio.sleep(self.delay)
        return kind is BackendKind.FLATFILE or kind in self.available


BACKENDS = [
    pytest.param(BackendKind.ANALYTICAL, id="duckdb"),
    pytest.param(BackendKind.RELATIONAL, id="sqlite"),
    pytest.param(BackendKind.FLATFILE, id="jsonfile"),
]

DATABASE_BACKENDS = BACKENDS[:2]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def storage_settings(temp_dir):
    """Storage settings with every backing path inside the temporary directory."""
    return StorageSettings(
        processed_data=str(temp_dir / "processed"),
        analytical_engine_path=str(temp_dir / "database" / "agricultural_data.duckdb"),
        relational_engine_path=str(temp_dir / "database" / "agricultural_data.sqlite"),
        probe_timeout_seconds=5,
    )


@pytest.fixture
def static_probe():
    """Factory for probes with a fixed answer."""
    return StaticProbe


@pytest.fixture
def make_service(storage_settings):
    """Build an uninitialized service that will select the given backend."""
    def _make(*available, settings=None, **kwargs):
        return StorageService(settings or storage_settings, probe=StaticProbe(available), **kwargs)
    return _make


async def _open_service(settings, kind):
    if kind is BackendKind.ANALYTICAL:
        pytest.importorskip("duckdb")
    service = StorageService(settings, probe=StaticProbe({kind}))
    result = await service.initialize()
    assert result.backend is kind
    return service


@pytest_asyncio.fixture(params=BACKENDS)
async def service(request, storage_settings):
    """An initialized service on each of the three backends."""
    service = await _open_service(storage_settings, request.param)
    yield service
    await service.close()


@pytest_asyncio.fixture(params=DATABASE_BACKENDS)
async def db_service(request, storage_settings):
    """An initialized service on each database backend."""
    service = await _open_service(storage_settings, request.param)
    yield service
    await service.close()


@pytest.fixture
def sample_readings():
    """Five readings over three sensors and two reading types."""
    return [
        {
            "sensor_id": "sensor_1",
            "timestamp": "2023-06-01T10:00:00Z",
            "reading_type": "temperature",
            "value": 25.5,
            "unit": "C",
            "location": {"field": "north", "latitude": 12.97, "longitude": 77.59},
            "battery_level": 95,
            "signal_strength": -60,
            "data_quality": "good",
            "processed_timestamp": "2023-06-01T10:05:00Z",
        },
        {
            "sensor_id": "sensor_1",
            "timestamp": "2023-06-01T10:30:00Z",
            "reading_type": "humidity",
            "value": 65.2,
            "unit": "%",
            "location": {"field": "north"},
            "battery_level": 95,
            "processed_timestamp": "2023-06-01T10:35:00Z",
        },
        {
            "sensor_id": "sensor_2",
            "timestamp": "2023-06-01T10:15:00Z",
            "reading_type": "temperature",
            "value": 24.8,
            "field": "south",
            "battery_level": 87,
            "processed_timestamp": "2023-06-01T10:20:00Z",
        },
        {
            "sensor_id": "sensor_2",
            "timestamp": "2023-06-02T10:45:00Z",
            "reading_type": "humidity",
            "value": 68.1,
            "field": "south",
            "battery_level": 86,
            "processed_timestamp": "2023-06-02T10:50:00Z",
        },
        {
            "sensor_id": "sensor_3",
            "timestamp": "2023-06-02T11:00:00Z",
            "reading_type": "temperature",
            "value": 26.2,
            "field": "east",
            "battery_level": 92,
            "processed_timestamp": "2023-06-02T11:05:00Z",
        },
    ]


def create_test_parquet_file(data: pd.DataFrame, file_path: Path) -> None:
    """
    Create a test Parquet file from DataFrame.

    Args:
        data: DataFrame to save
        file_path: Path where to save the file
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    table = pa.Table.from_pandas(data, preserve_index=False)
    pq.write_table(table, file_path)


@pytest.fixture
def sample_parquet_file(temp_dir):
    """A small Parquet file of raw readings."""
    data = pd.DataFrame({
        "sensor_id": ["sensor_1", "sensor_1", "sensor_2"],
        "timestamp": pd.to_datetime(["2023-06-01 10:00", "2023-06-01 11:00", "2023-06-01 12:00"]),
        "reading_type": ["temperature", "humidity", "temperature"],
        "value": [25.5, 65.2, 24.8],
        "battery_level": [95.5, 95.0, 87.3],
    })
    file_path = temp_dir / "raw" / "2023-06-01.parquet"
    create_test_parquet_file(data, file_path)
    return file_path
