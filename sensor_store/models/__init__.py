"""Data models for the sensor storage layer."""

from .data import (
    BackendKind,
    ServiceState,
    SensorReading,
    QueryFilters,
    InitResult,
    InsertResult,
    QueryResult,
    UpdateResult,
    DeleteResult,
    TypeCount,
    StatsResult,
    ParquetReadResult,
)

__all__ = [
    "BackendKind",
    "ServiceState",
    "SensorReading",
    "QueryFilters",
    "InitResult",
    "InsertResult",
    "QueryResult",
    "UpdateResult",
    "DeleteResult",
    "TypeCount",
    "StatsResult",
    "ParquetReadResult",
]
