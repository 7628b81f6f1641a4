"""
Pydantic models for data structures used throughout the storage layer.

These models normalize readings on the way in and give every storage
operation a typed result, whichever backend produced it.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sensor_store.utils.sanitize import to_utc_iso, utc_now_iso


class BackendKind(str, Enum):
    """Which storage technology is active."""
    ANALYTICAL = "analytical"
    RELATIONAL = "relational"
    FLATFILE = "flatfile"


class ServiceState(str, Enum):
    """Lifecycle of a StorageService."""
    UNINITIALIZED = "uninitialized"
    PROBING = "probing"
    READY = "ready"
    CLOSED = "closed"


LOCATION_FIELDS = ("field", "latitude", "longitude")


class SensorReading(BaseModel):
    """Model for an individual sensor reading as stored by every backend."""
    model_config = ConfigDict(extra='allow')

    id: Optional[int] = Field(None, description="Backend-assigned identifier")
    sensor_id: Optional[str] = Field(None, description="Sensor identifier")
    timestamp: str = Field(default_factory=utc_now_iso, description="Reading timestamp (ISO-8601 UTC)")
    reading_type: Optional[str] = Field(None, description="Type of measurement (temperature, humidity, etc.)")
    value: Optional[float] = Field(None, description="Sensor reading value")
    unit: Optional[str] = Field(None, description="Measurement unit")
    field: Optional[str] = Field(None, description="Field the sensor is installed in")
    latitude: Optional[float] = Field(None, description="Sensor latitude")
    longitude: Optional[float] = Field(None, description="Sensor longitude")
    battery_level: Optional[int] = Field(None, description="Battery level percentage (0-100)")
    signal_strength: Optional[int] = Field(None, description="Radio signal strength")
    data_quality: Optional[str] = Field("unknown", description="Quality label from the pipeline")
    processed_timestamp: str = Field(default_factory=utc_now_iso, description="Processing time (ISO-8601 UTC)")
    quality_score: int = Field(100, description="Quality score (0-100)")

    @model_validator(mode='before')
    @classmethod
    def flatten_location(cls, data: Any) -> Any:
        """Lift ``location.{field,latitude,longitude}`` to top-level attributes."""
        if not isinstance(data, dict) or not isinstance(data.get("location"), dict):
            return data
        data = dict(data)
        location = data.pop("location")
        for key in LOCATION_FIELDS:
            if data.get(key) is None and location.get(key) is not None:
                data[key] = location[key]
        return data

    @field_validator('timestamp', 'processed_timestamp', mode='before')
    @classmethod
    def canonical_timestamp(cls, v):
        if v is None:
            return utc_now_iso()
        return to_utc_iso(v)

    @field_validator('battery_level', 'signal_strength', mode='before')
    @classmethod
    def round_integers(cls, v):
        if isinstance(v, float):
            return int(round(v))
        return v

    @field_validator('quality_score', mode='before')
    @classmethod
    def default_quality_score(cls, v):
        if v is None:
            return 100
        if isinstance(v, float):
            return int(round(v))
        return v


class QueryFilters(BaseModel):
    """Filters accepted by query(); all present filters are ANDed."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    sensor_id: Optional[str] = None
    reading_type: Optional[str] = None
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    field: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def canonical_bounds(cls, v):
        if v is None or v == "":
            return None
        return to_utc_iso(v)

    @field_validator('limit', mode='before')
    @classmethod
    def falsy_limit_means_unbounded(cls, v):
        if v is None or v == "" or v == 0:
            return None
        return v


class InitResult(BaseModel):
    """Outcome of StorageService.initialize()."""
    success: bool = Field(True, description="Always true; initialize() never fails softly")
    backend: BackendKind = Field(..., description="Selected backend kind")
    path: str = Field(..., description="File or directory backing the selected backend")
    error: Optional[str] = Field(None, description="Unexpected error that forced the flat-file fallback")


class InsertResult(BaseModel):
    """Result of an insert call."""
    success: bool
    record_count: int
    source: BackendKind
    filepath: Optional[str] = None


class QueryResult(BaseModel):
    """Result of a query call."""
    success: bool
    data: List[Dict[str, Any]] = Field(default_factory=list)
    source: BackendKind


class UpdateResult(BaseModel):
    """Result of an update call. ``updated`` is 0 when the id does not exist."""
    success: bool
    id: Any
    updated: int = 0
    message: Optional[str] = None


class DeleteResult(BaseModel):
    """Result of a delete call. ``deleted`` is 0 when the id does not exist."""
    success: bool
    id: Any
    deleted: int = 0
    message: Optional[str] = None


class TypeCount(BaseModel):
    reading_type: Optional[str]
    count: int


class StatsResult(BaseModel):
    """Aggregate statistics in the same shape for every backend."""
    success: bool
    source: BackendKind
    total: int = 0
    by_type: List[TypeCount] = Field(default_factory=list)
    latest_timestamp: Optional[str] = None


class ParquetReadResult(BaseModel):
    """Rows read from a Parquet file through the analytical engine."""
    success: bool
    data: List[Dict[str, Any]] = Field(default_factory=list)
    source: str = "analytical-parquet"
    file_path: str
