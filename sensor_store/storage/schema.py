"""
Column layout shared by the database backends and record normalization.
"""

from typing import Any, Dict, Iterable, List, Mapping, Union

from sensor_store.models import SensorReading
from sensor_store.utils.exceptions import InvalidFieldError
from sensor_store.utils.sanitize import to_utc_iso

TABLE_NAME = "sensor_data"

# Insert order; id and created_at are filled by the backend.
INSERT_COLUMNS = (
    "sensor_id",
    "timestamp",
    "reading_type",
    "value",
    "unit",
    "field",
    "latitude",
    "longitude",
    "battery_level",
    "signal_strength",
    "data_quality",
    "processed_timestamp",
    "quality_score",
)

TIMESTAMP_COLUMNS = frozenset({"timestamp", "processed_timestamp", "created_at"})
UPDATABLE_COLUMNS = frozenset(INSERT_COLUMNS)

RecordInput = Union[SensorReading, Mapping[str, Any]]


def prepare_record(record: RecordInput) -> Dict[str, Any]:
    """
    Normalize one incoming reading: flatten location, canonicalize timestamps
    and fill defaults. Extra keys are kept for the flat-file backend.
    """
    if isinstance(record, SensorReading):
        reading = record
    else:
        reading = SensorReading.model_validate(dict(record))
    data = reading.model_dump()
    data.pop("id", None)
    return data


def prepare_records(records: Union[RecordInput, Iterable[RecordInput]]) -> List[Dict[str, Any]]:
    """A single record is treated as a one-element batch."""
    if isinstance(records, (SensorReading, Mapping)):
        records = [records]
    return [prepare_record(r) for r in records]


def row_values(record: Mapping[str, Any]) -> List[Any]:
    return [record.get(column) for column in INSERT_COLUMNS]


def prepare_update(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Check update keys against the schema and canonicalize timestamp values."""
    unknown = sorted(set(fields) - UPDATABLE_COLUMNS)
    if unknown:
        raise InvalidFieldError(f"Cannot update field(s): {', '.join(unknown)}")

    updates = {}
    for key, value in fields.items():
        if key in TIMESTAMP_COLUMNS and value is not None:
            value = to_utc_iso(value)
        updates[key] = value
    return updates
