"""
Normalization of values leaving (and entering) the storage backends.

DuckDB hands back aggregate counts as numpy ``int64`` through pandas, decimals
for some aggregates and naive ``datetime`` objects for TIMESTAMP columns.
Every record returned to callers passes through :func:`sanitize_record` so
all backends produce plain JSON-safe Python values with the same timestamp
format.
"""

import math
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd


def _to_utc_timestamp(value: Any) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def to_utc_iso(value: Any) -> Optional[str]:
    """
    Render a timestamp-like value as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Naive values are taken to be UTC already. The fixed width keeps string
    comparison equal to chronological comparison, which the SQLite and
    flat-file backends rely on for date-range filters.
    """
    if value is None or value is pd.NaT:
        return None
    ts = _to_utc_timestamp(value)
    return ts.tz_localize(None).to_pydatetime().isoformat(timespec="milliseconds") + "Z"


def to_naive_utc(value: Any) -> Optional[datetime]:
    """Convert a timestamp-like value to a naive UTC ``datetime`` for TIMESTAMP columns."""
    if value is None or value is pd.NaT:
        return None
    ts = _to_utc_timestamp(value)
    return ts.tz_localize(None).to_pydatetime()


def utc_now_iso() -> str:
    return to_utc_iso(datetime.now(timezone.utc))


def sanitize_value(value: Any) -> Any:
    """Narrow a single backend value to a standard Python type."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return None if math.isnan(value) else value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (pd.Timestamp, datetime)):
        return to_utc_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def sanitize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Apply :func:`sanitize_value` to every value of a result row."""
    return {key: sanitize_value(value) for key, value in record.items()}
