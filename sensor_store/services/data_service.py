"""
Data access service built on the storage layer.

Adds the read-side conveniences callers need on top of the raw storage
contract: value-range and anomaly post-filters, sorting and pagination,
sensor listings, anomaly and count queries, per-sensor summaries, daily
aggregates and exports.
"""

import io
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from sensor_store.models import QueryFilters
from sensor_store.storage.registry import get_storage_service
from sensor_store.storage.service import StorageService
from sensor_store.utils import UnsupportedOperationError, get_logger

EXPORT_FORMATS = ("json", "csv", "parquet")
DEFAULT_PAGE_SIZE = 100


class DataService:
    """Query and reporting helpers over a StorageService."""

    def __init__(self, storage: StorageService):
        """
        Initialize data service.

        Args:
            storage: Initialized storage service shared with other callers
        """
        self.storage = storage
        self.logger = get_logger(__name__)

    @classmethod
    async def from_registry(cls) -> "DataService":
        """Build a DataService on the process-wide shared storage service."""
        return cls(await get_storage_service())

    async def _frame(self, filters: Mapping[str, Any]) -> pd.DataFrame:
        result = await self.storage.query(QueryFilters.model_validate(dict(filters)))
        return pd.DataFrame(result.data)

    async def query_data(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Query readings with storage filters plus post-filters.

        Args:
            filters: Storage filters, plus optional min_value, max_value,
                anomalous, sort_by, sort_order, page and page_size

        Returns:
            Dictionary with the page of data and paging metadata
        """
        filters = dict(filters or {})
        self.logger.info(f"Querying data with filters: {filters}")

        result = await self.storage.query(QueryFilters.model_validate(filters))
        data = result.data

        if filters.get("anomalous") is not None:
            data = [r for r in data if bool(r.get("anomalous_reading")) == bool(filters["anomalous"])]
        if filters.get("min_value") is not None:
            data = [r for r in data if r.get("value") is not None and r["value"] >= filters["min_value"]]
        if filters.get("max_value") is not None:
            data = [r for r in data if r.get("value") is not None and r["value"] <= filters["max_value"]]

        sort_by = filters.get("sort_by")
        if sort_by and sort_by != "timestamp":
            descending = str(filters.get("sort_order", "DESC")).upper() == "DESC"
            present = [r for r in data if r.get(sort_by) is not None]
            missing = [r for r in data if r.get(sort_by) is None]
            data = sorted(present, key=lambda r: r[sort_by], reverse=descending) + missing

        page = max(int(filters.get("page") or 1), 1)
        page_size = int(filters.get("page_size") or DEFAULT_PAGE_SIZE)
        offset = (page - 1) * page_size

        return {
            "success": True,
            "data": data[offset:offset + page_size],
            "total": len(data),
            "page": page,
            "page_size": page_size,
            "source": result.source.value,
        }

    async def get_sensors(self) -> List[Dict[str, Any]]:
        """
        List every sensor seen in storage.

        Returns:
            One entry per sensor with its reading types, fields (locations),
            latest reading timestamp and reading count
        """
        df = await self._frame({})
        if df.empty or "sensor_id" not in df:
            return []

        sensors = []
        for sensor_id, group in df.groupby("sensor_id"):
            fields = group["field"].dropna() if "field" in group else pd.Series(dtype=object)
            sensors.append({
                "sensor_id": sensor_id,
                "reading_types": sorted(str(t) for t in group["reading_type"].dropna().unique()),
                "locations": sorted(str(f) for f in fields.unique() if f != ""),
                "latest_reading": group["timestamp"].max(),
                "total_readings": int(len(group)),
            })

        self.logger.info(f"Retrieved {len(sensors)} sensors")
        return sensors

    async def get_anomalies(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Readings flagged with anomalous_reading among those matching the storage filters."""
        result = await self.storage.query(QueryFilters.model_validate(dict(filters or {})))
        anomalies = [r for r in result.data if r.get("anomalous_reading") is True]
        return {"data": anomalies, "total": len(anomalies), "source": result.source.value}

    async def get_query_count(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Number of readings matching the filters; the stats total when there are none."""
        if filters:
            result = await self.storage.query(QueryFilters.model_validate(dict(filters)))
            return {"total": len(result.data), "source": result.source.value}

        stats = await self.storage.get_stats()
        return {"total": stats.total, "source": stats.source.value}

    async def get_sensor_summary(self, sensor_id: str) -> Dict[str, Any]:
        """Per reading type statistics for one sensor."""
        df = await self._frame({"sensor_id": sensor_id})
        if df.empty:
            return {"success": True, "sensor_id": sensor_id, "total_readings": 0, "reading_types": {}}

        summary = {}
        for reading_type, group in df.groupby("reading_type", dropna=False):
            values = pd.to_numeric(group["value"], errors="coerce").dropna()
            summary[str(reading_type)] = {
                "count": int(len(group)),
                "min": float(values.min()) if not values.empty else None,
                "max": float(values.max()) if not values.empty else None,
                "avg": round(float(values.mean()), 2) if not values.empty else None,
                "latest_timestamp": group["timestamp"].max(),
            }

        return {
            "success": True,
            "sensor_id": sensor_id,
            "total_readings": int(len(df)),
            "reading_types": summary,
        }

    async def get_daily_aggregations(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Count, average, min and max per day, sensor and reading type."""
        df = await self._frame(filters or {})
        if df.empty:
            return {"success": True, "data": []}

        timestamps = pd.to_datetime(df["timestamp"], utc=True, errors="coerce", format="ISO8601")
        df["date"] = timestamps.dt.strftime("%Y-%m-%d")
        df = df[df["date"].notna()].copy()
        if df.empty:
            return {"success": True, "data": []}
        df["value"] = pd.to_numeric(df["value"], errors="coerce")
        grouped = (
            df.groupby(["date", "sensor_id", "reading_type"], dropna=False)["value"]
            .agg(["count", "mean", "min", "max"])
            .reset_index()
            .sort_values(["date", "sensor_id", "reading_type"])
        )

        rows: List[Dict[str, Any]] = []
        for row in grouped.to_dict("records"):
            rows.append({
                "date": row["date"],
                "sensor_id": row["sensor_id"],
                "reading_type": row["reading_type"],
                "count": int(row["count"]),
                "avg_value": None if pd.isna(row["mean"]) else round(float(row["mean"]), 2),
                "min_value": None if pd.isna(row["min"]) else float(row["min"]),
                "max_value": None if pd.isna(row["max"]) else float(row["max"]),
            })
        return {"success": True, "data": rows}

    async def export_data(self, fmt: str, filters: Optional[Mapping[str, Any]] = None):
        """
        Export matching readings.

        Args:
            fmt: One of json, csv or parquet
            filters: Storage filters

        Returns:
            str for json/csv, bytes for parquet
        """
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")

        df = await self._frame(filters or {})
        self.logger.info(f"Exporting {len(df)} records as {fmt}")

        if fmt == "json":
            return df.to_json(orient="records")
        if fmt == "csv":
            return df.to_csv(index=False)

        buffer = io.BytesIO()
        pq.write_table(pa.Table.from_pandas(df, preserve_index=False), buffer, compression="zstd")
        return buffer.getvalue()

    async def update_reading(self, record_id: Any, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Update a reading, raising if the active backend cannot update."""
        result = await self.storage.update(record_id, fields)
        if not result.success:
            raise UnsupportedOperationError(result.message or "Update not supported")
        return result.model_dump()

    async def delete_reading(self, record_id: Any) -> Dict[str, Any]:
        """Delete a reading, raising if the active backend cannot delete."""
        result = await self.storage.delete(record_id)
        if not result.success:
            raise UnsupportedOperationError(result.message or "Delete not supported")
        return result.model_dump()
