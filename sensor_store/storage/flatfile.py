"""
Flat-file storage backend.

Last-resort backend that needs no database engine: every insert() writes one
JSON file named by its write time into the processed-data directory, and
queries and statistics scan every file. Records carry no id here, so update
and delete are reported as unsupported instead of being attempted.
"""

import json
import os
import tempfile
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from sensor_store.models import (
    BackendKind,
    DeleteResult,
    InsertResult,
    QueryFilters,
    QueryResult,
    StatsResult,
    TypeCount,
    UpdateResult,
)
from sensor_store.storage.base import StorageBackend
from sensor_store.utils import get_logger, sanitize_record, to_utc_iso

logger = get_logger(__name__)

FILE_PREFIX = "processed_data_"


def _batch_filename() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"{FILE_PREFIX}{stamp}.json"


def _record_time(record: Mapping[str, Any]) -> Optional[str]:
    """Canonical timestamp of a stored record, or None when it cannot be parsed."""
    value = record.get("timestamp")
    if value is None:
        return None
    try:
        return to_utc_iso(value)
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring unparsable timestamp {value!r}: {e}")
        return None


def _matches(record: Mapping[str, Any], filters: QueryFilters) -> bool:
    if filters.sensor_id and record.get("sensor_id") != filters.sensor_id:
        return False
    if filters.reading_type and record.get("reading_type") != filters.reading_type:
        return False
    if filters.field and record.get("field") != filters.field:
        return False

    if filters.start_date or filters.end_date:
        timestamp = _record_time(record)
        if timestamp is None:
            return False
        if filters.start_date and timestamp < filters.start_date:
            return False
        if filters.end_date and timestamp > filters.end_date:
            return False
    return True


class JsonFileBackend(StorageBackend):
    """File-per-batch JSON backend answering queries by full directory scan."""

    kind = BackendKind.FLATFILE

    def __init__(self, directory: str):
        super().__init__(directory)
        self.directory = Path(directory)

    async def open(self) -> None:
        # Permission errors here are fatal and propagate to the caller
        self.directory.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"File-based fallback initialized: {self.directory}")

    async def insert(self, records: List[Dict[str, Any]]) -> InsertResult:
        filepath = await self._run(self._write_batch, records)
        self.logger.info(f"Data saved to fallback file {filepath}: {len(records)} records")
        return InsertResult(success=True, record_count=len(records), source=self.kind, filepath=str(filepath))

    def _write_batch(self, records: List[Dict[str, Any]]) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        filepath = self.directory / _batch_filename()
        suffix = 1
        while filepath.exists():
            filepath = filepath.with_name(f"{filepath.stem}_{suffix}.json")
            suffix += 1

        # Write to a temp file and rename so a batch is never half-visible
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(records, f, indent=2, default=str)
            os.replace(tmp_name, filepath)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return filepath

    def _load_all(self) -> List[Dict[str, Any]]:
        self.directory.mkdir(parents=True, exist_ok=True)
        records: List[Dict[str, Any]] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, 'r') as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                self.logger.warning(f"Failed to read file {path.name}: {e}")
                continue
            entries = data if isinstance(data, list) else [data]
            skipped = sum(1 for entry in entries if not isinstance(entry, dict))
            if skipped:
                self.logger.warning(f"Skipping {skipped} non-record entries in {path.name}")
            records.extend(entry for entry in entries if isinstance(entry, dict))
        return records

    async def query(self, filters: QueryFilters) -> QueryResult:
        records = await self._run(self._load_all)
        matched = [r for r in records if _matches(r, filters)]
        # Records without a usable timestamp sort last
        matched.sort(key=lambda r: _record_time(r) or "", reverse=True)
        if filters.limit:
            matched = matched[:filters.limit]
        return QueryResult(success=True, data=[sanitize_record(r) for r in matched], source=self.kind)

    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> UpdateResult:
        self.logger.warning("Update operation not supported in file-based fallback mode")
        return UpdateResult(
            success=False, updated=0, id=record_id, message="Update not supported in fallback mode"
        )

    async def delete(self, record_id: Any) -> DeleteResult:
        self.logger.warning("Delete operation not supported in file-based fallback mode")
        return DeleteResult(
            success=False, deleted=0, id=record_id, message="Delete not supported in fallback mode"
        )

    async def get_stats(self) -> StatsResult:
        records = await self._run(self._load_all)
        counts = Counter(r.get("reading_type") for r in records)
        timestamps = [ts for ts in map(_record_time, records) if ts is not None]

        return StatsResult(
            success=True,
            source=self.kind,
            total=len(records),
            by_type=[
                TypeCount(reading_type=reading_type, count=count)
                for reading_type, count in sorted(counts.items(), key=lambda item: str(item[0]))
            ],
            latest_timestamp=max(timestamps) if timestamps else None,
        )

    async def close(self) -> None:
        # No handle to release
        pass
