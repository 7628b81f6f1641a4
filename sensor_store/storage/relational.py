"""
SQLite storage backend.

Fallback database when DuckDB is unavailable. Timestamps are stored as
fixed-width ISO-8601 UTC strings so range filters compare lexicographically.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

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
from sensor_store.storage.schema import INSERT_COLUMNS, TABLE_NAME, row_values
from sensor_store.utils import StorageNotInitializedError, sanitize_record, to_utc_iso

CREATE_TABLE_SQL = f"""
    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sensor_id TEXT,
        timestamp TEXT,
        reading_type TEXT,
        value REAL,
        unit TEXT,
        field TEXT,
        latitude REAL,
        longitude REAL,
        battery_level INTEGER,
        signal_strength INTEGER,
        data_quality TEXT,
        processed_timestamp TEXT,
        quality_score INTEGER,
        created_at TEXT
    )
"""
CREATE_INDEX_SQL = (
    f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_sensor_time ON {TABLE_NAME} (sensor_id, timestamp)"
)

INSERT_SQL = (
    f"INSERT INTO {TABLE_NAME} ({', '.join(INSERT_COLUMNS)}, created_at) "
    f"VALUES ({', '.join('?' for _ in range(len(INSERT_COLUMNS) + 1))})"
)


class SQLiteBackend(StorageBackend):
    """Relational engine backend on an embedded SQLite file."""

    kind = BackendKind.RELATIONAL

    def __init__(self, db_path: str):
        super().__init__(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StorageNotInitializedError("SQLite connection is closed")
        return self.conn

    async def open(self) -> None:
        Path(self.location).parent.mkdir(parents=True, exist_ok=True)
        await self._run(self._open_sync)
        self.logger.info(f"SQLite initialized successfully: {self.location}")

    def _open_sync(self) -> None:
        # Calls arrive from worker threads, one at a time under the backend lock
        conn = sqlite3.connect(self.location, check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        with conn:
            conn.execute(CREATE_TABLE_SQL)
            conn.execute(CREATE_INDEX_SQL)
        self.conn = conn

    async def insert(self, records: List[Dict[str, Any]]) -> InsertResult:
        await self._run(self._insert_sync, records)
        self.logger.info(f"Data inserted into SQLite: {len(records)} records")
        return InsertResult(success=True, record_count=len(records), source=self.kind)

    def _insert_sync(self, records: List[Dict[str, Any]]) -> None:
        created_at = to_utc_iso(datetime.now(timezone.utc))
        params = [tuple(row_values(record)) + (created_at,) for record in records]
        # `with conn` commits the whole batch or rolls it back
        with self._connection() as conn:
            conn.executemany(INSERT_SQL, params)

    @staticmethod
    def _build_query(filters: QueryFilters) -> Tuple[str, List[Any]]:
        conditions = [
            ("sensor_id = ?", filters.sensor_id),
            ("reading_type = ?", filters.reading_type),
            ("timestamp >= ?", filters.start_date),
            ("timestamp <= ?", filters.end_date),
            ("field = ?", filters.field),
        ]

        sql = f"SELECT * FROM {TABLE_NAME} WHERE 1=1"
        params: List[Any] = []
        for clause, value in conditions:
            if value is None or value == "":
                continue
            sql += f" AND {clause}"
            params.append(value)

        sql += " ORDER BY timestamp DESC, id DESC"

        if filters.limit:
            sql += " LIMIT ?"
            params.append(filters.limit)

        return sql, params

    async def query(self, filters: QueryFilters) -> QueryResult:
        sql, params = self._build_query(filters)
        rows = await self._run(self._fetch_all, sql, params)
        return QueryResult(success=True, data=[sanitize_record(dict(row)) for row in rows], source=self.kind)

    def _fetch_all(self, sql: str, params: List[Any]) -> List[sqlite3.Row]:
        return self._connection().execute(sql, params).fetchall()

    def _exists(self, record_id: Any) -> bool:
        row = self._connection().execute(
            f"SELECT COUNT(*) AS count FROM {TABLE_NAME} WHERE id = ?", (record_id,)
        ).fetchone()
        return row["count"] > 0

    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> UpdateResult:
        updated = await self._run(self._update_sync, record_id, dict(fields))
        return UpdateResult(success=True, updated=updated, id=record_id)

    def _update_sync(self, record_id: Any, fields: Dict[str, Any]) -> int:
        if not self._exists(record_id) or not fields:
            return 0
        set_clause = ", ".join(f"{key} = ?" for key in fields)
        with self._connection() as conn:
            cursor = conn.execute(
                f"UPDATE {TABLE_NAME} SET {set_clause} WHERE id = ?",
                list(fields.values()) + [record_id],
            )
        return cursor.rowcount

    async def delete(self, record_id: Any) -> DeleteResult:
        deleted = await self._run(self._delete_sync, record_id)
        return DeleteResult(success=True, deleted=deleted, id=record_id)

    def _delete_sync(self, record_id: Any) -> int:
        if not self._exists(record_id):
            return 0
        with self._connection() as conn:
            cursor = conn.execute(f"DELETE FROM {TABLE_NAME} WHERE id = ?", (record_id,))
        return cursor.rowcount

    async def get_stats(self) -> StatsResult:
        total, by_type, latest = await self._run(self._stats_sync)
        return StatsResult(
            success=True,
            source=self.kind,
            total=total,
            by_type=[TypeCount(**row) for row in by_type],
            latest_timestamp=latest,
        )

    def _stats_sync(self):
        conn = self._connection()
        total = conn.execute(f"SELECT COUNT(*) AS total FROM {TABLE_NAME}").fetchone()["total"]
        by_type = [
            sanitize_record(dict(row))
            for row in conn.execute(
                f"SELECT reading_type, COUNT(*) AS count FROM {TABLE_NAME} "
                f"GROUP BY reading_type ORDER BY reading_type"
            ).fetchall()
        ]
        latest = conn.execute(f"SELECT MAX(timestamp) AS latest FROM {TABLE_NAME}").fetchone()["latest"]
        return total or 0, by_type, latest

    async def close(self) -> None:
        if self.conn is None:
            return
        await self._run(self._close_sync)
        self.logger.info("SQLite connection closed")

    def _close_sync(self) -> None:
        conn, self.conn = self.conn, None
        if conn is not None:
            conn.close()
