"""
DuckDB storage backend.

Stores readings in a DuckDB database file. Uses ordinal ``$n`` placeholders,
TIMESTAMP columns holding naive UTC values, and a sequence for monotonic ids.
Aggregates are read through pandas and narrowed by the sanitizer before they
leave the backend.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import duckdb

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
from sensor_store.storage.schema import INSERT_COLUMNS, TABLE_NAME, TIMESTAMP_COLUMNS, row_values
from sensor_store.utils import StorageNotInitializedError, sanitize_record, sanitize_value, to_naive_utc

CREATE_SEQUENCE_SQL = "CREATE SEQUENCE IF NOT EXISTS sensor_data_seq START 1"
DROP_TABLE_SQL = f"DROP TABLE IF EXISTS {TABLE_NAME}"
CREATE_TABLE_SQL = f"""
    CREATE TABLE {TABLE_NAME} (
        id BIGINT PRIMARY KEY DEFAULT nextval('sensor_data_seq'),
        sensor_id VARCHAR,
        timestamp TIMESTAMP,
        reading_type VARCHAR,
        value DOUBLE,
        unit VARCHAR,
        field VARCHAR,
        latitude DOUBLE,
        longitude DOUBLE,
        battery_level INTEGER,
        signal_strength INTEGER,
        data_quality VARCHAR,
        processed_timestamp TIMESTAMP,
        quality_score INTEGER,
        created_at TIMESTAMP
    )
"""

INSERT_SQL = (
    f"INSERT INTO {TABLE_NAME} ({', '.join(INSERT_COLUMNS)}, created_at) "
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(INSERT_COLUMNS) + 2))})"
)


def _db_value(column: str, value: Any) -> Any:
    if column in TIMESTAMP_COLUMNS:
        return to_naive_utc(value)
    return value


class DuckDBBackend(StorageBackend):
    """Analytical engine backend on an embedded DuckDB file."""

    kind = BackendKind.ANALYTICAL

    def __init__(self, db_path: str):
        super().__init__(db_path)
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self.conn is None:
            raise StorageNotInitializedError("DuckDB connection is closed")
        return self.conn

    async def open(self) -> None:
        Path(self.location).parent.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Creating DuckDB database at: {self.location}")
        await self._run(self._open_sync)
        self.logger.info(f"DuckDB initialized successfully: {self.location}")

    def _open_sync(self) -> None:
        self.conn = duckdb.connect(self.location)
        # CREATE TABLE is not idempotent here, so the table is rebuilt on every open.
        # The sequence survives, keeping ids monotonic within the file.
        self.conn.execute(CREATE_SEQUENCE_SQL)
        self.conn.execute(DROP_TABLE_SQL)
        self.conn.execute(CREATE_TABLE_SQL)

    async def insert(self, records: List[Dict[str, Any]]) -> InsertResult:
        await self._run(self._insert_sync, records)
        self.logger.info(f"Data inserted into DuckDB: {len(records)} records")
        return InsertResult(success=True, record_count=len(records), source=self.kind)

    def _insert_sync(self, records: List[Dict[str, Any]]) -> None:
        conn = self._connection()
        created_at = datetime.now(timezone.utc).replace(tzinfo=None)
        params = [
            [_db_value(col, val) for col, val in zip(INSERT_COLUMNS, row_values(record))] + [created_at]
            for record in records
        ]
        if not params:
            return
        # One transaction per batch: either every record lands or none does.
        conn.begin()
        try:
            conn.executemany(INSERT_SQL, params)
        except Exception:
            conn.rollback()
            raise
        conn.commit()

    @staticmethod
    def _build_query(filters: QueryFilters) -> Tuple[str, List[Any]]:
        conditions = [
            ("sensor_id =", filters.sensor_id),
            ("reading_type =", filters.reading_type),
            ("timestamp >=", to_naive_utc(filters.start_date)),
            ("timestamp <=", to_naive_utc(filters.end_date)),
            ("field =", filters.field),
        ]

        sql = f"SELECT * FROM {TABLE_NAME} WHERE 1=1"
        params: List[Any] = []
        for clause, value in conditions:
            if value is None or value == "":
                continue
            params.append(value)
            sql += f" AND {clause} ${len(params)}"

        sql += " ORDER BY timestamp DESC, id DESC"

        if filters.limit:
            # limit is validated as a positive int by QueryFilters
            sql += f" LIMIT {int(filters.limit)}"

        return sql, params

    async def query(self, filters: QueryFilters) -> QueryResult:
        sql, params = self._build_query(filters)
        rows = await self._run(self._fetch_all, sql, params)
        return QueryResult(success=True, data=[sanitize_record(row) for row in rows], source=self.kind)

    def _fetch_all(self, sql: str, params: List[Any]) -> List[Dict[str, Any]]:
        cursor = self._connection().execute(sql, params)
        columns = [d[0] for d in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _exists(self, record_id: Any) -> bool:
        count = self._connection().execute(
            f"SELECT COUNT(*) AS count FROM {TABLE_NAME} WHERE id = $1", [record_id]
        ).fetchone()[0]
        return sanitize_value(count) > 0

    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> UpdateResult:
        updated = await self._run(self._update_sync, record_id, dict(fields))
        return UpdateResult(success=True, updated=updated, id=record_id)

    def _update_sync(self, record_id: Any, fields: Dict[str, Any]) -> int:
        if not self._exists(record_id) or not fields:
            return 0
        set_clause = ", ".join(f"{key} = ${i}" for i, key in enumerate(fields, start=2))
        params = [record_id] + [_db_value(key, value) for key, value in fields.items()]
        self._connection().execute(f"UPDATE {TABLE_NAME} SET {set_clause} WHERE id = $1", params)
        return 1

    async def delete(self, record_id: Any) -> DeleteResult:
        deleted = await self._run(self._delete_sync, record_id)
        return DeleteResult(success=True, deleted=deleted, id=record_id)

    def _delete_sync(self, record_id: Any) -> int:
        if not self._exists(record_id):
            return 0
        self._connection().execute(f"DELETE FROM {TABLE_NAME} WHERE id = $1", [record_id])
        return 1

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
        count_df = conn.execute(f"SELECT COUNT(*) AS total FROM {TABLE_NAME}").fetchdf()
        type_df = conn.execute(
            f"SELECT reading_type, COUNT(*) AS count FROM {TABLE_NAME} "
            f"GROUP BY reading_type ORDER BY reading_type"
        ).fetchdf()
        latest_df = conn.execute(f"SELECT MAX(timestamp) AS latest FROM {TABLE_NAME}").fetchdf()

        total = sanitize_record(count_df.iloc[0].to_dict())["total"] if len(count_df) else 0
        by_type = [sanitize_record(row) for row in type_df.to_dict("records")]
        latest = sanitize_record(latest_df.iloc[0].to_dict())["latest"] if len(latest_df) else None
        return total or 0, by_type, latest

    async def read_parquet(
        self,
        file_path: str,
        where: Optional[str] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read a Parquet file with DuckDB's native reader.

        Args:
            file_path: Path to the Parquet file
            where: Optional SQL predicate applied to the file's rows
            order_by: Optional ORDER BY expression
            limit: Optional row limit

        Returns:
            Sanitized rows
        """
        quoted_path = str(file_path).replace("'", "''")
        sql = f"SELECT * FROM read_parquet('{quoted_path}')"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        if limit:
            sql += f" LIMIT {int(limit)}"
        rows = await self._run(self._fetch_all, sql, [])
        self.logger.info(f"Read {len(rows)} rows from Parquet file {file_path}")
        return [sanitize_record(row) for row in rows]

    async def close(self) -> None:
        if self.conn is None:
            return
        await self._run(self._close_sync)
        self.logger.info("DuckDB connection closed")

    def _close_sync(self) -> None:
        conn, self.conn = self.conn, None
        if conn is not None:
            conn.close()
