"""
sensor_pipeline/data/store.py
─────────────────────────────
SQLite persistence store.

Provides:
  - store_readings()        : Bulk insert raw SensorReading rows
  - store_processed_data()  : Bulk insert ProcessedData rows
  - store_alerts()          : Bulk insert DataAlert rows
  - get_readings()          : Readings for a sensor over a time range
  - get_processed_data()    : Processed rows for a sensor over a time range
  - get_alerts()            : Alerts with optional sensor/type/severity filters
  - clean_old_data()        : Drop everything older than N days

Each row keeps the full wire JSON in `payload`; the scalar columns exist for
filtering and indexing. Timestamps are stored as fixed-width UTC ISO strings
so they sort and compare as text.

Thread safety: uses check_same_thread=False + a per-store lock.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from typing import Any

import pandas as pd
import structlog

from config.settings import settings
from sensor_pipeline.data.models import DataAlert, ProcessedData, SensorReading

logger = structlog.get_logger(__name__)


def _ts(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _where(conditions: list[str]) -> str:
    return f"WHERE {' AND '.join(conditions)}" if conditions else ""


# ── Schema ────────────────────────────────────────────────────────────────────

_CREATE_READINGS = """
CREATE TABLE IF NOT EXISTS readings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    sensor_id    TEXT NOT NULL,
    sensor_type  TEXT NOT NULL,
    value        REAL,
    unit         TEXT,
    timestamp    TEXT NOT NULL,
    payload      TEXT NOT NULL
);
"""

_CREATE_PROCESSED = """
CREATE TABLE IF NOT EXISTS processed_data (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    sensor_id           TEXT NOT NULL,
    sensor_type         TEXT NOT NULL,
    value               REAL,
    quality_score       INTEGER NOT NULL,
    timestamp           TEXT NOT NULL,
    processed_at        TEXT NOT NULL,
    processing_version  TEXT NOT NULL,
    payload             TEXT NOT NULL
);
"""

_CREATE_ALERTS = """
CREATE TABLE IF NOT EXISTS alerts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    sensor_id   TEXT NOT NULL,
    type        TEXT NOT NULL,
    severity    TEXT NOT NULL,
    message     TEXT NOT NULL,
    timestamp   TEXT NOT NULL,
    payload     TEXT NOT NULL
);
"""

_CREATE_IDX = """
CREATE INDEX IF NOT EXISTS idx_readings_sensor_ts  ON readings       (sensor_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_processed_sensor_ts ON processed_data (sensor_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_alerts_sensor_ts    ON alerts         (sensor_id, timestamp);
"""

_TABLES = ("readings", "processed_data", "alerts")


class SQLiteStore:
    def __init__(self, path: str = settings.DATABASE_URL):
        self.path = path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(_CREATE_READINGS + _CREATE_PROCESSED + _CREATE_ALERTS + _CREATE_IDX)

    # ── Writes ────────────────────────────────────────────────────────────────

    def insert_readings(self, readings: list[SensorReading]) -> int:
        if not readings:
            return 0
        rows = [
            (
                r.sensor_id,
                r.sensor_type.value,
                r.numeric_value,
                r.unit,
                _ts(r.timestamp),
                json.dumps(r.to_wire()),
            )
            for r in readings
        ]
        with self._lock, self._conn:
            self._conn.executemany(
                """INSERT INTO readings (sensor_id, sensor_type, value, unit, timestamp, payload)
                   VALUES (?,?,?,?,?,?)""",
                rows,
            )
        return len(rows)

    def insert_processed_data(self, batch: list[ProcessedData]) -> int:
        if not batch:
            return 0
        rows = [
            (
                p.sensor_id,
                p.sensor_type.value,
                p.numeric_value,
                p.quality_score,
                _ts(p.timestamp),
                _ts(p.processed_at),
                p.processing_version,
                json.dumps(p.to_wire()),
            )
            for p in batch
        ]
        with self._lock, self._conn:
            self._conn.executemany(
                """INSERT INTO processed_data
                   (sensor_id, sensor_type, value, quality_score, timestamp,
                    processed_at, processing_version, payload)
                   VALUES (?,?,?,?,?,?,?,?)""",
                rows,
            )
        return len(rows)

    def insert_alerts(self, alerts: list[DataAlert]) -> int:
        if not alerts:
            return 0
        rows = [
            (
                a.sensor_id,
                a.type.value,
                a.severity.value,
                a.message,
                _ts(a.timestamp),
                json.dumps(a.to_wire()),
            )
            for a in alerts
        ]
        with self._lock, self._conn:
            self._conn.executemany(
                """INSERT INTO alerts (sensor_id, type, severity, message, timestamp, payload)
                   VALUES (?,?,?,?,?,?)""",
                rows,
            )
        return len(rows)

    # PersistenceStore protocol; local disk writes are short enough to run inline
    async def store_readings(self, readings: list[SensorReading]) -> int:
        return self.insert_readings(readings)

    async def store_processed_data(self, batch: list[ProcessedData]) -> int:
        return self.insert_processed_data(batch)

    async def store_alerts(self, alerts: list[DataAlert]) -> int:
        return self.insert_alerts(alerts)

    # ── Range queries ─────────────────────────────────────────────────────────

    def _query(self, sql: str, params: list[Any], time_columns: tuple[str, ...]) -> pd.DataFrame:
        with self._lock:
            df = pd.read_sql_query(sql, self._conn, params=params)
        if not df.empty:
            for column in time_columns:
                df[column] = pd.to_datetime(df[column], utc=True, format="ISO8601")
        return df

    @staticmethod
    def _range_clause(
        sensor_id: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> tuple[list[str], list[Any]]:
        where: list[str] = []
        params: list[Any] = []
        if sensor_id:
            where.append("sensor_id = ?")
            params.append(sensor_id)
        if start is not None:
            where.append("timestamp >= ?")
            params.append(_ts(start))
        if end is not None:
            where.append("timestamp <= ?")
            params.append(_ts(end))
        return where, params

    def get_readings(
        self,
        sensor_id: str | None,
        start: datetime | None = None,
        end: datetime | None = None,
        sensor_type: str | None = None,
        limit: int = 10_000,
    ) -> pd.DataFrame:
        """Readings for a sensor within [start, end], oldest first."""
        where, params = self._range_clause(sensor_id, start, end)
        if sensor_type:
            where.append("sensor_type = ?")
            params.append(sensor_type)
        sql = f"""SELECT sensor_id, sensor_type, value, unit, timestamp, payload FROM readings
                  {_where(where)}
                  ORDER BY timestamp ASC LIMIT ?"""
        params.append(limit)
        return self._query(sql, params, ("timestamp",))

    def get_processed_data(
        self,
        sensor_id: str | None,
        start: datetime | None = None,
        end: datetime | None = None,
        sensor_type: str | None = None,
        limit: int = 10_000,
    ) -> pd.DataFrame:
        where, params = self._range_clause(sensor_id, start, end)
        if sensor_type:
            where.append("sensor_type = ?")
            params.append(sensor_type)
        sql = f"""SELECT sensor_id, sensor_type, value, quality_score, timestamp,
                         processed_at, processing_version, payload
                  FROM processed_data
                  {_where(where)}
                  ORDER BY timestamp ASC LIMIT ?"""
        params.append(limit)
        return self._query(sql, params, ("timestamp", "processed_at"))

    def get_alerts(
        self,
        sensor_id: str | None = None,
        alert_type: str | None = None,
        severity: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> pd.DataFrame:
        """Alerts with optional filters, newest first."""
        where, params = self._range_clause(sensor_id, start, end)
        if alert_type:
            where.append("type = ?")
            params.append(alert_type)
        if severity:
            where.append("severity = ?")
            params.append(severity)
        clause = _where(where)
        sql = f"""SELECT sensor_id, type, severity, message, timestamp, payload FROM alerts
                  {clause}
                  ORDER BY timestamp DESC LIMIT ?"""
        params.append(limit)
        return self._query(sql, params, ("timestamp",))

    def count(self, table: str) -> int:
        if table not in _TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self._lock:
            return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def clean_old_data(self, older_than_days: int = 30, now: datetime | None = None) -> dict[str, int]:
        """Delete rows older than the cutoff; returns deleted counts per table."""
        cutoff = _ts((now or datetime.now(tz=UTC)) - timedelta(days=older_than_days))
        deleted: dict[str, int] = {}
        with self._lock, self._conn:
            for table in _TABLES:
                cursor = self._conn.execute(f"DELETE FROM {table} WHERE timestamp < ?", (cutoff,))
                deleted[table] = cursor.rowcount
        logger.info("Cleaned old data", cutoff=cutoff, **deleted)
        return deleted

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def aclose(self) -> None:
        self.close()
