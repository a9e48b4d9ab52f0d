"""
sensor_pipeline/connectors/base.py
──────────────────────────────────
Shapes of the downstream collaborators the pipeline hands results to.

The pipeline never encodes contract calls, content addressing or storage
schemas itself; it only calls these methods and treats returned ids as
opaque strings.
"""
from __future__ import annotations

from typing import Any, Protocol

from sensor_pipeline.data.models import DataAlert, ProcessedData, SensorReading


class LedgerClient(Protocol):
    """Contract layer; owns encoding, confirmation and retry."""

    async def submit_processed_data(self, data: ProcessedData) -> str: ...

    async def submit_alert(self, alert: DataAlert) -> str: ...


class ContentStore(Protocol):
    """Content-addressed store; `add` returns a content identifier."""

    async def add(self, document: dict[str, Any]) -> str: ...

    async def get(self, cid: str) -> dict[str, Any]: ...


class PersistenceStore(Protocol):
    """Durable store with later range queries by sensor and time."""

    async def store_readings(self, readings: list[SensorReading]) -> int: ...

    async def store_processed_data(self, batch: list[ProcessedData]) -> int: ...

    async def store_alerts(self, alerts: list[DataAlert]) -> int: ...


class Notifier(Protocol):
    async def notify(self, alerts: list[DataAlert]) -> None: ...
