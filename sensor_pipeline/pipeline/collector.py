"""
sensor_pipeline/pipeline/collector.py
─────────────────────────────────────
Ingestion entry point for transport messages.

Topics look like `[prefix/]{sensorId}/{sensorType}`; with the default
prefix that is e.g. `sensors/TEMP001/temperature`. The topic supplies the
sensor id and type, the JSON payload supplies the rest. A missing timestamp
defaults to the receive time and missing metadata to `{}`.

`sensors/{sensorId}/status` messages carry `{"status": "online" | "offline"}`
and only update the registry.

Accepted readings mark the sensor as seen and go to the sink (normally
`ReadingBuffer.add_to_queue`). Rejections are logged and counted, never
raised to the transport.
"""
from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from sensor_pipeline.data.models import SensorReading, SensorStatus
from sensor_pipeline.errors import ValidationError
from sensor_pipeline.pipeline.quality import utc_now
from sensor_pipeline.pipeline.registry import SensorRegistry
from sensor_pipeline.pipeline.validator import validate_reading

logger = structlog.get_logger(__name__)

ReadingSink = Callable[[SensorReading], Awaitable[Any]]

STATUS_TOPIC = "status"
DEFAULT_TOPIC_PREFIX = "sensors"


@dataclass
class CollectorStats:
    received: int = 0
    accepted: int = 0
    rejected: int = 0
    status_updates: int = 0


def parse_topic(topic: str, prefix: str | None = DEFAULT_TOPIC_PREFIX) -> tuple[str, str]:
    """Split a topic into (sensor_id, kind). Raises ValidationError on any other shape."""
    parts = topic.strip("/").split("/")
    if prefix and parts and parts[0] == prefix:
        parts = parts[1:]
    if len(parts) != 2 or not all(parts):
        raise ValidationError(f"Invalid topic format: {topic}")
    return parts[0], parts[1]


def decode_payload(payload: bytes | str | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(payload, Mapping):
        return payload
    try:
        data = json.loads(payload)
    except (ValueError, RecursionError) as exc:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors, as is the int digit limit
        raise ValidationError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError("Payload must be a JSON object")
    return data


class SensorDataCollector:
    def __init__(
        self,
        registry: SensorRegistry,
        sink: ReadingSink,
        topic_prefix: str | None = DEFAULT_TOPIC_PREFIX,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.sink = sink
        self.topic_prefix = topic_prefix
        self.clock = clock
        self.stats = CollectorStats()

    def build_reading(self, sensor_id: str, sensor_type: str, data: Mapping[str, Any], now: datetime) -> dict[str, Any]:
        """Merge topic and payload into a raw reading; topic values win."""
        return {
            "sensorId": sensor_id,
            "sensorType": sensor_type,
            "value": data.get("value"),
            "unit": data.get("unit"),
            "timestamp": data.get("timestamp") or now.isoformat(),
            "location": data.get("location"),
            "metadata": data.get("metadata") or {},
        }

    def handle_status(self, sensor_id: str, data: Mapping[str, Any], now: datetime) -> None:
        status = data.get("status")
        if status == SensorStatus.ONLINE.value:
            self.registry.mark_seen(sensor_id, now)
        elif status == SensorStatus.OFFLINE.value:
            self.registry.mark_offline(sensor_id)
        else:
            logger.warning("Ignoring unknown sensor status", sensor_id=sensor_id, status=status)
            return
        self.stats.status_updates += 1

    async def handle_message(
        self,
        topic: str,
        payload: bytes | str | Mapping[str, Any],
    ) -> SensorReading | None:
        """Returns the accepted reading, or None for status messages and rejections."""
        self.stats.received += 1
        now = self.clock()
        try:
            sensor_id, kind = parse_topic(topic, self.topic_prefix)
            data = decode_payload(payload)
            if kind == STATUS_TOPIC:
                self.handle_status(sensor_id, data, now)
                return None
            reading = validate_reading(self.build_reading(sensor_id, kind, data, now), now)
        except ValidationError as exc:
            self.stats.rejected += 1
            logger.warning("Rejected sensor message", topic=topic, reason=exc.reason)
            return None

        self.registry.mark_seen(reading.sensor_id, now)
        if await self.sink(reading) is False:
            self.stats.rejected += 1
            return None
        self.stats.accepted += 1
        logger.debug(
            "Accepted reading",
            sensor_id=reading.sensor_id,
            sensor_type=reading.sensor_type.value,
            value=reading.numeric_value,
        )
        return reading
