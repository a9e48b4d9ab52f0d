"""
sensor_pipeline/data/models.py
──────────────────────────────
Pydantic v2 data models for sensor readings, processed envelopes, alerts,
sensor registry entries and analytics summaries.

Attributes are snake_case in Python; the wire form (`to_wire()`, or
`model_dump(by_alias=True)`) uses camelCase keys such as `sensorId`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config.alerts import AlertSeverity, AlertType


class SensorType(str, Enum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PRESSURE = "pressure"
    LIGHT = "light"
    VIBRATION = "vibration"
    LOCATION = "location"


NUMERIC_SENSOR_TYPES = frozenset(t for t in SensorType if t is not SensorType.LOCATION)


class SensorStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys, `None` fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class GeoPoint(WireModel):
    latitude: float
    longitude: float
    accuracy: float | None = None


class SensorReading(WireModel):
    sensor_id: str
    sensor_type: SensorType
    value: float | GeoPoint
    unit: str | None = None
    timestamp: datetime
    location: GeoPoint | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("timestamp")
    @classmethod
    def utc_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def numeric_value(self) -> float | None:
        """The scalar value, or None for location readings."""
        return None if isinstance(self.value, GeoPoint) else float(self.value)


class ProcessedData(SensorReading):
    derived_metrics: dict[str, Any] = Field(default_factory=dict)
    transformed_data: dict[str, Any] = Field(default_factory=dict)
    quality_score: int = Field(ge=0, le=100)
    processed_at: datetime
    processing_version: str

    @field_validator("processed_at")
    @classmethod
    def utc_processed_at(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def reading(self) -> SensorReading:
        """Strip the derived fields back off."""
        return SensorReading(**{name: getattr(self, name) for name in SensorReading.model_fields})


class DataAlert(WireModel):
    sensor_id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: datetime
    data: dict[str, Any] | None = None

    @field_validator("timestamp")
    @classmethod
    def utc_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


class BatchResult(WireModel):
    """Outcome of one flushed batch."""
    processed: list[ProcessedData] = Field(default_factory=list)
    alerts: list[DataAlert] = Field(default_factory=list)
    skipped: int = 0


class Threshold(WireModel):
    min: float
    max: float


class SensorConfig(WireModel):
    """Registry entry. Only `status` and `last_seen` change after registration."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=False, validate_assignment=True
    )

    id: str
    type: str
    location: GeoPoint | None = None
    thresholds: dict[SensorType, Threshold] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: SensorStatus = SensorStatus.OFFLINE
    last_seen: datetime | None = None


# ── Analytics ─────────────────────────────────────────────────────────────────

class TimeRange(WireModel):
    start: datetime
    end: datetime


class Statistics(WireModel):
    count: int
    average: float
    min: float
    max: float
    standard_deviation: float


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Trend(WireModel):
    direction: TrendDirection
    rate: float  # value units per hour


class SensorAnalytics(WireModel):
    sensor_id: str
    sensor_type: SensorType
    time_range: TimeRange
    statistics: Statistics
    trends: Trend
    anomalies: list[DataAlert] = Field(default_factory=list)
