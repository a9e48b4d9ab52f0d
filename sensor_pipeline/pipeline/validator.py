"""
sensor_pipeline/pipeline/validator.py
─────────────────────────────────────
Structural and domain-range validation of single readings.

Checks run in a fixed order and stop at the first failure:
  1. required fields present (sensorId, sensorType, value, timestamp)
  2. sensorId charset and length
  3. timestamp parses and lies within [-30 days, +1 hour] of `now`
  4. type-specific value range
  5. metadata is a JSON-serializable, acyclic object of at most 1 MiB
  6. optional device location has valid coordinates

Every failure raises `ValidationError` with a specific reason. Nothing here
mutates its input or touches shared state.
"""
from __future__ import annotations

import json
import math
import numbers
import re
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from config.alerts import AlertSeverity, AlertType
from config.sensors import (
    LATITUDE_RANGE,
    LONGITUDE_RANGE,
    MAX_FUTURE_SKEW_S,
    MAX_METADATA_BYTES,
    MAX_PAST_AGE_S,
    SENSOR_ID_MAX_LENGTH,
    SENSOR_ID_PATTERN,
    VALIDATION_RANGES,
    ValueRange,
)
from sensor_pipeline.data.models import DataAlert, GeoPoint, ProcessedData, SensorReading, SensorType
from sensor_pipeline.errors import ValidationError

_SENSOR_ID_RE = re.compile(SENSOR_ID_PATTERN)

# (wire key, snake_case key, message when missing)
_REQUIRED_FIELDS = (
    ("sensorId", "sensor_id", "Sensor ID is required"),
    ("sensorType", "sensor_type", "Sensor type is required"),
    ("value", "value", "Sensor value is required"),
    ("timestamp", "timestamp", "Timestamp is required"),
)


def _field(payload: Mapping[str, Any], wire_key: str, snake_key: str) -> Any:
    if wire_key in payload:
        return payload[wire_key]
    return payload.get(snake_key)


def _is_number(value: Any) -> bool:
    if not isinstance(value, numbers.Real) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def _range_message(sensor_type: str, bounds: ValueRange) -> str:
    if bounds.max is None:
        return f"Invalid {sensor_type} value (must be non-negative)"
    return f"Invalid {sensor_type} value (must be between {bounds.min:g} and {bounds.max:g})"


def _reading_payload(reading: SensorReading) -> dict[str, Any]:
    # Built by hand: model_dump would choke on cyclic metadata before we can report it.
    return {
        "sensorId": reading.sensor_id,
        "sensorType": reading.sensor_type.value,
        "value": reading.value,
        "unit": reading.unit,
        "timestamp": reading.timestamp,
        "location": reading.location,
        "metadata": reading.metadata,
    }


# ── Field validators ──────────────────────────────────────────────────────────

def validate_sensor_id(sensor_id: Any) -> str:
    if sensor_id is None or sensor_id == "":
        raise ValidationError("Sensor ID is required")
    if not isinstance(sensor_id, str):
        raise ValidationError("Sensor ID must be a string")
    if len(sensor_id) > SENSOR_ID_MAX_LENGTH:
        raise ValidationError(f"Sensor ID is too long (max {SENSOR_ID_MAX_LENGTH} characters)")
    if not _SENSOR_ID_RE.fullmatch(sensor_id):
        raise ValidationError(
            "Sensor ID contains invalid characters (only alphanumeric, underscore, and hyphen allowed)"
        )
    return sensor_id


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass a datetime through) as an aware UTC instant."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError("Invalid timestamp format") from exc
    else:
        raise ValidationError("Invalid timestamp format")
    return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed.astimezone(UTC)


def validate_timestamp(value: Any, now: datetime | None = None) -> datetime:
    if value is None or value == "":
        raise ValidationError("Timestamp is required")
    timestamp = parse_timestamp(value)
    now = now or datetime.now(tz=UTC)

    if timestamp - now > timedelta(seconds=MAX_FUTURE_SKEW_S):
        raise ValidationError("Timestamp cannot be more than 1 hour in the future")
    if now - timestamp > timedelta(seconds=MAX_PAST_AGE_S):
        raise ValidationError("Timestamp cannot be more than 30 days in the past")
    return timestamp


def validate_location(location: Any, *, label: str = "location") -> GeoPoint:
    """Coordinates must be numeric, in range, with a non-negative accuracy if given."""
    if isinstance(location, GeoPoint):
        location = location.model_dump()
    if not isinstance(location, Mapping):
        raise ValidationError(f"Invalid {label} value (must have latitude and longitude)")

    latitude = location.get("latitude")
    longitude = location.get("longitude")
    if not _is_number(latitude) or not _is_number(longitude):
        raise ValidationError(f"Invalid {label} value (must have latitude and longitude)")
    if not LATITUDE_RANGE.contains(latitude):
        raise ValidationError("Invalid latitude (must be between -90 and 90)")
    if not LONGITUDE_RANGE.contains(longitude):
        raise ValidationError("Invalid longitude (must be between -180 and 180)")

    accuracy = location.get("accuracy")
    if accuracy is not None and (not _is_number(accuracy) or accuracy < 0):
        raise ValidationError("Invalid accuracy (must be non-negative)")

    return GeoPoint(latitude=latitude, longitude=longitude, accuracy=accuracy)


def validate_value(sensor_type: Any, value: Any) -> tuple[SensorType, float | GeoPoint]:
    try:
        kind = SensorType(sensor_type)
    except ValueError:
        raise ValidationError(f"Unknown sensor type: {sensor_type}") from None

    if kind is SensorType.LOCATION:
        return kind, validate_location(value)

    bounds = VALIDATION_RANGES[kind.value]
    if not _is_number(value) or not bounds.contains(value):
        raise ValidationError(_range_message(kind.value, bounds))
    return kind, float(value)


def validate_metadata(metadata: Any) -> dict[str, Any]:
    if not isinstance(metadata, Mapping):
        raise ValidationError("Metadata must be an object")
    if not all(isinstance(key, str) for key in metadata):
        raise ValidationError("Metadata keys must be strings")

    try:
        serialized = json.dumps(metadata, separators=(",", ":"))
    except ValueError as exc:
        # json raises ValueError("Circular reference detected") on cycles
        raise ValidationError("Metadata contains circular references") from exc
    except TypeError as exc:
        raise ValidationError("Metadata must be JSON-serializable") from exc

    if len(serialized.encode("utf-8")) > MAX_METADATA_BYTES:
        raise ValidationError("Metadata is too large (max 1MB)")
    return dict(metadata)


# ── Public API ────────────────────────────────────────────────────────────────

def validate_reading(
    reading: Mapping[str, Any] | SensorReading,
    now: datetime | None = None,
) -> SensorReading:
    """
    Validate a raw transport payload (camelCase or snake_case keys) or an
    existing SensorReading.

    Returns:
        A fully valid SensorReading.

    Raises:
        ValidationError: with the reason for the first failed check.
    """
    payload = _reading_payload(reading) if isinstance(reading, SensorReading) else reading
    if not isinstance(payload, Mapping):
        raise ValidationError("Reading must be an object")

    for wire_key, snake_key, message in _REQUIRED_FIELDS:
        field_value = _field(payload, wire_key, snake_key)
        if field_value is None or field_value == "":
            raise ValidationError(message)

    sensor_id = validate_sensor_id(_field(payload, "sensorId", "sensor_id"))
    timestamp = validate_timestamp(_field(payload, "timestamp", "timestamp"), now)
    sensor_type, value = validate_value(
        _field(payload, "sensorType", "sensor_type"), _field(payload, "value", "value")
    )

    metadata = _field(payload, "metadata", "metadata")
    if metadata is not None:
        metadata = validate_metadata(metadata)

    location = _field(payload, "location", "location")
    if location is not None:
        location = validate_location(location, label="device location")

    unit = _field(payload, "unit", "unit")
    if unit is not None and not isinstance(unit, str):
        raise ValidationError("Unit must be a string")

    try:
        return SensorReading(
            sensor_id=sensor_id,
            sensor_type=sensor_type,
            value=value,
            unit=unit,
            timestamp=timestamp,
            location=location,
            metadata=metadata,
        )
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed reading: {exc.errors()[0]['msg']}") from exc


def is_valid(reading: Mapping[str, Any] | SensorReading, now: datetime | None = None) -> bool:
    try:
        validate_reading(reading, now)
    except ValidationError:
        return False
    return True


def validate_processed_data(data: ProcessedData, now: datetime | None = None) -> ProcessedData:
    """Re-check the embedded reading plus the envelope fields."""
    validate_reading(data.reading(), now)

    if not 0 <= data.quality_score <= 100:
        raise ValidationError("Invalid quality score (must be between 0 and 100)")
    if data.processed_at < data.timestamp:
        raise ValidationError("Processed timestamp cannot precede the reading timestamp")
    if not data.processing_version:
        raise ValidationError("Processing version is required")
    return data


def validate_alert(alert: Mapping[str, Any] | DataAlert) -> DataAlert:
    if isinstance(alert, DataAlert):
        alert = alert.model_dump(by_alias=True)
    if not isinstance(alert, Mapping):
        raise ValidationError("Alert must be an object")

    sensor_id = _field(alert, "sensorId", "sensor_id")
    if not sensor_id:
        raise ValidationError("Sensor ID is required")

    alert_type = alert.get("type")
    if not alert_type:
        raise ValidationError("Alert type is required")
    try:
        alert_type = AlertType(alert_type)
    except ValueError:
        raise ValidationError(f"Unknown alert type: {alert_type}") from None

    try:
        severity = AlertSeverity(alert.get("severity"))
    except ValueError:
        raise ValidationError("Invalid alert severity (must be low, medium, high, or critical)") from None

    message = alert.get("message")
    if not message:
        raise ValidationError("Alert message is required")

    timestamp = alert.get("timestamp")
    if timestamp is None or timestamp == "":
        raise ValidationError("Alert timestamp is required")

    return DataAlert(
        sensor_id=sensor_id,
        type=alert_type,
        severity=severity,
        message=message,
        timestamp=parse_timestamp(timestamp),
        data=alert.get("data"),
    )
