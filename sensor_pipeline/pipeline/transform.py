"""
sensor_pipeline/pipeline/transform.py
─────────────────────────────────────
Transform & derivation engine: validated SensorReading → ProcessedData.

Per type derived metrics:
  temperature  celsius, fahrenheit, kelvin
  humidity     relativeHumidity, dewPoint (Magnus, ambient fixed at 20 °C)
  pressure     pascal, bar, atmosphere
  location     latitude, longitude, accuracy passthrough

Normalization to [0, 1] uses fixed domain bounds (config/sensors.py);
light and vibration pass through unchanged.

The engine keeps no state between readings, so a batch can be processed in
any order. Smoothing is delegated to a `Smoother`; the default returns the
raw value because real temporal smoothing needs history the engine does not
hold.
"""
from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Protocol

import structlog

from config.sensors import DEW_POINT_AMBIENT_C, NORMALIZATION, SMOOTHED_TYPES
from config.settings import settings
from sensor_pipeline.data.models import GeoPoint, ProcessedData, SensorReading, SensorType
from sensor_pipeline.errors import ProcessingError
from sensor_pipeline.pipeline.quality import QualityScorer, utc_now

logger = structlog.get_logger(__name__)

# Magnus coefficients
MAGNUS_A = 17.27
MAGNUS_B = 237.7


class Smoother(Protocol):
    def smooth(self, reading: SensorReading) -> float: ...


class PassthroughSmoother:
    def smooth(self, reading: SensorReading) -> float:
        return float(reading.value)


# ── Derivations ───────────────────────────────────────────────────────────────

def dew_point(humidity: float, temperature: float = DEW_POINT_AMBIENT_C) -> float | None:
    """
    Magnus approximation:
      α = (a·T)/(b+T) + ln(RH/100)
      Td = (b·α)/(a−α)

    Returns None at 0 % RH, where the logarithm is undefined.
    """
    if humidity <= 0:
        return None
    alpha = (MAGNUS_A * temperature) / (MAGNUS_B + temperature) + math.log(humidity / 100.0)
    return (MAGNUS_B * alpha) / (MAGNUS_A - alpha)


def derive_metrics(reading: SensorReading) -> dict[str, Any]:
    value = reading.value

    if reading.sensor_type is SensorType.TEMPERATURE:
        return {
            "celsius": value,
            "fahrenheit": value * 9 / 5 + 32,
            "kelvin": value + 273.15,
        }
    if reading.sensor_type is SensorType.HUMIDITY:
        return {
            "relativeHumidity": value,
            "dewPoint": dew_point(value),
        }
    if reading.sensor_type is SensorType.PRESSURE:
        return {
            "pascal": value,
            "bar": value / 100_000,
            "atmosphere": value / 101_325,
        }
    if reading.sensor_type is SensorType.LOCATION and isinstance(value, GeoPoint):
        return {
            "latitude": value.latitude,
            "longitude": value.longitude,
            "accuracy": value.accuracy,
        }
    return {}


def normalize_value(reading: SensorReading) -> float:
    if isinstance(reading.value, GeoPoint):
        return 0.0
    bounds = NORMALIZATION.get(reading.sensor_type.value)
    if bounds is None:
        return float(reading.value)
    offset, span = bounds
    return (reading.value + offset) / span


def apply_transformations(reading: SensorReading, smoother: Smoother | None = None) -> dict[str, Any]:
    original = reading.value.model_dump() if isinstance(reading.value, GeoPoint) else reading.value
    transformed: dict[str, Any] = {
        "originalValue": original,
        "normalizedValue": normalize_value(reading),
        "timestamp": int(reading.timestamp.timestamp() * 1000),
        "sensorId": reading.sensor_id.upper(),
        "sensorType": reading.sensor_type.value.lower(),
    }
    if reading.sensor_type.value in SMOOTHED_TYPES:
        transformed["smoothedValue"] = (smoother or PassthroughSmoother()).smooth(reading)
    return transformed


# ── Engine ────────────────────────────────────────────────────────────────────

class TransformEngine:
    def __init__(
        self,
        scorer: QualityScorer | None = None,
        smoother: Smoother | None = None,
        processing_version: str = settings.PROCESSING_VERSION,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.scorer = scorer or QualityScorer(clock=clock)
        self.smoother = smoother or PassthroughSmoother()
        self.processing_version = processing_version
        self.clock = clock

    def process(self, reading: SensorReading, now: datetime | None = None) -> ProcessedData:
        """
        Build the ProcessedData envelope for one reading.

        Raises:
            ProcessingError: if any derivation or scoring step fails.
        """
        now = now or self.clock()
        try:
            return ProcessedData(
                **{name: getattr(reading, name) for name in SensorReading.model_fields},
                derived_metrics=derive_metrics(reading),
                transformed_data=apply_transformations(reading, self.smoother),
                quality_score=self.scorer.score(reading, now),
                # A reading stamped slightly in the future still gets processedAt ≥ timestamp
                processed_at=max(now, reading.timestamp),
                processing_version=self.processing_version,
            )
        except Exception as exc:
            raise ProcessingError(reading.sensor_id, f"{type(exc).__name__}: {exc}") from exc

    def process_batch(
        self,
        readings: Iterable[SensorReading],
        now: datetime | None = None,
    ) -> tuple[list[ProcessedData], list[ProcessingError]]:
        """Process every reading; a failing item is logged and skipped, never fatal to the batch."""
        now = now or self.clock()
        processed: list[ProcessedData] = []
        failures: list[ProcessingError] = []

        for reading in readings:
            try:
                processed.append(self.process(reading, now))
            except ProcessingError as exc:
                logger.error(
                    "Skipping reading that failed processing",
                    sensor_id=exc.sensor_id,
                    sensor_type=reading.sensor_type.value,
                    reason=exc.reason,
                )
                failures.append(exc)

        return processed, failures
