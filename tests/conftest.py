"""
tests/conftest.py
─────────────────
Shared pytest fixtures for the sensor pipeline test suite.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# Use in-memory SQLite and deterministic simulation for tests
os.environ.setdefault("DATABASE_URL", ":memory:")
os.environ.setdefault("SIMULATION_SEED", "42")


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def raw_temperature(now) -> dict:
    """Transport-shaped payload, camelCase keys."""
    return {
        "sensorId": "TEMP001",
        "sensorType": "temperature",
        "value": 22.5,
        "unit": "celsius",
        "timestamp": now.isoformat(),
    }


@pytest.fixture
def make_reading(now):
    """Factory for valid SensorReading objects."""
    from sensor_pipeline.data.models import SensorReading, SensorType

    def _make(
        sensor_type: str = "temperature",
        value=22.5,
        sensor_id: str = "TEMP001",
        age: timedelta = timedelta(0),
        metadata: dict | None = None,
    ) -> SensorReading:
        return SensorReading(
            sensor_id=sensor_id,
            sensor_type=SensorType(sensor_type),
            value=value,
            timestamp=now - age,
            metadata=metadata,
        )

    return _make


@pytest.fixture
def make_processed(make_reading, now):
    """Factory for ProcessedData with a chosen quality score."""
    from sensor_pipeline.pipeline.transform import TransformEngine

    engine = TransformEngine(clock=lambda: now)

    def _make(quality_score: int | None = None, **reading_kwargs):
        processed = engine.process(make_reading(**reading_kwargs), now)
        if quality_score is None:
            return processed
        return processed.model_copy(update={"quality_score": quality_score})

    return _make


@pytest.fixture
def pressure_registry():
    """PRESSURE1 registered with a 950..1050 pressure band."""
    from sensor_pipeline.data.models import SensorConfig, SensorType, Threshold
    from sensor_pipeline.pipeline.registry import SensorRegistry

    return SensorRegistry([
        SensorConfig(
            id="PRESSURE1",
            type="barometer",
            thresholds={SensorType.PRESSURE: Threshold(min=950, max=1050)},
        )
    ])
