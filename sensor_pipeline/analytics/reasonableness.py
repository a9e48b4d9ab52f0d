"""
sensor_pipeline/analytics/reasonableness.py
───────────────────────────────────────────
Reasonableness checks feeding the quality scorer.

Validation already enforces hard limits; these checks judge whether a valid
value is *plausible*. The default never objects. `PlausibleRangeCheck`
compares against typical hardware bands from config/sensors.py, and
`FlatlineCheck` flags a sensor that keeps reporting the exact same value.
"""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Protocol

from config.sensors import PLAUSIBLE_RANGES, ValueRange
from sensor_pipeline.data.models import SensorReading
from sensor_pipeline.errors import ConfigurationError


class ReasonablenessCheck(Protocol):
    def is_reasonable(self, reading: SensorReading) -> bool: ...


class AlwaysReasonable:
    def is_reasonable(self, reading: SensorReading) -> bool:
        return True


class PlausibleRangeCheck:
    def __init__(self, ranges: dict[str, ValueRange] | None = None):
        self.ranges = ranges if ranges is not None else PLAUSIBLE_RANGES

    def is_reasonable(self, reading: SensorReading) -> bool:
        value = reading.numeric_value
        band = self.ranges.get(reading.sensor_type.value)
        if value is None or band is None:
            return True
        return band.contains(value)


class FlatlineCheck:
    """
    Unreasonable once the last `window` values of a (sensor, type) stream
    are all identical. Keeps its own bounded history per stream.
    """

    def __init__(self, window: int = 10):
        if window < 2:
            raise ConfigurationError("flatline window must be at least 2")
        self.window = window
        self._history: dict[tuple[str, str], deque[float]] = defaultdict(lambda: deque(maxlen=self.window))

    def is_reasonable(self, reading: SensorReading) -> bool:
        value = reading.numeric_value
        if value is None:
            return True
        history = self._history[(reading.sensor_id, reading.sensor_type.value)]
        history.append(value)
        return len(history) < self.window or len(set(history)) > 1
