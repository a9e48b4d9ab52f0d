"""
sensor_pipeline/pipeline/registry.py
────────────────────────────────────
In-process view of the sensor registry.

Entries are created by `register()` and never removed here; removing a
sensor is an administrative action owned outside the pipeline. Observed
readings flip a sensor online, the liveness watcher flips it offline.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from sensor_pipeline.data.models import (
    NUMERIC_SENSOR_TYPES,
    SensorConfig,
    SensorStatus,
    SensorType,
    Threshold,
)
from sensor_pipeline.errors import ConfigurationError

logger = structlog.get_logger(__name__)


def check_thresholds(config: SensorConfig) -> None:
    for sensor_type, threshold in config.thresholds.items():
        if sensor_type not in NUMERIC_SENSOR_TYPES:
            raise ConfigurationError(f"{config.id}: thresholds are not supported for {sensor_type.value}")
        if threshold.min > threshold.max:
            raise ConfigurationError(
                f"{config.id}: {sensor_type.value} threshold min {threshold.min:g} exceeds max {threshold.max:g}"
            )


class SensorRegistry:
    def __init__(self, configs: Iterable[SensorConfig] = ()):
        self._sensors: dict[str, SensorConfig] = {}
        for config in configs:
            self.register(config)

    def register(self, config: SensorConfig) -> SensorConfig:
        """Add (or replace) a sensor entry. Invalid thresholds fail fast."""
        check_thresholds(config)
        self._sensors[config.id] = config
        logger.info("Registered sensor", sensor_id=config.id, sensor_type=config.type)
        return config

    def get(self, sensor_id: str) -> SensorConfig | None:
        return self._sensors.get(sensor_id)

    def all(self) -> list[SensorConfig]:
        return list(self._sensors.values())

    def __contains__(self, sensor_id: object) -> bool:
        return sensor_id in self._sensors

    def __len__(self) -> int:
        return len(self._sensors)

    def thresholds_for(self, sensor_id: str, sensor_type: SensorType) -> Threshold | None:
        config = self._sensors.get(sensor_id)
        if config is None:
            return None
        return config.thresholds.get(sensor_type)

    def mark_seen(self, sensor_id: str, at: datetime | None = None) -> SensorConfig | None:
        """Record a reading from a registered sensor; unknown ids are ignored."""
        config = self._sensors.get(sensor_id)
        if config is None:
            return None
        if config.status is not SensorStatus.ONLINE:
            logger.info("Sensor online", sensor_id=sensor_id)
        config.status = SensorStatus.ONLINE
        config.last_seen = at or datetime.now(tz=UTC)
        return config

    def mark_offline(self, sensor_id: str) -> SensorConfig | None:
        config = self._sensors.get(sensor_id)
        if config is None:
            return None
        if config.status is not SensorStatus.OFFLINE:
            logger.warning("Sensor offline", sensor_id=sensor_id, last_seen=config.last_seen)
        config.status = SensorStatus.OFFLINE
        return config
