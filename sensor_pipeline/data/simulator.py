"""
sensor_pipeline/data/simulator.py
─────────────────────────────────
Seedable environmental sensor simulator.

Generates:
  - One reading per dimension (temperature, humidity, pressure, light,
    vibration, location) on every tick, all sharing the tick's timestamp
  - Finite runs via generate(), multi-sensor runs via generate_fleet()
  - A live async stream via run(emit) / stop()

Dynamics per tick (dt = tick interval in seconds, j(s) = uniform jitter in ±s/2):
  temperature  trend step + j(0.1·variation), clamped
                 increasing  +0.1·variation·dt
                 decreasing  −0.1·variation·dt
                 fluctuating j(0.2·variation·dt)
                 stable      j(0.05·variation·dt)
  humidity     −ΔT·correlation + j(0.1·variation), clamped
  pressure     −0.001·altitude + j(0.1·variation), clamped
  light        min + (max−min)·max(0, sin((hour−6)·π/12)) on the simulated
               clock, or a j(0.1·variation) random walk without day/night
  vibration    sin(2π·f·t)·0.1·variation + j(0.2·variation), clamped
  location     GPS drift j(0.0001·dt) per axis, accuracy j(2·dt), ≥ 1 m

Design:
  - Reproducible: all randomness comes from one numpy Generator per sensor
  - The clock is simulated (start_time + n·tick), never the wall clock
"""
from __future__ import annotations

import asyncio
import inspect
import math
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

import numpy as np
import pandas as pd
import structlog

from config.sensors import DEFAULT_ENVIRONMENT, TEMPERATURE_TRENDS, VALIDATION_RANGES, EnvironmentProfile
from config.settings import settings
from sensor_pipeline.data.models import GeoPoint, SensorReading, SensorType
from sensor_pipeline.errors import ConfigurationError, ValidationError
from sensor_pipeline.pipeline.validator import validate_sensor_id

logger = structlog.get_logger(__name__)

# (unit, sensor accuracy) attached to each reading's metadata
READING_UNITS: dict[SensorType, tuple[str, float]] = {
    SensorType.TEMPERATURE: ("celsius", 0.1),
    SensorType.HUMIDITY: ("percent", 1.0),
    SensorType.PRESSURE: ("hPa", 0.1),
    SensorType.LIGHT: ("lux", 10.0),
    SensorType.VIBRATION: ("g", 0.01),
}

ReadingEmitter = Callable[[SensorReading], Awaitable[Any] | Any]


@dataclass(frozen=True)
class SimulationState:
    temperature: float
    humidity: float
    pressure: float
    light: float
    vibration: float
    latitude: float
    longitude: float
    accuracy: float
    timestamp: datetime


def check_profile(profile: EnvironmentProfile) -> None:
    """Fail fast on bounds the validator would reject or that cannot be simulated."""
    for name in ("temperature", "humidity", "pressure", "light", "vibration"):
        dimension = getattr(profile, name)
        if dimension.min > dimension.max:
            raise ConfigurationError(f"{name}: min {dimension.min:g} exceeds max {dimension.max:g}")
        if dimension.variation < 0:
            raise ConfigurationError(f"{name}: variation must be non-negative")
        limits = VALIDATION_RANGES[name]
        if not (limits.contains(dimension.min) and limits.contains(dimension.max)):
            raise ConfigurationError(f"{name}: bounds [{dimension.min:g}, {dimension.max:g}] fall outside valid readings")

    if profile.temperature.trend not in TEMPERATURE_TRENDS:
        raise ConfigurationError(f"Unknown temperature trend: {profile.temperature.trend}")
    if profile.vibration.frequency < 0:
        raise ConfigurationError("vibration: frequency must be non-negative")
    if not (-90 <= profile.origin_latitude <= 90 and -180 <= profile.origin_longitude <= 180):
        raise ConfigurationError("origin coordinates out of range")


class EnvironmentalSimulator:
    def __init__(
        self,
        sensor_id: str,
        config: EnvironmentProfile = DEFAULT_ENVIRONMENT,
        tick_interval_ms: int = settings.SIM_TICK_MS,
        seed: int | np.random.SeedSequence | None = settings.SIMULATION_SEED,
        start_time: datetime | None = None,
    ):
        try:
            validate_sensor_id(sensor_id)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid simulator sensor id: {exc.reason}") from exc
        if tick_interval_ms <= 0:
            raise ConfigurationError("tick_interval_ms must be positive")
        check_profile(config)

        self.sensor_id = sensor_id
        self.config = config
        self.tick_interval = timedelta(milliseconds=tick_interval_ms)
        self.rng = np.random.default_rng(seed)
        self.ticks = 0
        self._stop_event: asyncio.Event | None = None

        start = start_time or datetime.now(tz=UTC)
        start = start.replace(tzinfo=UTC) if start.tzinfo is None else start.astimezone(UTC)
        self._state = self._initial_state(start)

    # ── State ─────────────────────────────────────────────────────────────────

    def _uniform(self, low: float, high: float) -> float:
        return float(self.rng.uniform(low, high)) if high > low else float(low)

    def _jitter(self, scale: float) -> float:
        return (float(self.rng.random()) - 0.5) * scale

    def _initial_state(self, start: datetime) -> SimulationState:
        c = self.config
        return SimulationState(
            temperature=self._uniform(c.temperature.min, c.temperature.max),
            humidity=self._uniform(c.humidity.min, c.humidity.max),
            pressure=self._uniform(c.pressure.min, c.pressure.max),
            light=self._uniform(c.light.min, c.light.max),
            vibration=self._uniform(c.vibration.min, c.vibration.max),
            latitude=c.origin_latitude + self._jitter(0.01),
            longitude=c.origin_longitude + self._jitter(0.01),
            accuracy=5.0 + float(self.rng.random()) * 10.0,
            timestamp=start,
        )

    def state(self) -> SimulationState:
        """Snapshot of the current state (immutable)."""
        return replace(self._state)

    # ── Dynamics ──────────────────────────────────────────────────────────────

    def _next_temperature(self, current: float, dt: float) -> float:
        p = self.config.temperature
        if p.trend == "increasing":
            current += p.variation * dt * 0.1
        elif p.trend == "decreasing":
            current -= p.variation * dt * 0.1
        elif p.trend == "fluctuating":
            current += self._jitter(p.variation * dt * 0.2)
        else:
            current += self._jitter(p.variation * dt * 0.05)
        current += self._jitter(p.variation * 0.1)
        return float(np.clip(current, p.min, p.max))

    def _next_humidity(self, current: float, temperature_change: float) -> float:
        p = self.config.humidity
        current -= temperature_change * p.correlation
        current += self._jitter(p.variation * 0.1)
        return float(np.clip(current, p.min, p.max))

    def _next_pressure(self, current: float) -> float:
        p = self.config.pressure
        current -= p.altitude * 0.001
        current += self._jitter(p.variation * 0.1)
        return float(np.clip(current, p.min, p.max))

    def _next_light(self, current: float, timestamp: datetime) -> float:
        p = self.config.light
        if p.day_night_cycle:
            hour = timestamp.hour + timestamp.minute / 60 + timestamp.second / 3600
            day_factor = math.sin((hour - 6) * math.pi / 12)  # peaks at noon
            current = p.min + (p.max - p.min) * max(0.0, day_factor)
        else:
            current += self._jitter(p.variation * 0.1)
        return float(np.clip(current, p.min, p.max))

    def _next_vibration(self, current: float, timestamp: datetime) -> float:
        p = self.config.vibration
        t = timestamp.timestamp()
        current += math.sin(t * p.frequency * 2 * math.pi) * p.variation * 0.1
        current += self._jitter(p.variation * 0.2)
        return float(np.clip(current, p.min, p.max))

    def _advance(self) -> SimulationState:
        s = self._state
        dt = self.tick_interval.total_seconds()
        timestamp = s.timestamp + self.tick_interval

        temperature = self._next_temperature(s.temperature, dt)
        latitude = float(np.clip(s.latitude + self._jitter(0.0001 * dt), -90.0, 90.0))
        longitude = float(np.clip(s.longitude + self._jitter(0.0001 * dt), -180.0, 180.0))

        return SimulationState(
            temperature=temperature,
            humidity=self._next_humidity(s.humidity, temperature - s.temperature),
            pressure=self._next_pressure(s.pressure),
            light=self._next_light(s.light, timestamp),
            vibration=self._next_vibration(s.vibration, timestamp),
            latitude=latitude,
            longitude=longitude,
            accuracy=max(1.0, s.accuracy + self._jitter(2 * dt)),
            timestamp=timestamp,
        )

    def _readings(self, s: SimulationState) -> list[SensorReading]:
        values = {
            SensorType.TEMPERATURE: s.temperature,
            SensorType.HUMIDITY: s.humidity,
            SensorType.PRESSURE: s.pressure,
            SensorType.LIGHT: s.light,
            SensorType.VIBRATION: s.vibration,
        }
        readings = [
            SensorReading(
                sensor_id=self.sensor_id,
                sensor_type=sensor_type,
                value=value,
                unit=READING_UNITS[sensor_type][0],
                timestamp=s.timestamp,
                metadata={"unit": READING_UNITS[sensor_type][0], "accuracy": READING_UNITS[sensor_type][1]},
            )
            for sensor_type, value in values.items()
        ]
        readings.append(
            SensorReading(
                sensor_id=self.sensor_id,
                sensor_type=SensorType.LOCATION,
                value=GeoPoint(latitude=s.latitude, longitude=s.longitude, accuracy=s.accuracy),
                unit="coordinates",
                timestamp=s.timestamp,
                metadata={"unit": "coordinates", "accuracy": s.accuracy},
            )
        )
        return readings

    # ── Public API ────────────────────────────────────────────────────────────

    def tick(self) -> list[SensorReading]:
        """Advance the simulated clock one interval; returns six readings sharing its timestamp."""
        self._state = self._advance()
        self.ticks += 1
        return self._readings(self._state)

    def generate(self, ticks: int) -> list[SensorReading]:
        readings: list[SensorReading] = []
        for _ in range(ticks):
            readings.extend(self.tick())
        return readings

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def run(self, emit: ReadingEmitter, max_ticks: int | None = None) -> int:
        """
        Tick every interval (wall time) and pass each reading to `emit` until
        stop() is called or `max_ticks` ticks have run. A tick in progress
        always finishes emitting. Returns the number of ticks run.
        """
        if self.running:
            raise RuntimeError("Simulation is already running")
        self._stop_event = asyncio.Event()
        interval = self.tick_interval.total_seconds()
        started = self.ticks
        logger.info("Simulation started", sensor_id=self.sensor_id, tick_interval_s=interval)

        try:
            while max_ticks is None or self.ticks - started < max_ticks:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass
                for reading in self.tick():
                    result = emit(reading)
                    if inspect.isawaitable(result):
                        await result
        finally:
            self._stop_event.set()
            logger.info("Simulation stopped", sensor_id=self.sensor_id, ticks=self.ticks - started)
        return self.ticks - started

    def stop(self) -> None:
        if self._stop_event is None or self._stop_event.is_set():
            logger.warning("Simulation is not running", sensor_id=self.sensor_id)
            return
        self._stop_event.set()


# ── Fleet helpers ─────────────────────────────────────────────────────────────

def generate_fleet(
    sensor_ids: Iterable[str],
    ticks: int,
    config: EnvironmentProfile = DEFAULT_ENVIRONMENT,
    seed: int = settings.SIMULATION_SEED,
    start_time: datetime | None = None,
    tick_interval_ms: int = settings.SIM_TICK_MS,
) -> dict[str, list[SensorReading]]:
    """
    Generate `ticks` ticks for each sensor. Each sensor gets an independent
    random stream spawned from `seed`, so the fleet is reproducible.
    Returns dict keyed by sensor_id.
    """
    sensor_ids = list(sensor_ids)
    start_time = start_time or datetime.now(tz=UTC)
    streams = np.random.SeedSequence(seed).spawn(len(sensor_ids))
    return {
        sensor_id: EnvironmentalSimulator(
            sensor_id,
            config=config,
            tick_interval_ms=tick_interval_ms,
            seed=stream,
            start_time=start_time,
        ).generate(ticks)
        for sensor_id, stream in zip(sensor_ids, streams, strict=True)
    }


def to_dataframe(readings: list[SensorReading]) -> pd.DataFrame:
    """Flatten readings into one row each; location readings fill latitude/longitude instead of value."""
    rows = [
        {
            "sensor_id": r.sensor_id,
            "sensor_type": r.sensor_type.value,
            "value": r.numeric_value,
            "latitude": r.value.latitude if isinstance(r.value, GeoPoint) else None,
            "longitude": r.value.longitude if isinstance(r.value, GeoPoint) else None,
            "unit": r.unit,
            "timestamp": r.timestamp,
        }
        for r in readings
    ]
    df = pd.DataFrame(
        rows, columns=["sensor_id", "sensor_type", "value", "latitude", "longitude", "unit", "timestamp"]
    )
    if not df.empty:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df
