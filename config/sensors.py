"""
config/sensors.py
─────────────────
Sensor domain constants: validation ranges, normalization bounds,
plausibility bands and the default simulated environment.

Validation ranges are hard limits; a reading outside them is rejected
before it reaches the buffer. Plausibility bands are softer and only feed
the optional reasonableness check of the quality scorer.
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ValueRange:
    """Closed interval; `None` leaves that side unbounded."""
    min: float | None
    max: float | None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


# ── Validation (hard limits) ──────────────────────────────────────────────────
VALIDATION_RANGES: dict[str, ValueRange] = {
    "temperature": ValueRange(min=-50.0, max=150.0),   # °C
    "humidity": ValueRange(min=0.0, max=100.0),        # % RH
    "pressure": ValueRange(min=0.0, max=2000.0),
    "light": ValueRange(min=0.0, max=None),            # lux
    "vibration": ValueRange(min=0.0, max=None),        # g
}

LATITUDE_RANGE = ValueRange(min=-90.0, max=90.0)
LONGITUDE_RANGE = ValueRange(min=-180.0, max=180.0)

SENSOR_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"
SENSOR_ID_MAX_LENGTH = 50

MAX_FUTURE_SKEW_S = 3600               # 1 hour
MAX_PAST_AGE_S = 30 * 24 * 3600        # 30 days
MAX_METADATA_BYTES = 1_048_576         # 1 MiB

# ── Normalization: (offset, span) → (v + offset) / span ─────────────────────────
NORMALIZATION: dict[str, tuple[float, float]] = {
    "temperature": (50.0, 200.0),
    "humidity": (0.0, 100.0),
    "pressure": (0.0, 2000.0),
}

# Types that carry a smoothedValue in transformedData
SMOOTHED_TYPES = frozenset({"temperature", "humidity"})

# Ambient temperature assumed when deriving dew point from humidity alone
DEW_POINT_AMBIENT_C = 20.0

# ── Plausibility bands (soft, sensor-hardware typical) ────────────────────────
PLAUSIBLE_RANGES: dict[str, ValueRange] = {
    "temperature": ValueRange(min=-40.0, max=85.0),
    "humidity": ValueRange(min=0.0, max=100.0),
    "pressure": ValueRange(min=300.0, max=1100.0),
    "light": ValueRange(min=0.0, max=150_000.0),
    "vibration": ValueRange(min=0.0, max=50.0),
}


# ── Simulated environment profile ─────────────────────────────────────────────

@dataclass(frozen=True)
class TemperatureProfile:
    min: float = -10.0
    max: float = 40.0
    variation: float = 2.0
    trend: str = "stable"  # stable | increasing | decreasing | fluctuating


@dataclass(frozen=True)
class HumidityProfile:
    min: float = 20.0
    max: float = 90.0
    variation: float = 5.0
    correlation: float = 0.5  # anti-correlation with temperature change


@dataclass(frozen=True)
class PressureProfile:
    min: float = 950.0
    max: float = 1050.0
    variation: float = 2.0
    altitude: float = 0.0  # metres


@dataclass(frozen=True)
class LightProfile:
    min: float = 0.0
    max: float = 1000.0
    variation: float = 50.0
    day_night_cycle: bool = True


@dataclass(frozen=True)
class VibrationProfile:
    min: float = 0.0
    max: float = 5.0
    variation: float = 0.5
    frequency: float = 0.1  # Hz


@dataclass(frozen=True)
class EnvironmentProfile:
    temperature: TemperatureProfile = field(default_factory=TemperatureProfile)
    humidity: HumidityProfile = field(default_factory=HumidityProfile)
    pressure: PressureProfile = field(default_factory=PressureProfile)
    light: LightProfile = field(default_factory=LightProfile)
    vibration: VibrationProfile = field(default_factory=VibrationProfile)
    origin_latitude: float = 40.7128
    origin_longitude: float = -74.0060


DEFAULT_ENVIRONMENT = EnvironmentProfile()

TEMPERATURE_TRENDS = ("stable", "increasing", "decreasing", "fluctuating")
