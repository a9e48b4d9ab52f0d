"""
tests/test_simulator.py
────────────────────────
Tests for the environmental sensor simulator.
"""
import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from structlog.testing import capture_logs

from config.sensors import (
    DEFAULT_ENVIRONMENT,
    HumidityProfile,
    LightProfile,
    PressureProfile,
    TemperatureProfile,
    VibrationProfile,
)
from sensor_pipeline.data.models import GeoPoint, SensorType
from sensor_pipeline.data.simulator import EnvironmentalSimulator, generate_fleet, to_dataframe
from sensor_pipeline.errors import ConfigurationError
from sensor_pipeline.pipeline.validator import validate_reading


def simulator(now, **kwargs) -> EnvironmentalSimulator:
    kwargs.setdefault("seed", 42)
    return EnvironmentalSimulator("ENV001", start_time=now, **kwargs)


def values(readings, sensor_type: SensorType) -> list[float]:
    return [r.value for r in readings if r.sensor_type is sensor_type]


class TestTick:
    def test_six_readings_share_timestamp(self, now):
        readings = simulator(now).tick()
        assert [r.sensor_type for r in readings] == [
            SensorType.TEMPERATURE,
            SensorType.HUMIDITY,
            SensorType.PRESSURE,
            SensorType.LIGHT,
            SensorType.VIBRATION,
            SensorType.LOCATION,
        ]
        assert {r.timestamp for r in readings} == {now + timedelta(seconds=1)}
        assert isinstance(readings[-1].value, GeoPoint)

    def test_clock_advances_by_interval(self, now):
        sim = simulator(now, tick_interval_ms=250)
        sim.tick()
        sim.tick()
        assert sim.state().timestamp == now + timedelta(milliseconds=500)
        assert sim.ticks == 2

    def test_metadata_carries_unit_and_accuracy(self, now):
        temperature = simulator(now).tick()[0]
        assert temperature.unit == "celsius"
        assert temperature.metadata == {"unit": "celsius", "accuracy": 0.1}

    def test_same_seed_same_stream(self, now):
        assert simulator(now, seed=7).generate(5) == simulator(now, seed=7).generate(5)

    def test_different_seed_different_stream(self, now):
        assert simulator(now, seed=7).generate(5) != simulator(now, seed=8).generate(5)

    def test_every_reading_passes_validation(self, now):
        for reading in simulator(now).generate(50):
            assert validate_reading(reading, reading.timestamp) == reading


class TestDynamics:
    def test_values_stay_within_profile(self, now):
        readings = simulator(now).generate(200)
        profile = DEFAULT_ENVIRONMENT
        for sensor_type, bounds in [
            (SensorType.TEMPERATURE, profile.temperature),
            (SensorType.HUMIDITY, profile.humidity),
            (SensorType.PRESSURE, profile.pressure),
            (SensorType.LIGHT, profile.light),
            (SensorType.VIBRATION, profile.vibration),
        ]:
            series = values(readings, sensor_type)
            assert min(series) >= bounds.min
            assert max(series) <= bounds.max

    def test_narrow_band_is_clamped(self, now):
        config = replace(
            DEFAULT_ENVIRONMENT,
            temperature=TemperatureProfile(min=20, max=21, variation=10, trend="fluctuating"),
        )
        series = values(simulator(now, config=config).generate(100), SensorType.TEMPERATURE)
        assert all(20 <= v <= 21 for v in series)

    def test_increasing_trend(self, now):
        config = replace(DEFAULT_ENVIRONMENT, temperature=TemperatureProfile(min=-10, max=40, trend="increasing"))
        sim = simulator(now, config=config)
        start = sim.state().temperature
        series = values(sim.generate(20), SensorType.TEMPERATURE)
        # +0.2 per tick against at most ±0.1 jitter
        assert all(b > a or b == 40 for a, b in zip([start] + series, series))

    def test_decreasing_trend(self, now):
        config = replace(DEFAULT_ENVIRONMENT, temperature=TemperatureProfile(min=-10, max=40, trend="decreasing"))
        sim = simulator(now, config=config)
        series = values(sim.generate(20), SensorType.TEMPERATURE)
        assert series[-1] < series[0] or series[-1] == -10

    def test_altitude_pulls_pressure_down(self, now):
        config = replace(DEFAULT_ENVIRONMENT, pressure=PressureProfile(min=900, max=1050, altitude=1000))
        series = values(simulator(now, config=config).generate(30), SensorType.PRESSURE)
        assert all(b <= a for a, b in zip(series, series[1:]))

    def test_light_dark_at_midnight(self):
        midnight = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)
        series = values(simulator(midnight).generate(5), SensorType.LIGHT)
        assert series == [0.0] * 5

    def test_light_peaks_at_noon(self, now):
        series = values(simulator(now).generate(1), SensorType.LIGHT)
        assert series[0] == pytest.approx(1000.0, rel=1e-3)

    def test_light_random_walk_without_cycle(self, now):
        config = replace(DEFAULT_ENVIRONMENT, light=LightProfile(min=100, max=200, day_night_cycle=False))
        series = values(simulator(now, config=config).generate(50), SensorType.LIGHT)
        assert all(100 <= v <= 200 for v in series)
        assert len(set(series)) > 1

    def test_location_drifts_near_origin(self, now):
        readings = simulator(now).generate(20)
        for point in values(readings, SensorType.LOCATION):
            assert abs(point.latitude - DEFAULT_ENVIRONMENT.origin_latitude) < 0.01
            assert point.accuracy >= 1.0


class TestConfiguration:
    @pytest.mark.parametrize(
        "config",
        [
            replace(DEFAULT_ENVIRONMENT, temperature=TemperatureProfile(min=30, max=10)),
            replace(DEFAULT_ENVIRONMENT, humidity=HumidityProfile(variation=-1)),
            replace(DEFAULT_ENVIRONMENT, humidity=HumidityProfile(min=20, max=120)),
            replace(DEFAULT_ENVIRONMENT, temperature=TemperatureProfile(trend="sideways")),
            replace(DEFAULT_ENVIRONMENT, vibration=VibrationProfile(frequency=-0.1)),
            replace(DEFAULT_ENVIRONMENT, origin_latitude=95.0),
        ],
    )
    def test_invalid_profile(self, now, config):
        with pytest.raises(ConfigurationError):
            simulator(now, config=config)

    def test_invalid_sensor_id(self, now):
        with pytest.raises(ConfigurationError, match="sensor id"):
            EnvironmentalSimulator("bad id!", start_time=now)

    def test_invalid_interval(self, now):
        with pytest.raises(ConfigurationError):
            simulator(now, tick_interval_ms=0)


class TestFleet:
    def test_every_sensor_generated(self, now):
        fleet = generate_fleet(["ENV001", "ENV002", "ENV003"], ticks=4, start_time=now)
        assert list(fleet) == ["ENV001", "ENV002", "ENV003"]
        assert all(len(readings) == 24 for readings in fleet.values())
        assert {r.sensor_id for r in fleet["ENV002"]} == {"ENV002"}

    def test_reproducible_and_independent(self, now):
        first = generate_fleet(["A", "B"], ticks=3, start_time=now, seed=1)
        second = generate_fleet(["A", "B"], ticks=3, start_time=now, seed=1)
        assert first == second
        assert values(first["A"], SensorType.TEMPERATURE) != values(first["B"], SensorType.TEMPERATURE)


class TestToDataFrame:
    def test_columns_and_rows(self, now):
        df = to_dataframe(simulator(now).generate(3))
        assert list(df.columns) == ["sensor_id", "sensor_type", "value", "latitude", "longitude", "unit", "timestamp"]
        assert len(df) == 18
        assert str(df["timestamp"].dt.tz) == "UTC"

    def test_location_rows_use_coordinates(self, now):
        df = to_dataframe(simulator(now).generate(2))
        location = df[df["sensor_type"] == "location"]
        assert location["value"].isna().all()
        assert location["latitude"].notna().all()
        numeric = df[df["sensor_type"] != "location"]
        assert numeric["latitude"].isna().all()

    def test_empty(self):
        assert to_dataframe([]).empty


class TestRun:
    @pytest.mark.asyncio
    async def test_max_ticks(self, now):
        emitted = []
        sim = simulator(now, tick_interval_ms=5)
        assert await sim.run(emitted.append, max_ticks=3) == 3
        assert len(emitted) == 18
        assert not sim.running

    @pytest.mark.asyncio
    async def test_async_emitter(self, now):
        emitted = []

        async def emit(reading):
            emitted.append(reading)

        await simulator(now, tick_interval_ms=5).run(emit, max_ticks=2)
        assert len(emitted) == 12

    @pytest.mark.asyncio
    async def test_stop_finishes_current_tick(self, now):
        sim = simulator(now, tick_interval_ms=5)
        emitted = []

        def emit(reading):
            emitted.append(reading)
            sim.stop()

        ticks = await asyncio.wait_for(sim.run(emit), timeout=2)
        assert ticks == 1
        assert len(emitted) == 6

    @pytest.mark.asyncio
    async def test_double_run_rejected(self, now):
        sim = simulator(now, tick_interval_ms=5)
        task = asyncio.create_task(sim.run(lambda r: None))
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await sim.run(lambda r: None)
        sim.stop()
        await task

    def test_stop_when_idle_warns(self, now):
        with capture_logs() as logs:
            simulator(now).stop()
        assert logs[0]["log_level"] == "warning"
