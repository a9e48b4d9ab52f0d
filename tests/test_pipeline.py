"""
tests/test_pipeline.py
──────────────────────
End-to-end tests for the composed ingestion pipeline.
"""
import asyncio
import json
from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from config.alerts import AlertSeverity, AlertType
from sensor_pipeline.connectors.memory import InMemoryContentStore, InMemoryLedger
from sensor_pipeline.data.models import SensorConfig, SensorStatus
from sensor_pipeline.data.store import SQLiteStore
from sensor_pipeline.errors import ValidationError
from sensor_pipeline.pipeline.alerts import AlertEvaluator
from sensor_pipeline.pipeline.dispatcher import Dispatcher
from sensor_pipeline.pipeline.liveness import LivenessWatcher
from sensor_pipeline.pipeline.pipeline import IngestionPipeline
from sensor_pipeline.pipeline.registry import SensorRegistry
from sensor_pipeline.pipeline.transform import TransformEngine


class FailsOn:
    """Anomaly detector that raises on one value."""

    def __init__(self, value):
        self.value = value

    def is_anomaly(self, data):
        if data.value == self.value:
            raise RuntimeError("detector crashed")
        return False


class Results:
    def __init__(self):
        self.batches = []

    async def __call__(self, result):
        self.batches.append(result)

    @property
    def processed(self):
        return [p for result in self.batches for p in result.processed]

    @property
    def alerts(self):
        return [a for result in self.batches for a in result.alerts]


@pytest.fixture
def results():
    return Results()


@pytest.fixture
def make_pipeline(clock, results):
    def _make(**kwargs):
        kwargs.setdefault("batch_size", 1)
        kwargs.setdefault("flush_interval_ms", 60_000)
        return IngestionPipeline(on_result=results, clock=clock, **kwargs)

    return _make


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_valid_temperature_reading(self, make_pipeline, results, raw_temperature):
        pipeline = make_pipeline()
        await pipeline.submit(raw_temperature)

        [processed] = results.processed
        assert processed.derived_metrics["fahrenheit"] == pytest.approx(72.5)
        assert processed.quality_score == 95
        assert results.alerts == []

    @pytest.mark.asyncio
    async def test_out_of_range_humidity_never_buffered(self, make_pipeline, results, raw_temperature):
        pipeline = make_pipeline(batch_size=10)
        raw_temperature.update(sensorType="humidity", value=200)

        with pytest.raises(ValidationError, match="humidity"):
            await pipeline.submit(raw_temperature)

        assert pipeline.buffer.pending == 0
        assert results.batches == []

    @pytest.mark.asyncio
    async def test_pressure_threshold_breach(self, make_pipeline, results, raw_temperature, pressure_registry):
        ledger = InMemoryLedger()
        pipeline = make_pipeline(registry=pressure_registry, dispatcher=Dispatcher(ledger=ledger))
        raw_temperature.update(sensorId="PRESSURE1", sensorType="pressure", value=1100)
        await pipeline.submit(raw_temperature)

        [alert] = results.alerts
        assert alert.type is AlertType.THRESHOLD_EXCEEDED
        assert alert.severity is AlertSeverity.HIGH
        assert "max=1050" in alert.message
        assert [kind for kind, _ in ledger.submissions] == ["processed", "alert"]

    @pytest.mark.asyncio
    async def test_batches_only_hold_validated_readings(self, make_pipeline, results, make_reading):
        pipeline = make_pipeline(batch_size=100)
        for i in range(150):
            sensor_type, value = ("humidity", 250.0) if i % 3 == 0 else ("temperature", float(i % 40))
            try:
                await pipeline.submit(make_reading(sensor_type, value).model_dump())
            except ValidationError:
                pass

        assert pipeline.buffer.pending == 0
        [batch] = results.batches
        assert len(batch.processed) == 100
        assert batch.skipped == 0
        assert {p.sensor_type.value for p in batch.processed} == {"temperature"}


class TestSubmit:
    @pytest.mark.asyncio
    async def test_marks_sensor_seen(self, make_pipeline, raw_temperature, now):
        registry = SensorRegistry([SensorConfig(id="TEMP001", type="thermo")])
        pipeline = make_pipeline(registry=registry, batch_size=10)
        reading = await pipeline.submit(raw_temperature)

        assert reading.sensor_id == "TEMP001"
        assert registry.get("TEMP001").status is SensorStatus.ONLINE
        assert registry.get("TEMP001").last_seen == now
        assert pipeline.buffer.pending == 1

    @pytest.mark.asyncio
    async def test_transport_message(self, make_pipeline, results, now):
        pipeline = make_pipeline()
        payload = json.dumps({"value": 40.0, "timestamp": now.isoformat(), "metadata": {"fw": "1"}})
        await pipeline.handle_message("sensors/HUM001/humidity", payload)

        [processed] = results.processed
        assert processed.sensor_id == "HUM001"
        assert processed.quality_score == 100


class TestProcessBatch:
    def test_failing_reading_is_skipped(self, make_pipeline, make_reading, now):
        class FailsOnHumidity:
            def smooth(self, reading):
                if reading.sensor_type.value == "humidity":
                    raise ArithmeticError("bad")
                return reading.value

        pipeline = make_pipeline(engine=TransformEngine(smoother=FailsOnHumidity(), clock=lambda: now))
        result = pipeline.process_batch([make_reading(), make_reading("humidity", 40.0), make_reading(value=23.0)])
        assert [p.value for p in result.processed] == [22.5, 23.0]
        assert result.skipped == 1

    def test_failing_detector_skips_only_that_reading(self, make_pipeline, make_reading):
        pipeline = make_pipeline(evaluator=AlertEvaluator(anomaly_detector=FailsOn(13.0)))
        with capture_logs() as logs:
            result = pipeline.process_batch([make_reading(value=v) for v in (12.0, 13.0, 14.0)])

        assert [p.value for p in result.processed] == [12.0, 14.0]
        assert result.skipped == 1
        [failed] = [log for log in logs if log["event"] == "Skipping reading that failed alert evaluation"]
        assert failed["sensor_id"] == "TEMP001"
        assert failed["log_level"] == "error"

    @pytest.mark.asyncio
    async def test_failing_detector_does_not_lose_batch(self, make_pipeline, results, make_reading):
        pipeline = make_pipeline(batch_size=3, evaluator=AlertEvaluator(anomaly_detector=FailsOn(13.0)))
        for v in (12.0, 13.0, 14.0):
            await pipeline.submit(make_reading(value=v))

        assert len(results.processed) == 2
        assert pipeline.totals.processed == 2
        assert pipeline.totals.skipped == 1
        assert pipeline.buffer.stats().lost_batches == 0

    def test_stale_readings_stay_above_floor(self, make_pipeline, make_reading):
        stale = make_reading(age=timedelta(hours=2))  # stale and no metadata: 75
        result = make_pipeline().process_batch([stale, make_reading(age=timedelta(days=1))])
        assert [p.quality_score for p in result.processed] == [75, 75]
        assert result.alerts == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_drains(self, make_pipeline, results, make_reading):
        async with make_pipeline(batch_size=3, dispatcher=Dispatcher(content_store=InMemoryContentStore())) as pipeline:
            for i in range(5):
                await pipeline.submit(make_reading(value=float(i)))
            assert pipeline.buffer.pending == 2
            assert pipeline.buffer.running

        assert [len(r.processed) for r in results.batches] == [3, 2]
        assert pipeline.totals.processed == 5
        assert pipeline.totals.batches == 2
        assert not pipeline.buffer.running

    @pytest.mark.asyncio
    async def test_stop_without_drain(self, make_pipeline, results, make_reading):
        pipeline = make_pipeline(batch_size=3)
        await pipeline.start()
        await pipeline.submit(make_reading())
        await pipeline.stop(drain=False)
        assert results.batches == []
        assert pipeline.buffer.pending == 1

    @pytest.mark.asyncio
    async def test_failing_result_handler_does_not_redispatch(self, clock, make_reading):
        async def broken(result):
            raise RuntimeError("handler down")

        ledger = InMemoryLedger()
        pipeline = IngestionPipeline(
            dispatcher=Dispatcher(ledger=ledger), on_result=broken, batch_size=1,
            flush_interval_ms=60_000, max_batch_retries=2, clock=clock,
        )
        with capture_logs() as logs:
            await pipeline.submit(make_reading())

        assert [kind for kind, _ in ledger.submissions] == ["processed"]
        assert pipeline.totals.batches == 1
        assert pipeline.buffer.pending == 0
        assert any(log["event"] == "Result handler failed" for log in logs)

    @pytest.mark.asyncio
    async def test_persisted_through_dispatcher(self, make_pipeline, make_reading):
        store = SQLiteStore(":memory:")
        pipeline = make_pipeline(batch_size=2, dispatcher=Dispatcher(persistence=store))
        await pipeline.submit(make_reading(value=1.0))
        await pipeline.submit(make_reading(value=2.0))

        df = store.get_processed_data("TEMP001")
        assert sorted(df["value"].tolist()) == [1.0, 2.0]
        store.close()


class TestLivenessLoop:
    @pytest.mark.asyncio
    async def test_offline_alert_delivered(self, now):
        registry = SensorRegistry([SensorConfig(id="A", type="env")])
        registry.mark_seen("A", now - timedelta(hours=1))
        received = asyncio.Event()
        delivered = []

        async def on_alert(alerts):
            delivered.extend(alerts)
            received.set()

        watcher = LivenessWatcher(
            registry, silence=timedelta(minutes=5), check_interval_ms=5, on_alert=on_alert, clock=lambda: now
        )
        watcher.start()
        await asyncio.wait_for(received.wait(), timeout=2)
        await watcher.stop()

        [alert] = delivered
        assert alert.type is AlertType.SENSOR_OFFLINE
        assert alert.message == "Sensor A is offline (no data for 3600s)"
        assert alert.data == {"lastSeen": (now - timedelta(hours=1)).isoformat()}

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_loop(self, now):
        registry = SensorRegistry([SensorConfig(id="A", type="env"), SensorConfig(id="B", type="env")])
        registry.mark_seen("A", now - timedelta(hours=1))
        calls = []
        clock_now = [now]

        async def on_alert(alerts):
            calls.append([a.sensor_id for a in alerts])
            if len(calls) == 1:
                raise RuntimeError("notifier down")

        watcher = LivenessWatcher(
            registry, silence=timedelta(minutes=5), check_interval_ms=5, on_alert=on_alert,
            clock=lambda: clock_now[0],
        )
        watcher.start()
        while not calls:
            await asyncio.sleep(0.005)
        registry.mark_seen("B", now)
        clock_now[0] = now + timedelta(hours=1)
        for _ in range(400):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.005)
        await watcher.stop()

        assert calls[:2] == [["A"], ["B"]]
