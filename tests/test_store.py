"""
tests/test_store.py
────────────────────
Tests for the SQLite persistence store.
"""
from datetime import timedelta

import pytest

from config.alerts import AlertType
from sensor_pipeline.data.models import GeoPoint
from sensor_pipeline.data.store import SQLiteStore
from sensor_pipeline.pipeline.alerts import make_alert


@pytest.fixture
def store():
    s = SQLiteStore(":memory:")
    yield s
    s.close()


class TestReadings:
    def test_insert_and_range_query(self, store, make_reading, now):
        readings = [make_reading(value=float(h), age=timedelta(hours=h)) for h in range(5)]
        assert store.insert_readings(readings) == 5

        df = store.get_readings("TEMP001", start=now - timedelta(hours=2), end=now)
        assert df["value"].tolist() == [2.0, 1.0, 0.0]  # oldest first
        assert str(df["timestamp"].dt.tz) == "UTC"
        assert df["timestamp"].iloc[-1] == now

    def test_filters_by_sensor_and_type(self, store, make_reading):
        store.insert_readings([
            make_reading(),
            make_reading("humidity", 40.0),
            make_reading(sensor_id="OTHER"),
        ])
        assert len(store.get_readings("TEMP001")) == 2
        assert store.get_readings("TEMP001", sensor_type="humidity")["value"].tolist() == [40.0]

    def test_empty_sensor_id_queries_all(self, store, make_reading, make_processed):
        store.insert_readings([make_reading(), make_reading(sensor_id="OTHER")])
        store.insert_processed_data([make_processed(), make_processed(sensor_id="OTHER")])
        assert sorted(store.get_readings("")["sensor_id"]) == ["OTHER", "TEMP001"]
        assert len(store.get_processed_data(None)) == 2

    def test_location_stored_without_scalar(self, store, make_reading):
        store.insert_readings([make_reading("location", GeoPoint(latitude=1.5, longitude=2.5))])
        df = store.get_readings("TEMP001")
        assert df["value"].isna().all()
        assert '"latitude":1.5' in df["payload"].iloc[0].replace(" ", "")

    def test_empty_insert(self, store):
        assert store.insert_readings([]) == 0
        assert store.get_readings("TEMP001").empty

    def test_limit(self, store, make_reading):
        store.insert_readings([make_reading(age=timedelta(minutes=m)) for m in range(10)])
        assert len(store.get_readings("TEMP001", limit=3)) == 3

    @pytest.mark.asyncio
    async def test_async_wrapper(self, store, make_reading):
        assert await store.store_readings([make_reading()]) == 1
        assert store.count("readings") == 1


class TestProcessedData:
    def test_round_trip_columns(self, store, make_processed, now):
        processed = make_processed(quality_score=80)
        assert store.insert_processed_data([processed]) == 1

        row = store.get_processed_data("TEMP001").iloc[0]
        assert row["quality_score"] == 80
        assert row["processing_version"] == "1.0.0"
        assert row["processed_at"] == now


class TestAlerts:
    @pytest.fixture
    def alerts(self, make_processed):
        return [
            make_alert(make_processed(quality_score=10, age=timedelta(hours=2)), AlertType.QUALITY_LOW, "low"),
            make_alert(make_processed(sensor_id="P1", age=timedelta(hours=1)), AlertType.THRESHOLD_EXCEEDED, "over"),
            make_alert(make_processed(), AlertType.ANOMALY_DETECTED, "odd"),
        ]

    def test_newest_first(self, store, alerts):
        store.insert_alerts(alerts)
        assert store.get_alerts()["type"].tolist() == ["ANOMALY_DETECTED", "THRESHOLD_EXCEEDED", "QUALITY_LOW"]

    def test_filters(self, store, alerts):
        store.insert_alerts(alerts)
        assert store.get_alerts(sensor_id="P1")["message"].tolist() == ["over"]
        assert store.get_alerts(alert_type="QUALITY_LOW")["message"].tolist() == ["low"]
        assert len(store.get_alerts(severity="high")) == 2


class TestMaintenance:
    def test_clean_old_data(self, store, make_reading, make_processed, now):
        store.insert_readings([make_reading(age=timedelta(days=40)), make_reading(age=timedelta(days=1))])
        store.insert_processed_data([make_processed(age=timedelta(days=31))])
        store.insert_alerts([make_alert(make_processed(), AlertType.QUALITY_LOW, "low")])

        deleted = store.clean_old_data(older_than_days=30, now=now)

        assert deleted == {"readings": 1, "processed_data": 1, "alerts": 0}
        assert store.count("readings") == 1
        assert store.count("alerts") == 1

    def test_count_unknown_table(self, store):
        with pytest.raises(ValueError):
            store.count("users; DROP TABLE readings")
