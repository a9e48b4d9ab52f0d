"""
sensor_pipeline/pipeline/alerts.py
──────────────────────────────────
Per-batch alert sweep over processed data.

Each reading is checked against three independent rules and every rule that
fires adds its own alert:

  QUALITY_LOW         medium   quality_score < floor (strict)
  ANOMALY_DETECTED    high     anomaly detector says so
  THRESHOLD_EXCEEDED  high     raw value outside the registered {min, max}

SENSOR_OFFLINE is not raised here; see pipeline/liveness.py.
"""
from __future__ import annotations

from collections.abc import Iterable

import structlog

from config.alerts import ALERT_SEVERITY, AlertType
from config.settings import settings
from sensor_pipeline.analytics.anomaly import AnomalyDetector, NullAnomalyDetector
from sensor_pipeline.analytics.thresholds import check_threshold
from sensor_pipeline.data.models import DataAlert, ProcessedData
from sensor_pipeline.errors import ProcessingError
from sensor_pipeline.pipeline.registry import SensorRegistry

logger = structlog.get_logger(__name__)


def make_alert(data: ProcessedData, alert_type: AlertType, message: str) -> DataAlert:
    """Alert stamped with the reading's own timestamp and a snapshot of it."""
    return DataAlert(
        sensor_id=data.sensor_id,
        type=alert_type,
        severity=ALERT_SEVERITY[alert_type],
        message=message,
        timestamp=data.timestamp,
        data=data.to_wire(),
    )


class AlertEvaluator:
    def __init__(
        self,
        registry: SensorRegistry | None = None,
        anomaly_detector: AnomalyDetector | None = None,
        quality_floor: int = settings.QUALITY_FLOOR,
    ):
        self.registry = registry or SensorRegistry()
        self.anomaly_detector = anomaly_detector or NullAnomalyDetector()
        self.quality_floor = quality_floor

    def evaluate_one(self, data: ProcessedData) -> list[DataAlert]:
        alerts: list[DataAlert] = []

        if data.quality_score < self.quality_floor:
            alerts.append(make_alert(data, AlertType.QUALITY_LOW, f"Low quality score: {data.quality_score}"))

        if self.anomaly_detector.is_anomaly(data):
            alerts.append(make_alert(data, AlertType.ANOMALY_DETECTED, "Anomalous reading detected"))

        value = data.numeric_value
        threshold = self.registry.thresholds_for(data.sensor_id, data.sensor_type)
        if value is not None and threshold is not None:
            breach = check_threshold(value, threshold)
            if breach is not None:
                alerts.append(
                    make_alert(data, AlertType.THRESHOLD_EXCEEDED, breach.describe(data.sensor_type.value))
                )

        return alerts

    def sweep(
        self,
        batch: Iterable[ProcessedData],
    ) -> tuple[list[ProcessedData], list[DataAlert], list[ProcessingError]]:
        """
        Evaluate every item of a batch. An item whose evaluation raises is
        logged and left out of the kept list; the rest of the batch goes on.

        Returns (kept items, alerts in batch order, failures).
        """
        kept: list[ProcessedData] = []
        alerts: list[DataAlert] = []
        failures: list[ProcessingError] = []

        for data in batch:
            try:
                item_alerts = self.evaluate_one(data)
            except Exception as exc:
                failure = ProcessingError(data.sensor_id, f"{type(exc).__name__}: {exc}")
                logger.error(
                    "Skipping reading that failed alert evaluation",
                    sensor_id=data.sensor_id,
                    sensor_type=data.sensor_type.value,
                    reason=failure.reason,
                )
                failures.append(failure)
                continue
            kept.append(data)
            alerts.extend(item_alerts)

        if alerts:
            logger.warning(
                "Generated alerts",
                count=len(alerts),
                types=sorted({alert.type.value for alert in alerts}),
            )
        return kept, alerts, failures

    def evaluate(self, batch: Iterable[ProcessedData]) -> list[DataAlert]:
        """Flat list of every alert raised by the batch, in batch order."""
        return self.sweep(batch)[1]
