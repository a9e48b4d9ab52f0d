"""
sensor_pipeline/analytics/statistics.py
───────────────────────────────────────
Per-sensor analytics summary.

For one (sensor, numeric type) series:
  statistics  count, mean, min, max, population standard deviation
  trend       least-squares slope in value units per hour; |slope| below
              `stable_rate` is reported as stable
  anomalies   supplied alerts for the sensor and type inside the time range,
              plus points the offline rolling z-score flags
"""
from __future__ import annotations

from collections.abc import Iterable

import numpy as np
import pandas as pd

from config.alerts import ALERT_SEVERITY, AlertType
from sensor_pipeline.analytics.anomaly import DEFAULT_THRESHOLD, DEFAULT_WINDOW, detect_anomalies
from sensor_pipeline.data.models import (
    DataAlert,
    SensorAnalytics,
    SensorReading,
    Statistics,
    TimeRange,
    Trend,
    TrendDirection,
)

DEFAULT_STABLE_RATE = 0.01  # value units per hour


def compute_trend(timestamps: pd.Series, values: pd.Series, stable_rate: float = DEFAULT_STABLE_RATE) -> Trend:
    """
    Linear trend over the series. Needs at least two distinct instants;
    anything less is stable at rate 0.
    """
    hours = (timestamps - timestamps.iloc[0]).dt.total_seconds().to_numpy() / 3600.0
    if len(values) < 2 or np.ptp(hours) == 0:
        return Trend(direction=TrendDirection.STABLE, rate=0.0)

    slope = float(np.polyfit(hours, values.to_numpy(dtype=float), 1)[0])

    # polyfit on a flat series returns ~1e-13 rather than 0.0
    if abs(slope) < max(stable_rate, 1e-6):
        return Trend(direction=TrendDirection.STABLE, rate=round(slope, 6))
    direction = TrendDirection.INCREASING if slope > 0 else TrendDirection.DECREASING
    return Trend(direction=direction, rate=round(slope, 6))


def summarize(
    readings: Iterable[SensorReading],
    alerts: Iterable[DataAlert] = (),
    stable_rate: float = DEFAULT_STABLE_RATE,
    detect: bool = True,
    window: int = DEFAULT_WINDOW,
    threshold: float = DEFAULT_THRESHOLD,
) -> SensorAnalytics:
    """
    Summarize readings of a single sensor and numeric type.

    Raises:
        ValueError: if the readings are empty, mix sensors or types, or are location fixes.
    """
    readings = sorted(readings, key=lambda r: r.timestamp)
    if not readings:
        raise ValueError("Cannot summarize an empty series")

    first = readings[0]
    if any(r.sensor_id != first.sensor_id or r.sensor_type is not first.sensor_type for r in readings):
        raise ValueError("Readings must come from a single sensor and type")
    if first.numeric_value is None:
        raise ValueError(f"Cannot summarize {first.sensor_type.value} readings")

    df = pd.DataFrame(
        {
            "timestamp": pd.to_datetime([r.timestamp for r in readings], utc=True),
            "value": [r.numeric_value for r in readings],
        }
    )
    values = df["value"].to_numpy(dtype=float)
    start, end = readings[0].timestamp, readings[-1].timestamp

    statistics = Statistics(
        count=len(values),
        average=float(values.mean()),
        min=float(values.min()),
        max=float(values.max()),
        standard_deviation=float(values.std()),
    )

    anomalies = [
        alert for alert in alerts
        if alert.sensor_id == first.sensor_id
        and start <= alert.timestamp <= end
        and (alert.data or {}).get("sensorType", first.sensor_type.value) == first.sensor_type.value
    ]
    if detect:
        zscores, mask = detect_anomalies(df["value"], window=window, threshold=threshold)
        for index in np.flatnonzero(mask.to_numpy()):
            reading = readings[index]
            anomalies.append(
                DataAlert(
                    sensor_id=reading.sensor_id,
                    type=AlertType.ANOMALY_DETECTED,
                    severity=ALERT_SEVERITY[AlertType.ANOMALY_DETECTED],
                    message=f"{reading.sensor_type.value} z-score {zscores.iloc[index]:.2f} exceeds {threshold:g}",
                    timestamp=reading.timestamp,
                    data=reading.to_wire(),
                )
            )
    anomalies.sort(key=lambda alert: alert.timestamp)

    return SensorAnalytics(
        sensor_id=first.sensor_id,
        sensor_type=first.sensor_type,
        time_range=TimeRange(start=start, end=end),
        statistics=statistics,
        trends=compute_trend(df["timestamp"], df["value"], stable_rate),
        anomalies=anomalies,
    )
