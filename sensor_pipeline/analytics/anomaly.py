"""
sensor_pipeline/analytics/anomaly.py
────────────────────────────────────
Anomaly detection strategies.

The alert evaluator asks an `AnomalyDetector` about each processed reading.
The default `NullAnomalyDetector` never flags anything. `RollingZScoreDetector`
is a streaming option:

  z = (x − μ_window) / σ_window,   |z| > threshold → anomaly

where the window holds the previous `window` values of the same
(sensor, type) stream. `rolling_zscore` / `detect_anomalies` apply the same
idea to a whole pandas Series for offline analytics.
"""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Protocol

import numpy as np
import pandas as pd

from sensor_pipeline.data.models import ProcessedData
from sensor_pipeline.errors import ConfigurationError

DEFAULT_WINDOW = 24       # observations
DEFAULT_THRESHOLD = 2.5   # standard deviations
DEFAULT_MIN_PERIODS = 4


class AnomalyDetector(Protocol):
    def is_anomaly(self, data: ProcessedData) -> bool: ...


class NullAnomalyDetector:
    def is_anomaly(self, data: ProcessedData) -> bool:
        return False


class RollingZScoreDetector:
    """Stateful per-stream detector; each call also feeds the value into the window."""

    def __init__(
        self,
        window: int = DEFAULT_WINDOW,
        threshold: float = DEFAULT_THRESHOLD,
        min_periods: int = DEFAULT_MIN_PERIODS,
    ):
        if window < 2 or min_periods < 2 or min_periods > window:
            raise ConfigurationError("z-score detector needs 2 ≤ min_periods ≤ window")
        if threshold <= 0:
            raise ConfigurationError("z-score threshold must be positive")
        self.window = window
        self.threshold = threshold
        self.min_periods = min_periods
        self._history: dict[tuple[str, str], deque[float]] = defaultdict(lambda: deque(maxlen=self.window))

    def zscore(self, data: ProcessedData) -> float | None:
        """Z-score of this value against the stream's history, without recording it."""
        value = data.numeric_value
        if value is None:
            return None
        history = self._history[(data.sensor_id, data.sensor_type.value)]
        if len(history) < self.min_periods:
            return None
        values = np.fromiter(history, dtype=float)
        sigma = float(values.std(ddof=1))
        if sigma < 1e-9:
            return None
        return (value - float(values.mean())) / sigma

    def is_anomaly(self, data: ProcessedData) -> bool:
        z = self.zscore(data)
        if data.numeric_value is not None:
            self._history[(data.sensor_id, data.sensor_type.value)].append(data.numeric_value)
        return z is not None and abs(z) > self.threshold


# ── Offline (Series) helpers ──────────────────────────────────────────────────

def rolling_zscore(
    series: pd.Series,
    window: int = DEFAULT_WINDOW,
    min_periods: int = DEFAULT_MIN_PERIODS,
) -> pd.Series:
    """
    Rolling Z-score of each point against the window of points before it.

    Returns NaN where the window is not yet populated or flat.
    """
    prior = series.shift(1)
    roll_mean = prior.rolling(window=window, min_periods=min_periods).mean()
    roll_std = prior.rolling(window=window, min_periods=min_periods).std()
    roll_std = roll_std.replace(0.0, np.nan)
    return (series - roll_mean) / roll_std


def detect_anomalies(
    series: pd.Series,
    window: int = DEFAULT_WINDOW,
    threshold: float = DEFAULT_THRESHOLD,
) -> tuple[pd.Series, pd.Series]:
    """
    Returns:
        (zscore_series, anomaly_mask) where the mask is True for anomalies.
    """
    zscores = rolling_zscore(series, window=window)
    anomaly_mask = zscores.abs() > threshold
    return zscores, anomaly_mask
