"""
sensor_pipeline/analytics/thresholds.py
────────────────────────────────────────
Threshold engine for registered per-sensor {min, max} bands.

Provides:
  - Breach detection for a raw value against a Threshold
  - Human-readable breach messages naming the bound and the excess
"""
from __future__ import annotations

from dataclasses import dataclass

from sensor_pipeline.data.models import Threshold


@dataclass(frozen=True)
class ThresholdBreach:
    bound: str      # "max" | "min"
    limit: float
    value: float

    @property
    def excess(self) -> float:
        """Distance past the bound, always positive."""
        return abs(self.value - self.limit)

    def describe(self, sensor_type: str) -> str:
        if self.bound == "max":
            return (
                f"{sensor_type} exceeded maximum threshold (max={self.limit:g}): "
                f"{self.value:g} is {self.excess:g} above"
            )
        return (
            f"{sensor_type} below minimum threshold (min={self.limit:g}): "
            f"{self.value:g} is {self.excess:g} below"
        )


def check_threshold(value: float, threshold: Threshold) -> ThresholdBreach | None:
    """
    Compare a raw value against a band. Bounds are inclusive, so a value
    equal to min or max is not a breach.
    """
    if value > threshold.max:
        return ThresholdBreach(bound="max", limit=threshold.max, value=value)
    if value < threshold.min:
        return ThresholdBreach(bound="min", limit=threshold.min, value=value)
    return None
