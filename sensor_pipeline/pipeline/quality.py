"""
sensor_pipeline/pipeline/quality.py
───────────────────────────────────
Per-reading quality score ∈ [0, 100].

  start              100
  stale (> 5 min)    −20
  unreasonable       −10   (pluggable check, default always passes)
  no metadata         −5
  floor                0
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from config.settings import settings
from sensor_pipeline.analytics.reasonableness import AlwaysReasonable, ReasonablenessCheck
from sensor_pipeline.data.models import SensorReading

MAX_SCORE = 100
STALENESS_PENALTY = 20
UNREASONABLE_PENALTY = 10
MISSING_METADATA_PENALTY = 5


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class QualityScorer:
    def __init__(
        self,
        reasonableness: ReasonablenessCheck | None = None,
        staleness: timedelta = timedelta(seconds=settings.STALENESS_SECONDS),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.reasonableness = reasonableness or AlwaysReasonable()
        self.staleness = staleness
        self.clock = clock

    def score(self, reading: SensorReading, now: datetime | None = None) -> int:
        """Deterministic for a given reading and evaluation instant."""
        now = now or self.clock()
        score = MAX_SCORE

        if now - reading.timestamp > self.staleness:
            score -= STALENESS_PENALTY

        if not self.reasonableness.is_reasonable(reading):
            score -= UNREASONABLE_PENALTY

        if not reading.metadata:
            score -= MISSING_METADATA_PENALTY

        return max(0, score)
