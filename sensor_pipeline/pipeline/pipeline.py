"""
sensor_pipeline/pipeline/pipeline.py
────────────────────────────────────
Explicit composition of the ingestion stages:

  transport message ─► SensorDataCollector ─► validate ─► registry.mark_seen
                                                  │
                                                  ▼
                                            ReadingBuffer
                                                  │ flush
                                                  ▼
            TransformEngine (derive + score) ─► AlertEvaluator ─► Dispatcher

The LivenessWatcher runs beside the buffer and sends SENSOR_OFFLINE alerts
straight to the dispatcher.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from config.settings import settings
from sensor_pipeline.data.models import BatchResult, DataAlert, SensorReading
from sensor_pipeline.errors import ValidationError
from sensor_pipeline.pipeline.alerts import AlertEvaluator
from sensor_pipeline.pipeline.buffer import OverflowPolicy, ReadingBuffer
from sensor_pipeline.pipeline.collector import DEFAULT_TOPIC_PREFIX, SensorDataCollector
from sensor_pipeline.pipeline.dispatcher import Dispatcher
from sensor_pipeline.pipeline.liveness import LivenessWatcher
from sensor_pipeline.pipeline.quality import utc_now
from sensor_pipeline.pipeline.registry import SensorRegistry
from sensor_pipeline.pipeline.transform import TransformEngine
from sensor_pipeline.pipeline.validator import validate_reading

logger = structlog.get_logger(__name__)

ResultHandler = Callable[[BatchResult], Awaitable[None]]


@dataclass
class PipelineTotals:
    batches: int = 0
    processed: int = 0
    skipped: int = 0
    alerts: int = 0


class IngestionPipeline:
    def __init__(
        self,
        registry: SensorRegistry | None = None,
        engine: TransformEngine | None = None,
        evaluator: AlertEvaluator | None = None,
        dispatcher: Dispatcher | None = None,
        on_result: ResultHandler | None = None,
        batch_size: int = settings.BATCH_SIZE,
        flush_interval_ms: int = settings.FLUSH_INTERVAL_MS,
        max_queue_depth: int = settings.MAX_QUEUE_DEPTH,
        overflow_policy: OverflowPolicy | str = settings.OVERFLOW_POLICY,
        max_batch_retries: int = settings.MAX_BATCH_RETRIES,
        offline_silence: timedelta = timedelta(seconds=settings.OFFLINE_SILENCE_SECONDS),
        topic_prefix: str | None = DEFAULT_TOPIC_PREFIX,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.clock = clock
        self.registry = registry or SensorRegistry()
        self.engine = engine or TransformEngine(clock=clock)
        self.evaluator = evaluator or AlertEvaluator(self.registry)
        self.dispatcher = dispatcher or Dispatcher()
        self.on_result = on_result
        self.totals = PipelineTotals()

        self.buffer = ReadingBuffer(
            self._handle_batch,
            batch_size=batch_size,
            flush_interval_ms=flush_interval_ms,
            max_queue_depth=max_queue_depth,
            overflow_policy=overflow_policy,
            max_batch_retries=max_batch_retries,
        )
        self.collector = SensorDataCollector(
            self.registry, self.buffer.add_to_queue, topic_prefix=topic_prefix, clock=clock
        )
        self.liveness = LivenessWatcher(
            self.registry, silence=offline_silence, on_alert=self._handle_offline, clock=clock
        )

    # ── Stages ────────────────────────────────────────────────────────────────

    def process_batch(self, batch: Iterable[SensorReading], now: datetime | None = None) -> BatchResult:
        """Derive, score and evaluate one batch. Failing readings are skipped, not fatal."""
        processed, failures = self.engine.process_batch(batch, now)
        kept, alerts, rejected = self.evaluator.sweep(processed)
        return BatchResult(processed=kept, alerts=alerts, skipped=len(failures) + len(rejected))

    async def _handle_batch(self, batch: list[SensorReading]) -> None:
        result = self.process_batch(batch)
        await self.dispatcher.dispatch(result)

        self.totals.batches += 1
        self.totals.processed += len(result.processed)
        self.totals.skipped += result.skipped
        self.totals.alerts += len(result.alerts)

        await self._notify(result)

    async def _handle_offline(self, alerts: list[DataAlert]) -> None:
        self.totals.alerts += len(alerts)
        result = BatchResult(alerts=alerts)
        await self.dispatcher.dispatch(result)
        await self._notify(result)

    async def _notify(self, result: BatchResult) -> None:
        # The batch is already dispatched; a failing handler must not make the buffer retry it.
        if self.on_result is None:
            return
        try:
            await self.on_result(result)
        except Exception as exc:
            logger.error(
                "Result handler failed",
                processed=len(result.processed),
                alerts=len(result.alerts),
                error=f"{type(exc).__name__}: {exc}",
            )

    # ── Entry points ──────────────────────────────────────────────────────────

    async def submit(self, reading: Mapping[str, Any] | SensorReading) -> SensorReading:
        """
        Validate and enqueue one reading.

        Raises:
            ValidationError: the reading was rejected and never queued.
        """
        now = self.clock()
        try:
            accepted = validate_reading(reading, now)
        except ValidationError as exc:
            logger.warning("Rejected reading", reason=exc.reason)
            raise
        self.registry.mark_seen(accepted.sensor_id, now)
        await self.buffer.add_to_queue(accepted)
        return accepted

    async def handle_message(self, topic: str, payload: bytes | str | Mapping[str, Any]) -> SensorReading | None:
        return await self.collector.handle_message(topic, payload)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        self.buffer.start()
        self.liveness.start()
        logger.info("Pipeline started", sensors=len(self.registry))

    async def stop(self, drain: bool = True) -> None:
        await self.liveness.stop()
        await self.buffer.stop(drain=drain)
        await self.dispatcher.aclose()
        logger.info(
            "Pipeline stopped",
            batches=self.totals.batches,
            processed=self.totals.processed,
            skipped=self.totals.skipped,
            alerts=self.totals.alerts,
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
