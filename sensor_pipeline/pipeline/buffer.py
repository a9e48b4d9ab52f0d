"""
sensor_pipeline/pipeline/buffer.py
──────────────────────────────────
Reading buffer / batcher.

Validated readings queue in arrival order and leave in batches of at most
`batch_size`, either as soon as the queue reaches `batch_size` or on the
periodic timer when the queue is non-empty and idle.

Only one flush runs at a time; a trigger that arrives while a flush is in
progress is a no-op and readings keep queueing behind it. The batch is taken
off the queue before the handler is awaited, so batches leave FIFO.

A handler failure loses the batch (logged at error level) unless
`max_batch_retries` > 0, in which case that same batch is flushed again
ahead of the queue, at most `max_batch_retries` more times.

The queue can be capped with `max_queue_depth` (0 = unbounded):
  drop_oldest   evict the oldest queued reading to admit the new one
  reject_new    refuse the new reading
"""
from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from config.settings import settings
from sensor_pipeline.data.models import SensorReading
from sensor_pipeline.errors import ConfigurationError

logger = structlog.get_logger(__name__)

BatchHandler = Callable[[list[SensorReading]], Awaitable[Any]]


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "drop_oldest"
    REJECT_NEW = "reject_new"


@dataclass(frozen=True)
class BufferStats:
    queue_length: int
    is_processing: bool
    batch_size: int
    flush_interval_ms: int
    dropped: int
    rejected: int
    flushed_batches: int
    lost_batches: int


class ReadingBuffer:
    def __init__(
        self,
        on_batch: BatchHandler,
        batch_size: int = settings.BATCH_SIZE,
        flush_interval_ms: int = settings.FLUSH_INTERVAL_MS,
        max_queue_depth: int = settings.MAX_QUEUE_DEPTH,
        overflow_policy: OverflowPolicy | str = settings.OVERFLOW_POLICY,
        max_batch_retries: int = settings.MAX_BATCH_RETRIES,
    ):
        if batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if flush_interval_ms <= 0:
            raise ConfigurationError("flush_interval_ms must be positive")
        if max_queue_depth < 0:
            raise ConfigurationError("max_queue_depth must be >= 0 (0 disables the cap)")
        if max_batch_retries < 0:
            raise ConfigurationError("max_batch_retries must be >= 0")
        try:
            self.overflow_policy = OverflowPolicy(overflow_policy)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown overflow policy: {overflow_policy}") from exc

        self.on_batch = on_batch
        self.batch_size = batch_size
        self.flush_interval_ms = flush_interval_ms
        self.max_queue_depth = max_queue_depth
        self.max_batch_retries = max_batch_retries

        self._queue: deque[SensorReading] = deque()
        self._retry: tuple[list[SensorReading], int] | None = None  # (batch, attempts so far)
        self._processing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._timer: asyncio.Task | None = None
        self._timer_flush: asyncio.Task | None = None

        self._dropped = 0
        self._rejected = 0
        self._flushed_batches = 0
        self._lost_batches = 0

    # ── Queue ─────────────────────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        """Readings not yet handed to the handler, including a batch awaiting retry."""
        retry = len(self._retry[0]) if self._retry else 0
        return len(self._queue) + retry

    async def add_to_queue(self, reading: SensorReading) -> bool:
        """
        Queue one validated reading. Awaits the flush when the queue reaches
        `batch_size`. Returns False if the reading was refused by the cap.
        """
        if self.max_queue_depth and len(self._queue) >= self.max_queue_depth:
            if self.overflow_policy is OverflowPolicy.REJECT_NEW:
                self._rejected += 1
                logger.warning(
                    "Queue full, rejecting reading",
                    sensor_id=reading.sensor_id,
                    depth=len(self._queue),
                )
                return False
            evicted = self._queue.popleft()
            self._dropped += 1
            logger.warning(
                "Queue full, dropping oldest reading",
                sensor_id=evicted.sensor_id,
                depth=len(self._queue),
            )

        self._queue.append(reading)
        if len(self._queue) >= self.batch_size:
            await self.flush()
        return True

    def _next_batch(self) -> tuple[list[SensorReading], int]:
        if self._retry is not None:
            batch, attempts = self._retry
            self._retry = None
            return batch, attempts
        size = min(self.batch_size, len(self._queue))
        return [self._queue.popleft() for _ in range(size)], 0

    async def flush(self) -> int:
        """
        Hand the next batch to the handler.

        Returns the number of readings delivered; 0 when another flush is in
        progress, nothing is pending, or the handler failed.
        """
        if self._processing or not self.pending:
            return 0

        self._processing = True
        self._idle.clear()
        batch, attempts = self._next_batch()
        try:
            logger.info("Processing batch", size=len(batch), attempt=attempts + 1)
            await self.on_batch(batch)
        except Exception:
            if attempts < self.max_batch_retries:
                self._retry = (batch, attempts + 1)
                logger.warning("Batch failed, will retry", size=len(batch), attempt=attempts + 1, exc_info=True)
            else:
                self._lost_batches += 1
                logger.exception(
                    "Batch lost after handler failure",
                    size=len(batch),
                    attempts=attempts + 1,
                    first_sensor_id=batch[0].sensor_id,
                )
            return 0
        else:
            self._flushed_batches += 1
            return len(batch)
        finally:
            self._processing = False
            self._idle.set()

    # ── Timer lifecycle ───────────────────────────────────────────────────────

    async def _run_timer(self) -> None:
        interval = self.flush_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            if self.pending and not self._processing:
                self._timer_flush = asyncio.ensure_future(self.flush())
                # Cancelling the timer must not cancel the flush it started
                await asyncio.shield(self._timer_flush)

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        if self.running:
            return
        self._timer = asyncio.create_task(self._run_timer())
        logger.info("Buffer started", batch_size=self.batch_size, flush_interval_ms=self.flush_interval_ms)

    async def stop(self, drain: bool = True) -> None:
        """Cancel the timer, wait out any in-flight flush, then optionally flush what is left."""
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        await self._idle.wait()

        if drain:
            while self.pending:
                await self._idle.wait()
                await self.flush()

        logger.info("Buffer stopped", remaining=self.pending, drained=drain)

    def stats(self) -> BufferStats:
        return BufferStats(
            queue_length=self.pending,
            is_processing=self._processing,
            batch_size=self.batch_size,
            flush_interval_ms=self.flush_interval_ms,
            dropped=self._dropped,
            rejected=self._rejected,
            flushed_batches=self._flushed_batches,
            lost_batches=self._lost_batches,
        )
