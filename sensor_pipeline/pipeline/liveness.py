"""
sensor_pipeline/pipeline/liveness.py
────────────────────────────────────
Silence watcher for registered sensors.

A sensor that is online and has not been seen for longer than the silence
window is marked offline and one SENSOR_OFFLINE alert is raised. The alert
is not repeated while the sensor stays offline; the next reading flips it
back online (registry.mark_seen) and re-arms the watcher.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

import structlog

from config.alerts import ALERT_SEVERITY, AlertType
from config.settings import settings
from sensor_pipeline.data.models import DataAlert, SensorStatus
from sensor_pipeline.pipeline.quality import utc_now
from sensor_pipeline.pipeline.registry import SensorRegistry

logger = structlog.get_logger(__name__)

AlertHandler = Callable[[list[DataAlert]], Awaitable[None]]


class LivenessWatcher:
    def __init__(
        self,
        registry: SensorRegistry,
        silence: timedelta = timedelta(seconds=settings.OFFLINE_SILENCE_SECONDS),
        check_interval_ms: int = settings.LIVENESS_CHECK_INTERVAL_MS,
        on_alert: AlertHandler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.silence = silence
        self.check_interval_ms = check_interval_ms
        self.on_alert = on_alert
        self.clock = clock
        self._task: asyncio.Task | None = None

    def check(self, now: datetime | None = None) -> list[DataAlert]:
        """One sweep over the registry; returns the alerts for sensors that just went silent."""
        now = now or self.clock()
        alerts: list[DataAlert] = []

        for config in self.registry.all():
            # Never-seen sensors have nothing to go silent from
            if config.status is not SensorStatus.ONLINE or config.last_seen is None:
                continue
            silent_for = now - config.last_seen
            if silent_for <= self.silence:
                continue

            self.registry.mark_offline(config.id)
            alerts.append(
                DataAlert(
                    sensor_id=config.id,
                    type=AlertType.SENSOR_OFFLINE,
                    severity=ALERT_SEVERITY[AlertType.SENSOR_OFFLINE],
                    message=f"Sensor {config.id} is offline (no data for {int(silent_for.total_seconds())}s)",
                    timestamp=now,
                    data={"lastSeen": config.last_seen.isoformat()},
                )
            )

        return alerts

    async def _run(self) -> None:
        interval = self.check_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            alerts = self.check()
            if alerts and self.on_alert is not None:
                try:
                    await self.on_alert(alerts)
                except Exception:
                    logger.exception("Offline alert handler failed", count=len(alerts))

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Liveness watcher started", silence_s=self.silence.total_seconds())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Liveness watcher stopped")
