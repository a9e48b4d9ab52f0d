"""
app.py
──────
Sensor Pipeline: demo entry point.

Startup sequence:
  1. Configure structured logging
  2. Register the demo sensors and their thresholds
  3. Wire the pipeline to in-memory ledger/content store, SQLite and a log notifier
  4. Stream simulated readings through the transport entry point
  5. Drain the buffer, close collaborators and print a per-sensor summary
"""
import asyncio
import json

import structlog

from config.settings import settings
from sensor_pipeline.analytics.statistics import summarize
from sensor_pipeline.connectors.memory import InMemoryContentStore, InMemoryLedger, LogNotifier
from sensor_pipeline.data.models import BatchResult, SensorConfig, SensorType, Threshold
from sensor_pipeline.data.simulator import EnvironmentalSimulator
from sensor_pipeline.data.store import SQLiteStore
from sensor_pipeline.log import configure_logging
from sensor_pipeline.pipeline.dispatcher import Dispatcher
from sensor_pipeline.pipeline.pipeline import IngestionPipeline
from sensor_pipeline.pipeline.registry import SensorRegistry

DEMO_SENSORS = [
    SensorConfig(
        id="ENV001",
        type="environmental",
        thresholds={
            SensorType.TEMPERATURE: Threshold(min=0, max=30),
            SensorType.PRESSURE: Threshold(min=960, max=1040),
        },
    ),
    SensorConfig(
        id="ENV002",
        type="environmental",
        thresholds={SensorType.HUMIDITY: Threshold(min=30, max=80)},
    ),
]


async def main() -> None:
    # ── 1. Logging ────────────────────────────────────────────────────────────
    configure_logging()
    logger = structlog.get_logger("app")

    # ── 2. Registry ───────────────────────────────────────────────────────────
    registry = SensorRegistry(DEMO_SENSORS)

    # ── 3. Pipeline ───────────────────────────────────────────────────────────
    store = SQLiteStore(settings.DATABASE_URL)
    dispatcher = Dispatcher(
        ledger=InMemoryLedger(),
        content_store=InMemoryContentStore(),
        persistence=store,
        notifier=LogNotifier(),
    )
    results: list[BatchResult] = []

    async def collect(result: BatchResult) -> None:
        results.append(result)

    simulators = [
        EnvironmentalSimulator(config.id, seed=settings.SIMULATION_SEED + i)
        for i, config in enumerate(DEMO_SENSORS)
    ]

    # ── 4. Stream ─────────────────────────────────────────────────────────────
    async with IngestionPipeline(registry=registry, dispatcher=dispatcher, on_result=collect) as pipeline:

        async def publish(reading) -> None:
            topic = f"sensors/{reading.sensor_id}/{reading.sensor_type.value}"
            payload = reading.to_wire()
            payload.pop("sensorId")
            payload.pop("sensorType")
            await pipeline.handle_message(topic, json.dumps(payload))

        await asyncio.gather(*(sim.run(publish, max_ticks=settings.SIM_DEMO_TICKS) for sim in simulators))

    # ── 5. Summary ────────────────────────────────────────────────────────────
    processed = [p for result in results for p in result.processed]
    alerts = [a for result in results for a in result.alerts]
    logger.info(
        "Demo finished",
        batches=len(results),
        processed=len(processed),
        alerts=len(alerts),
        collector=vars(pipeline.collector.stats),
    )
    for sim in simulators:
        for sensor_type in (SensorType.TEMPERATURE, SensorType.HUMIDITY, SensorType.PRESSURE):
            series = [p.reading() for p in processed if p.sensor_id == sim.sensor_id and p.sensor_type is sensor_type]
            if series:
                print(json.dumps(summarize(series, alerts).to_wire(), indent=2))
    # Dispatcher.aclose() already closed the store


if __name__ == "__main__":
    asyncio.run(main())
