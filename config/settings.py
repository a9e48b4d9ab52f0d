"""
config/settings.py
──────────────────
Pipeline configuration loaded from environment variables.
"""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    # Buffer / batcher
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "100"))
    FLUSH_INTERVAL_MS: int = int(os.getenv("FLUSH_INTERVAL_MS", "5000"))
    # 0 disables the cap (unbounded queue)
    MAX_QUEUE_DEPTH: int = int(os.getenv("MAX_QUEUE_DEPTH", "10000"))
    OVERFLOW_POLICY: str = os.getenv("OVERFLOW_POLICY", "drop_oldest")
    MAX_BATCH_RETRIES: int = int(os.getenv("MAX_BATCH_RETRIES", "0"))

    # Quality scoring & alerting
    QUALITY_FLOOR: int = int(os.getenv("QUALITY_FLOOR", "70"))
    STALENESS_SECONDS: int = int(os.getenv("STALENESS_SECONDS", "300"))
    OFFLINE_SILENCE_SECONDS: int = int(os.getenv("OFFLINE_SILENCE_SECONDS", "300"))
    LIVENESS_CHECK_INTERVAL_MS: int = int(os.getenv("LIVENESS_CHECK_INTERVAL_MS", "30000"))

    # Tag stamped on every ProcessedData envelope
    PROCESSING_VERSION: str = os.getenv("PROCESSING_VERSION", "1.0.0")

    # Simulation
    SIMULATION_SEED: int = int(os.getenv("SIMULATION_SEED", "42"))
    SIM_TICK_MS: int = int(os.getenv("SIM_TICK_MS", "1000"))
    SIM_DEMO_TICKS: int = int(os.getenv("SIM_DEMO_TICKS", "10"))

    # Collaborators
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sensor_pipeline.db")
    IPFS_API_URL: str = os.getenv("IPFS_API_URL", "http://localhost:5001")
    IPFS_TIMEOUT_S: float = float(os.getenv("IPFS_TIMEOUT_S", "30"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON: bool = os.getenv("LOG_JSON", "false").lower() == "true"


settings = Settings()
