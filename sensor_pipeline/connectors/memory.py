"""
sensor_pipeline/connectors/memory.py
────────────────────────────────────
In-process collaborators for tests, the demo entry point and local runs.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any

import structlog

from sensor_pipeline.data.models import DataAlert, ProcessedData

logger = structlog.get_logger(__name__)


def content_id(document: dict[str, Any]) -> str:
    """Deterministic id: sha256 of the canonical JSON encoding."""
    encoded = json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return "sha256-" + hashlib.sha256(encoded).hexdigest()


class InMemoryContentStore:
    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}

    async def add(self, document: dict[str, Any]) -> str:
        cid = content_id(document)
        self.documents[cid] = document
        return cid

    async def get(self, cid: str) -> dict[str, Any]:
        try:
            return self.documents[cid]
        except KeyError:
            raise KeyError(f"Unknown content id: {cid}") from None

    async def aclose(self) -> None:
        self.documents.clear()


class InMemoryLedger:
    """Records submissions in order and hands back sequential transaction ids."""

    def __init__(self):
        self.submissions: list[tuple[str, dict[str, Any]]] = []

    def _record(self, kind: str, payload: dict[str, Any]) -> str:
        self.submissions.append((kind, payload))
        return f"tx-{len(self.submissions):08d}"

    async def submit_processed_data(self, data: ProcessedData) -> str:
        return self._record("processed", data.to_wire())

    async def submit_alert(self, alert: DataAlert) -> str:
        return self._record("alert", alert.to_wire())


class LogNotifier:
    """Writes each alert to the structured log."""

    async def notify(self, alerts: list[DataAlert]) -> None:
        for alert in alerts:
            logger.warning(
                "Alert",
                sensor_id=alert.sensor_id,
                type=alert.type.value,
                severity=alert.severity.value,
                message=alert.message,
            )
