"""
sensor_pipeline/pipeline/dispatcher.py
──────────────────────────────────────
Hands a finished batch to the configured downstream collaborators.

All calls for a batch run concurrently. A failing call is logged as a
SubmissionError and recorded in the report; it is never retried here and
never raised back into the pipeline. Retry and idempotency belong to the
collaborator.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

import structlog

from sensor_pipeline.connectors.base import ContentStore, LedgerClient, Notifier, PersistenceStore
from sensor_pipeline.data.models import BatchResult
from sensor_pipeline.errors import SubmissionError

logger = structlog.get_logger(__name__)

_FAILED = object()


@dataclass
class DispatchReport:
    content_ids: list[str] = field(default_factory=list)
    transaction_ids: list[str] = field(default_factory=list)
    stored: int = 0
    notified: int = 0
    failures: list[SubmissionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class Dispatcher:
    def __init__(
        self,
        ledger: LedgerClient | None = None,
        content_store: ContentStore | None = None,
        persistence: PersistenceStore | None = None,
        notifier: Notifier | None = None,
    ):
        self.ledger = ledger
        self.content_store = content_store
        self.persistence = persistence
        self.notifier = notifier

    async def _guarded(self, collaborator: str, call: Awaitable[Any], report: DispatchReport) -> Any:
        try:
            return await call
        except Exception as exc:
            error = SubmissionError(collaborator, f"{type(exc).__name__}: {exc}")
            report.failures.append(error)
            logger.error(
                "Collaborator call failed",
                collaborator=collaborator,
                reason=error.reason,
            )
            return _FAILED

    async def dispatch(self, result: BatchResult) -> DispatchReport:
        report = DispatchReport()
        if not result.processed and not result.alerts:
            return report

        content_calls: list[Awaitable[Any]] = []
        ledger_calls: list[Awaitable[Any]] = []
        store_calls: list[Awaitable[Any]] = []
        notify_calls: list[Awaitable[Any]] = []

        if self.content_store is not None:
            documents = [p.to_wire() for p in result.processed] + [a.to_wire() for a in result.alerts]
            content_calls = [
                self._guarded("content_store", self.content_store.add(doc), report) for doc in documents
            ]
        if self.ledger is not None:
            ledger_calls = [
                self._guarded("ledger", self.ledger.submit_processed_data(p), report) for p in result.processed
            ] + [self._guarded("ledger", self.ledger.submit_alert(a), report) for a in result.alerts]
        if self.persistence is not None:
            store_calls = [
                self._guarded("persistence", self.persistence.store_processed_data(list(result.processed)), report),
                self._guarded("persistence", self.persistence.store_alerts(list(result.alerts)), report),
            ]
        if self.notifier is not None and result.alerts:
            notify_calls = [self._guarded("notifier", self.notifier.notify(list(result.alerts)), report)]

        results = await asyncio.gather(*content_calls, *ledger_calls, *store_calls, *notify_calls)

        n_content, n_ledger, n_store = len(content_calls), len(ledger_calls), len(store_calls)
        report.content_ids = [r for r in results[:n_content] if r is not _FAILED]
        report.transaction_ids = [r for r in results[n_content:n_content + n_ledger] if r is not _FAILED]
        report.stored = sum(
            r or 0 for r in results[n_content + n_ledger:n_content + n_ledger + n_store] if r is not _FAILED
        )
        if notify_calls and results[-1] is not _FAILED:
            report.notified = len(result.alerts)

        logger.info(
            "Dispatched batch",
            processed=len(result.processed),
            alerts=len(result.alerts),
            failures=len(report.failures),
        )
        return report

    async def aclose(self) -> None:
        """Close every collaborator that holds a resource."""
        for collaborator in (self.ledger, self.content_store, self.persistence, self.notifier):
            aclose = getattr(collaborator, "aclose", None)
            if aclose is not None:
                await aclose()
