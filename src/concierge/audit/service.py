"""Best-effort persistence of routing decisions."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Protocol, Sequence, Set, Tuple

from concierge.metrics.observability import RouterMetrics, get_logger
from concierge.models import LAYER_ORDER, RoutingDecision, SourceCitation

_LOGGER = get_logger("audit")


def expand_trace(trace: Sequence[RoutingDecision]) -> Tuple[RoutingDecision, ...]:
    """Append a skipped entry for every layer the router never reached."""

    reached = {decision.layer for decision in trace}
    expanded = list(trace)
    for layer in LAYER_ORDER:
        if layer in reached:
            continue
        expanded.append(RoutingDecision(layer=layer, triggered=False, order=len(expanded), skipped=True))
    return tuple(expanded)


@dataclass(frozen=True)
class AuditRecord:
    query_id: str
    correlation_id: str
    question: str
    normalized_question: str
    decisions: Tuple[RoutingDecision, ...]
    sources: Tuple[SourceCitation, ...] = ()
    latency_ms: float | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_id": self.query_id,
            "correlation_id": self.correlation_id,
            "question": self.question,
            "normalized_question": self.normalized_question,
            "decisions": [decision.to_dict() for decision in self.decisions],
            "sources": [source.to_dict() for source in self.sources],
            "latency_ms": self.latency_ms,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }


class AuditSink(Protocol):
    async def record(self, record: AuditRecord) -> None:
        """Persist one audit record."""


class LogAuditSink:
    """Writes each record as a structured log event."""

    def __init__(self, logger=None) -> None:
        self._logger = logger or _LOGGER

    async def record(self, record: AuditRecord) -> None:
        self._logger.info("routing.audit", **record.to_dict())


class InMemoryAuditSink:
    def __init__(self) -> None:
        self.records: List[AuditRecord] = []

    async def record(self, record: AuditRecord) -> None:
        self.records.append(record)


class JsonlAuditSink:
    """Appends records to a JSON Lines file off the event loop."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    def _append(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    async def record(self, record: AuditRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False)
        async with self._lock:
            await asyncio.to_thread(self._append, line)


class AuditDispatcher:
    """Schedules sink writes without blocking or failing the caller.

    Pending writes are held in ``_pending`` until they finish so the event
    loop does not collect them early. Failures are logged and counted.
    """

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink
        self._pending: Set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, record: AuditRecord) -> asyncio.Task[None] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.warning("audit.no_event_loop", query_id=record.query_id)
            RouterMetrics.observe_audit_failure()
            return None
        task = loop.create_task(self._write(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, record: AuditRecord) -> None:
        try:
            await self._sink.record(record)
        except Exception as exc:  # noqa: BLE001 - audit must never fail a request
            RouterMetrics.observe_audit_failure()
            _LOGGER.error("audit.write_failed", query_id=record.query_id, error=str(exc))

    async def drain(self) -> None:
        """Wait for every pending write; used at shutdown and in tests."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
