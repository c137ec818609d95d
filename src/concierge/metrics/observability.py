"""Observability helpers for the concierge router."""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Iterable, Mapping

import structlog
from prometheus_client import Counter, Gauge, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "concierge") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class RouterMetrics:
    """Prometheus metrics for routing stages."""

    routed_total = Counter(
        "concierge_routed_total",
        "Questions answered, by terminal routing layer.",
        ["layer"],
    )
    routing_latency = Histogram(
        "concierge_routing_duration_seconds",
        "Time spent routing a question, embedding call included.",
        buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
    )
    safety_blended_score = Histogram(
        "concierge_safety_blended_score",
        "Blended safety score of questions reaching the semantic safety gate.",
        buckets=(0.0, 0.1, 0.2, 0.3, 0.42, 0.5, 0.75, 1.0),
    )
    embedding_latency = Histogram(
        "concierge_embedding_duration_seconds",
        "Time spent waiting on the embedding provider.",
        buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    )
    retrieval_latency = Histogram(
        "concierge_retrieval_duration_seconds",
        "Time spent ranking the knowledge corpus.",
        buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1),
    )
    grounding_score = Histogram(
        "concierge_grounding_score",
        "Similarity score of passages handed to generation.",
        buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
    )
    generation_latency = Histogram(
        "concierge_generation_duration_seconds",
        "Time spent generating answers.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    )
    request_errors = Counter(
        "concierge_request_errors_total",
        "Requests that failed, by error type.",
        ["error"],
    )
    audit_failures = Counter(
        "concierge_audit_failures_total",
        "Audit records that could not be written.",
    )
    catalog_size = Gauge(
        "concierge_catalog_entries",
        "Entries loaded from each static configuration document.",
        ["document"],
    )

    @classmethod
    def observe_routing(cls, duration_seconds: float, layer: str) -> None:
        cls.routing_latency.observe(duration_seconds)
        cls.routed_total.labels(layer=layer).inc()

    @classmethod
    def observe_safety_score(cls, score: float) -> None:
        cls.safety_blended_score.observe(_clamp_score(score))

    @classmethod
    def observe_embedding(cls, duration_seconds: float) -> None:
        cls.embedding_latency.observe(duration_seconds)

    @classmethod
    def observe_retrieval(cls, duration_seconds: float, scores: Iterable[float]) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        for score in scores:
            cls.grounding_score.observe(_clamp_score(score))

    @classmethod
    def observe_generation(cls, duration_seconds: float) -> None:
        cls.generation_latency.observe(duration_seconds)

    @classmethod
    def observe_error(cls, error: str) -> None:
        cls.request_errors.labels(error=error).inc()

    @classmethod
    def observe_audit_failure(cls) -> None:
        cls.audit_failures.inc()

    @classmethod
    def observe_catalog(cls, sizes: Mapping[str, int]) -> None:
        for document, size in sizes.items():
            cls.catalog_size.labels(document=document).set(size)


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "RouterMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
