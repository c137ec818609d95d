"""Routing audit trail."""

from .service import (
    AuditDispatcher,
    AuditRecord,
    AuditSink,
    InMemoryAuditSink,
    JsonlAuditSink,
    LogAuditSink,
    expand_trace,
)

__all__ = [
    "AuditDispatcher",
    "AuditRecord",
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "LogAuditSink",
    "expand_trace",
]
