"""Observability helpers."""

from taskforge.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_sync,
    record_reconcile,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_sync",
    "record_reconcile",
]
