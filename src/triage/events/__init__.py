"""Triage events and their sinks (structured logs and Prometheus metrics)."""

from .emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
)
from .factory import create_event_emitter
from .metrics import MetricsEventEmitter, TriageMetrics, generate_metrics_output, get_metrics
from .models import TriageEvent, TriageEventType

__all__ = [
    "CompositeEventEmitter",
    "EventEmitter",
    "EventSinkType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "TriageEvent",
    "TriageEventType",
    "TriageMetrics",
    "create_event_emitter",
    "generate_metrics_output",
    "get_metrics",
]
