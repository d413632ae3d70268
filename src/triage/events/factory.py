"""Construction of the configured event sink."""

from typing import List, Optional

import structlog
from prometheus_client import CollectorRegistry

from src.triage.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
)
from src.triage.events.metrics import MetricsEventEmitter

logger = structlog.get_logger(__name__)


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
    registry: Optional[CollectorRegistry] = None,
) -> EventEmitter:
    """Create an event emitter for the requested sinks.

    Args:
        sink_types: Sinks to enable. If None or empty, returns a
                    LoggingEventEmitter.
        logger_name: Optional logger name for the LoggingEventEmitter.
        registry: Optional Prometheus registry for the metrics sink.

    Returns:
        A single emitter, or a CompositeEventEmitter when more than one
        sink is requested.
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []
    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            emitters.append(MetricsEventEmitter(registry=registry))
        else:
            logger.warning("unknown_event_sink", sink_type=str(sink_type))

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)
    if len(emitters) == 1:
        return emitters[0]
    return CompositeEventEmitter(emitters)
