"""Event emitter implementations for triage observability.

This module defines the EventEmitter interface and the sinks that do not
depend on Prometheus:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events (tests, or emission disabled)

The Prometheus sink lives in metrics.py and the factory that combines the
two lives in factory.py, so neither module imports the other lazily.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

import structlog

from src.triage.events.models import TriageEvent, TriageEventType

logger = structlog.get_logger(__name__)


class EventSinkType(str, Enum):
    """Types of event sinks supported by the service.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics.
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for triage event emitters.

    Implementations should be:
    - Async-safe: emit() is called from background tasks
    - Non-blocking: emit() should not hold up the triage attempt
    - Fault-tolerant: callers treat emit() failures as non-fatal
    """

    @abstractmethod
    async def emit(self, event: TriageEvent) -> None:
        """Emit a triage event.

        Args:
            event: The triage event to emit.
        """

    async def close(self) -> None:
        """Close the emitter and release resources. Does nothing by default."""


class LoggingEventEmitter(EventEmitter):
    """Event emitter that writes events as structured log entries.

    Events are logged at different levels based on event type:

    - STAGE_TRANSITION: DEBUG level
    - LOW_CONFIDENCE: INFO level
    - COMPLETION: INFO level
    - ERROR: ERROR level
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging event emitter.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = structlog.get_logger(logger_name) if logger_name else logger
        self._log_level_map: Dict[TriageEventType, int] = {
            TriageEventType.STAGE_TRANSITION: logging.DEBUG,
            TriageEventType.LOW_CONFIDENCE: logging.INFO,
            TriageEventType.COMPLETION: logging.INFO,
            TriageEventType.ERROR: logging.ERROR,
        }

    async def emit(self, event: TriageEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(log_level, "triage_event", **event.to_log_dict())


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Each child is called independently; a failure in one sink is logged
    and does not prevent delivery to the others.

    Attributes:
        emitters: List of child emitters to delegate to.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = list(emitters or [])

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Child emitters (read-only copy)."""
        return list(self._emitters)

    async def emit(self, event: TriageEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "event_emit_failed",
                    emitter_type=type(emitter).__name__,
                    event_type=event.event_type.value,
                    correlation_id=event.correlation_id,
                    error=str(e),
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "event_emitter_close_failed",
                    emitter_type=type(emitter).__name__,
                    error=str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: TriageEvent) -> None:
        pass
