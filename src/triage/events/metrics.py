"""Prometheus metrics for triage observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- triage_attempts_total: Counter of finished attempts by outcome
- triage_failures_total: Counter of failed attempts by stage and error kind
- triage_duration_seconds: Histogram of attempt duration by outcome
- triage_labels_applied_total: Counter of labels added, per label

The MetricsEventEmitter updates these from the orchestrator's events.
"""

from typing import Iterable, Optional

import structlog
from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.triage.events.emitter import EventEmitter
from src.triage.events.models import TriageEvent, TriageEventType

logger = structlog.get_logger(__name__)


# Classification dominates attempt time; buckets span 100ms to 2 minutes
DEFAULT_DURATION_BUCKETS = (
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
)

OUTCOMES = ("completed", "low_confidence", "failed")


class TriageMetrics:
    """Container for all triage Prometheus metrics.

    Supports custom registries so tests can inspect values in isolation.

    Metrics:
        attempts_total: Labels: outcome (completed/low_confidence/failed)
        failures_total: Labels: stage, kind
        duration_seconds: Labels: outcome
        labels_applied_total: Labels: label
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize triage metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.attempts_total = Counter(
            "triage_attempts_total",
            "Total number of finished triage attempts",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.failures_total = Counter(
            "triage_failures_total",
            "Total number of failed triage attempts",
            labelnames=["stage", "kind"],
            registry=self.registry,
        )

        self.duration_seconds = Histogram(
            "triage_duration_seconds",
            "Time spent on a triage attempt in seconds",
            labelnames=["outcome"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.labels_applied_total = Counter(
            "triage_labels_applied_total",
            "Total number of labels added to issues",
            labelnames=["label"],
            registry=self.registry,
        )

        for outcome in OUTCOMES:
            self.attempts_total.labels(outcome=outcome)

    def record_attempt(self, outcome: str, duration_seconds: Optional[float] = None) -> None:
        """Record a finished attempt and, when known, its duration."""
        self.attempts_total.labels(outcome=outcome).inc()
        if duration_seconds is not None:
            self.duration_seconds.labels(outcome=outcome).observe(duration_seconds)

    def record_failure(self, stage: str, kind: str) -> None:
        self.failures_total.labels(stage=stage, kind=kind).inc()

    def record_labels_applied(self, labels: Iterable[str]) -> None:
        for label in labels:
            self.labels_applied_total.labels(label=label).inc()


# Global metrics instance for the default registry
_default_metrics: Optional[TriageMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> TriageMetrics:
    """Get or create the triage metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        TriageMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return TriageMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = TriageMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - LOW_CONFIDENCE: counts a low_confidence attempt
    - COMPLETION: counts a completed attempt, its duration and its labels
    - ERROR: counts a failed attempt and the failing stage/kind
    - STAGE_TRANSITION: ignored

    Attributes:
        metrics: The TriageMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[TriageMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> TriageMetrics:
        return self._metrics

    async def emit(self, event: TriageEvent) -> None:
        try:
            if event.event_type == TriageEventType.COMPLETION:
                self._handle_completion(event)
            elif event.event_type == TriageEventType.LOW_CONFIDENCE:
                self._metrics.record_attempt(
                    "low_confidence", event.details.get("duration_seconds")
                )
            elif event.event_type == TriageEventType.ERROR:
                self._handle_error(event)
        except Exception as e:
            logger.error(
                "metrics_update_failed",
                event_type=event.event_type.value,
                correlation_id=event.correlation_id,
                error=str(e),
            )

    def _handle_completion(self, event: TriageEvent) -> None:
        self._metrics.record_attempt("completed", event.details.get("duration_seconds"))
        self._metrics.record_labels_applied(event.details.get("labels_applied", []))

    def _handle_error(self, event: TriageEvent) -> None:
        self._metrics.record_attempt("failed", event.details.get("duration_seconds"))
        self._metrics.record_failure(
            stage=event.details.get("stage", "unknown"),
            kind=event.details.get("error_kind", "unknown"),
        )
