"""Triage event models for observability.

This module defines the data models for triage events:
- TriageEventType: Enum of all event types emitted by the orchestrator
- TriageEvent: Structured event with correlation id and issue metadata

Events are the supervisory sink of the service: background triage attempts
are never awaited by a caller, so their progress and outcome are visible
only through these events (and the log lines they produce).

The models use Pydantic for validation, consistent with the service's
approach in webhook/models.py and classifier/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TriageEventType(str, Enum):
    """Types of events emitted during a triage attempt.

    Event Categories:
        STAGE_TRANSITION: Emitted when an attempt moves between stages.
            Used for tracing an attempt end to end.

        LOW_CONFIDENCE: Emitted when the classification confidence is below
            the configured threshold and no action is taken.

        COMPLETION: Emitted when an attempt reaches COMPLETED.
            Carries the labels applied, comment status and duration.

        ERROR: Emitted when an attempt reaches FAILED.
            Carries the error kind, retryable flag and failing stage.
    """

    STAGE_TRANSITION = "stage_transition"
    LOW_CONFIDENCE = "low_confidence"
    COMPLETION = "completion"
    ERROR = "error"


class TriageEvent(BaseModel):
    """Structured event emitted by the triage orchestrator.

    Attributes:
        event_type: The category of event.
        correlation_id: Id of the triage attempt the event belongs to.
        issue_number: The issue being triaged.
        repository: Full repository path in format "{owner}/{name}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STAGE_TRANSITION events:
            - from_stage / to_stage: Stage values

        For LOW_CONFIDENCE events:
            - confidence / threshold / primary_label

        For COMPLETION events:
            - labels_applied: Labels actually added
            - comment_posted: Whether the triage comment was posted
            - duration_seconds: Total attempt time

        For ERROR events:
            - stage: Stage where the failure occurred
            - error_kind / error_code / retryable / error_message
            - duration_seconds: Time spent before failing
    """

    event_type: TriageEventType

    correlation_id: Optional[str] = None

    issue_number: int = Field(..., gt=0)

    repository: str = Field(..., min_length=1)

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def issue_id(self) -> str:
        return f"{self.repository}#{self.issue_number}"

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event into keyword context for structured logging."""
        return {
            "event_type": self.event_type.value,
            "correlation_id": self.correlation_id,
            "issue_number": self.issue_number,
            "repository": self.repository,
            "event_timestamp": self.timestamp.isoformat(),
            **self.details,
        }
