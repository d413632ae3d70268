"""Per-attempt triage state machine models.

This module defines:
- TriageStage: Enum of the stages one triage attempt moves through
- VALID_TRANSITIONS: Map defining allowed stage transitions
- StageTransition: Record of one transition with timestamp and details
- TriageAttempt: In-memory state of a single attempt (never persisted)
- TriageResult: Terminal value returned by the orchestrator

Stage Flow:
    received → classifying → {low_confidence | classified} → labeling
    → [commenting] → completed

Any non-terminal stage can transition to 'failed'. LOW_CONFIDENCE,
COMPLETED and FAILED are terminal.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from src.triage.classifier.models import ClassificationResult
from src.triage.errors import validation_failed


class TriageStage(str, Enum):
    """Stages of a triage attempt.

    Attributes:
        RECEIVED: Event accepted, nothing done yet.
        CLASSIFYING: Waiting on the classification service.
        LOW_CONFIDENCE: Confidence below threshold; no action taken.
        CLASSIFIED: Classification accepted by the confidence gate.
        LABELING: Adding the missing labels to the issue.
        COMMENTING: Posting the triage comment (best effort).
        COMPLETED: Attempt finished successfully.
        FAILED: Classification or labeling failed.
    """

    RECEIVED = "received"
    CLASSIFYING = "classifying"
    LOW_CONFIDENCE = "low_confidence"
    CLASSIFIED = "classified"
    LABELING = "labeling"
    COMMENTING = "commenting"
    COMPLETED = "completed"
    FAILED = "failed"


# LABELING may skip straight to COMPLETED when auto-comment is off.
# COMMENTING keeps FAILED reachable even though comment errors are absorbed.
VALID_TRANSITIONS: Dict[TriageStage, FrozenSet[TriageStage]] = {
    TriageStage.RECEIVED: frozenset({TriageStage.CLASSIFYING, TriageStage.FAILED}),
    TriageStage.CLASSIFYING: frozenset(
        {TriageStage.LOW_CONFIDENCE, TriageStage.CLASSIFIED, TriageStage.FAILED}
    ),
    TriageStage.CLASSIFIED: frozenset({TriageStage.LABELING, TriageStage.FAILED}),
    TriageStage.LABELING: frozenset(
        {TriageStage.COMMENTING, TriageStage.COMPLETED, TriageStage.FAILED}
    ),
    TriageStage.COMMENTING: frozenset({TriageStage.COMPLETED, TriageStage.FAILED}),
    TriageStage.LOW_CONFIDENCE: frozenset(),
    TriageStage.COMPLETED: frozenset(),
    TriageStage.FAILED: frozenset(),
}


def is_valid_transition(from_stage: TriageStage, to_stage: TriageStage) -> bool:
    return to_stage in VALID_TRANSITIONS.get(from_stage, frozenset())


def is_terminal_stage(stage: TriageStage) -> bool:
    return not VALID_TRANSITIONS.get(stage)


class StageTransition(BaseModel):
    """Record of a stage transition within one attempt."""

    model_config = ConfigDict(frozen=True)

    from_stage: TriageStage
    to_stage: TriageStage
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)


class TriageAttempt(BaseModel):
    """Mutable in-memory state of one triage attempt.

    Created by the orchestrator for each call to triage_issue() and
    discarded when the result is returned. Concurrent attempts never
    share an instance.

    Attributes:
        correlation_id: Id used to join the attempt's log lines.
        issue_number: The issue being triaged.
        repository: Full repository path in format "{owner}/{name}".
        stage: The current stage.
        history: Ordered list of transitions so far.
    """

    correlation_id: str
    issue_number: int
    repository: str
    stage: TriageStage = TriageStage.RECEIVED
    history: List[StageTransition] = Field(default_factory=list)

    def advance(self, to_stage: TriageStage, **details: Any) -> StageTransition:
        """Move the attempt to a new stage.

        Args:
            to_stage: The stage to enter.
            **details: Metadata recorded on the transition.

        Returns:
            The recorded transition.

        Raises:
            AppError: VALIDATION_ERROR if the transition is not allowed.
        """
        if not is_valid_transition(self.stage, to_stage):
            raise validation_failed(
                f"invalid triage transition {self.stage.value} -> {to_stage.value}",
                field="stage",
                context={"correlation_id": self.correlation_id},
            )
        transition = StageTransition(
            from_stage=self.stage,
            to_stage=to_stage,
            details=details,
        )
        self.history.append(transition)
        self.stage = to_stage
        return transition

    @property
    def is_terminal(self) -> bool:
        return is_terminal_stage(self.stage)

    @property
    def stages(self) -> List[TriageStage]:
        """Every stage visited, starting with RECEIVED."""
        return [TriageStage.RECEIVED] + [t.to_stage for t in self.history]


class TriageResult(BaseModel):
    """Terminal outcome of one triage attempt.

    Attributes:
        success: True only when the attempt reached COMPLETED.
        classification: Present iff the attempt succeeded. Low-confidence
            outcomes carry the confidence in the error message instead.
        labels_applied: Labels actually added, in diff order. May be empty.
        comment_posted: Whether the triage comment was posted.
        error: Error message, present iff not success.
        final_stage: COMPLETED, LOW_CONFIDENCE or FAILED.
        error_kind: ErrorKind value of the failure, when there is one.
        retryable: Retryable flag of the failure, when there is one.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    classification: Optional[ClassificationResult] = None
    labels_applied: Tuple[str, ...] = ()
    comment_posted: bool = False
    error: Optional[str] = None
    final_stage: TriageStage
    error_kind: Optional[str] = None
    retryable: Optional[bool] = None

    @property
    def low_confidence(self) -> bool:
        """True for the "no action taken" outcome, as opposed to a failure."""
        return self.final_stage == TriageStage.LOW_CONFIDENCE

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used in API responses."""
        data: Dict[str, Any] = {
            "success": self.success,
            "labelsApplied": list(self.labels_applied),
            "commentPosted": self.comment_posted,
            "finalStage": self.final_stage.value,
            "lowConfidence": self.low_confidence,
        }
        if self.classification is not None:
            data["classification"] = self.classification.to_dict()
        if self.error is not None:
            data["error"] = self.error
        if self.error_kind is not None:
            data["errorKind"] = self.error_kind
            data["retryable"] = self.retryable
        return data
