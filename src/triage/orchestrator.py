"""Triage orchestrator driving the classify → label → comment sequence.

Receives a validated webhook event and drives one triage attempt through
the stages defined in state.py:

    received → classifying → {low_confidence | classified} → labeling
    → [commenting] → completed

Any unrecovered classification or labeling failure ends the attempt in
FAILED. triage_issue() never raises: every outcome, including failures,
is returned as a TriageResult. Comment failures are absorbed locally and
only clear the comment_posted flag.

The orchestrator holds no per-attempt state between calls and is safe to
invoke concurrently for independent events. All collaborators are
injected through the constructor.
"""

import asyncio
import time
from typing import Dict, List, Optional, Protocol, Sequence

import structlog
from pydantic import BaseModel

from src.triage.classifier.gating import desired_labels, diff, gate
from src.triage.classifier.models import ClassificationResult, IssueContext
from src.triage.errors import AppError, ErrorKind, low_confidence, wrap_exception
from src.triage.events.emitter import EventEmitter, NullEventEmitter
from src.triage.events.models import TriageEvent, TriageEventType
from src.triage.logs import bind_correlation_id, new_correlation_id
from src.triage.state import TriageAttempt, TriageResult, TriageStage
from src.triage.webhook.models import WebhookEvent

logger = structlog.get_logger(__name__)


class ClassificationService(Protocol):
    """Classifies an issue. Fails only with AppError."""

    async def classify(self, context: IssueContext) -> ClassificationResult:
        ...

    async def health_check(self) -> bool:
        ...


class IssueTrackerService(Protocol):
    """Label and comment operations on issues. Fails only with AppError."""

    async def add_labels(self, issue_number: int, labels: Sequence[str]) -> List[str]:
        ...

    async def post_comment(
        self, issue_number: int, classification: ClassificationResult
    ) -> None:
        ...

    async def health_check(self) -> bool:
        ...


class HealthStatus(BaseModel):
    """Combined health of both collaborators."""

    overall: bool
    services: Dict[str, bool]


# Kind used to wrap opaque failures, by the stage they escaped from
_STAGE_DEFAULT_KIND = {
    TriageStage.LABELING: ErrorKind.NETWORK_ERROR,
    TriageStage.COMMENTING: ErrorKind.NETWORK_ERROR,
}


class TriageOrchestrator:
    """Drives one triage attempt per webhook event.

    Attributes:
        classifier: The classification service.
        tracker: The issue tracker service.
        confidence_threshold: Minimum confidence to act on a classification.
        auto_comment: Whether to post a triage comment after labeling.
        event_emitter: Sink for triage events; failures are non-fatal.
    """

    def __init__(
        self,
        classifier: ClassificationService,
        tracker: IssueTrackerService,
        confidence_threshold: float = 0.75,
        auto_comment: bool = True,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.classifier = classifier
        self.tracker = tracker
        self.confidence_threshold = confidence_threshold
        self.auto_comment = auto_comment
        self.event_emitter = event_emitter or NullEventEmitter()

    async def triage_issue(
        self,
        event: WebhookEvent,
        correlation_id: Optional[str] = None,
    ) -> TriageResult:
        """Run one triage attempt for an issue event.

        Args:
            event: The validated webhook event.
            correlation_id: Id joining the attempt's log lines. Generated
                when not provided.

        Returns:
            TriageResult. success is True only for COMPLETED; low-confidence
            and failed attempts return success False with an error message.
        """
        correlation_id = correlation_id or new_correlation_id()
        attempt = TriageAttempt(
            correlation_id=correlation_id,
            issue_number=event.issue_number,
            repository=event.full_repository,
        )
        started = time.monotonic()

        with bind_correlation_id(correlation_id):
            logger.info(
                "triage_started",
                issue_number=event.issue_number,
                action=event.action.value,
                repository=event.full_repository,
                component="triage-orchestrator",
            )
            try:
                return await self._run(event, attempt, started)
            except Exception as exc:
                error = wrap_exception(
                    exc,
                    default_kind=_STAGE_DEFAULT_KIND.get(
                        attempt.stage, ErrorKind.CLASSIFICATION_ERROR
                    ),
                    context={
                        "correlation_id": correlation_id,
                        "issue_number": event.issue_number,
                    },
                    operation=f"triage stage {attempt.stage.value}",
                )
                return await self._fail(attempt, error, started)

    async def _run(
        self,
        event: WebhookEvent,
        attempt: TriageAttempt,
        started: float,
    ) -> TriageResult:
        context = IssueContext.from_event(event)

        await self._advance(attempt, TriageStage.CLASSIFYING)
        classification = await self.classifier.classify(context)

        if not gate(classification.confidence, self.confidence_threshold):
            return await self._low_confidence(attempt, classification, started)

        await self._advance(
            attempt,
            TriageStage.CLASSIFIED,
            primary_label=classification.primary_label,
            confidence=classification.confidence,
        )

        await self._advance(attempt, TriageStage.LABELING)
        remainder = diff(desired_labels(classification), context.existing_labels)
        labels_applied: List[str] = []
        if remainder:
            confirmed = set(await self.tracker.add_labels(event.issue_number, remainder))
            labels_applied = [label for label in remainder if label in confirmed]
        else:
            logger.info(
                "labels_already_present",
                issue_number=event.issue_number,
                existing_labels=list(context.existing_labels),
            )

        comment_posted = False
        if self.auto_comment:
            await self._advance(attempt, TriageStage.COMMENTING)
            comment_posted = await self._post_comment(event.issue_number, classification)

        await self._advance(attempt, TriageStage.COMPLETED)

        result = TriageResult(
            success=True,
            classification=classification,
            labels_applied=tuple(labels_applied),
            comment_posted=comment_posted,
            final_stage=TriageStage.COMPLETED,
        )
        duration = time.monotonic() - started

        logger.info(
            "triage_completed",
            issue_number=event.issue_number,
            primary_label=classification.primary_label,
            confidence=classification.confidence,
            labels_applied=labels_applied,
            comment_posted=comment_posted,
            duration_seconds=round(duration, 3),
            component="triage-orchestrator",
        )
        await self._emit(
            attempt,
            TriageEventType.COMPLETION,
            labels_applied=labels_applied,
            comment_posted=comment_posted,
            primary_label=classification.primary_label,
            duration_seconds=duration,
        )
        return result

    async def _post_comment(
        self, issue_number: int, classification: ClassificationResult
    ) -> bool:
        """Post the triage comment, absorbing any failure."""
        try:
            await self.tracker.post_comment(issue_number, classification)
            return True
        except Exception as exc:
            logger.warning(
                "comment_failed",
                issue_number=issue_number,
                error=str(exc),
                error_kind=exc.kind.value if isinstance(exc, AppError) else None,
                component="triage-orchestrator",
            )
            return False

    async def _low_confidence(
        self,
        attempt: TriageAttempt,
        classification: ClassificationResult,
        started: float,
    ) -> TriageResult:
        error = low_confidence(
            classification.confidence,
            self.confidence_threshold,
            context={"correlation_id": attempt.correlation_id},
        )
        await self._advance(
            attempt,
            TriageStage.LOW_CONFIDENCE,
            confidence=classification.confidence,
            threshold=self.confidence_threshold,
        )
        logger.warning(
            "classification_below_threshold",
            issue_number=attempt.issue_number,
            primary_label=classification.primary_label,
            confidence=classification.confidence,
            threshold=self.confidence_threshold,
            component="triage-orchestrator",
        )
        await self._emit(
            attempt,
            TriageEventType.LOW_CONFIDENCE,
            confidence=classification.confidence,
            threshold=self.confidence_threshold,
            primary_label=classification.primary_label,
            duration_seconds=time.monotonic() - started,
        )
        return TriageResult(
            success=False,
            error=error.message,
            final_stage=TriageStage.LOW_CONFIDENCE,
            error_kind=error.kind.value,
            retryable=error.retryable,
        )

    async def _fail(
        self,
        attempt: TriageAttempt,
        error: AppError,
        started: float,
    ) -> TriageResult:
        failed_stage = attempt.stage
        if not attempt.is_terminal:
            attempt.advance(TriageStage.FAILED, error_kind=error.kind.value)

        logger.error(
            "triage_failed",
            issue_number=attempt.issue_number,
            stage=failed_stage.value,
            **error.to_dict(),
        )
        await self._emit(
            attempt,
            TriageEventType.ERROR,
            stage=failed_stage.value,
            error_kind=error.kind.value,
            error_code=error.code,
            retryable=error.retryable,
            error_message=error.message,
            duration_seconds=time.monotonic() - started,
        )
        return TriageResult(
            success=False,
            error=error.message,
            final_stage=TriageStage.FAILED,
            error_kind=error.kind.value,
            retryable=error.retryable,
        )

    async def _advance(self, attempt: TriageAttempt, to_stage: TriageStage, **details) -> None:
        transition = attempt.advance(to_stage, **details)
        await self._emit(
            attempt,
            TriageEventType.STAGE_TRANSITION,
            from_stage=transition.from_stage.value,
            to_stage=transition.to_stage.value,
        )

    async def _emit(self, attempt: TriageAttempt, event_type: TriageEventType, **details) -> None:
        """Build and emit an event, logging but not propagating failures."""
        try:
            event = TriageEvent(
                event_type=event_type,
                correlation_id=attempt.correlation_id,
                issue_number=attempt.issue_number,
                repository=attempt.repository,
                details=details,
            )
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "event_emit_failed",
                event_type=event_type.value,
                correlation_id=attempt.correlation_id,
            )

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def health_check(self, correlation_id: Optional[str] = None) -> HealthStatus:
        """Probe both collaborators concurrently.

        A probe that raises counts as unhealthy; nothing is propagated.

        Returns:
            HealthStatus with the overall flag (logical AND) and each
            service's flag.
        """
        correlation_id = correlation_id or new_correlation_id()
        classifier_ok, github_ok = await asyncio.gather(
            self.classifier.health_check(),
            self.tracker.health_check(),
            return_exceptions=True,
        )
        services = {
            "classifier": classifier_ok is True,
            "github": github_ok is True,
        }
        status = HealthStatus(overall=all(services.values()), services=services)

        logger.info(
            "health_check_completed",
            correlation_id=correlation_id,
            overall=status.overall,
            component="triage-orchestrator",
            **services,
        )
        return status
