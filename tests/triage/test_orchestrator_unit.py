"""Unit tests for TriageOrchestrator.

The classifier and issue tracker are AsyncMocks; events go to a recording
emitter so stage transitions and outcome events can be asserted.
"""

import asyncio
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.triage.classifier.models import ClassificationResult, Severity
from src.triage.errors import (
    ErrorKind,
    auth_failed,
    classification_failed,
    network_failure,
    rate_limited,
    timed_out,
)
from src.triage.events.emitter import EventEmitter
from src.triage.events.models import TriageEvent, TriageEventType
from src.triage.orchestrator import TriageOrchestrator
from src.triage.state import TriageStage
from src.triage.webhook.models import WebhookEvent


def run_async(coro):
    return asyncio.run(coro)


class RecordingEmitter(EventEmitter):
    def __init__(self):
        self.events: List[TriageEvent] = []

    async def emit(self, event: TriageEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: TriageEventType) -> List[TriageEvent]:
        return [e for e in self.events if e.event_type == event_type]

    @property
    def stages(self) -> List[str]:
        return [
            e.details["to_stage"]
            for e in self.of_type(TriageEventType.STAGE_TRANSITION)
        ]


def _make_event(labels: Sequence[str] = (), action: str = "opened") -> WebhookEvent:
    user = {"login": "dev1", "id": 7}
    return WebhookEvent.model_validate(
        {
            "action": action,
            "issue": {
                "id": 1001,
                "number": 42,
                "title": "App crashes on save",
                "body": "Steps to reproduce...",
                "state": "open",
                "user": user,
                "labels": [
                    {"id": i, "name": name, "color": "ededed"}
                    for i, name in enumerate(labels)
                ],
                "created_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-01T00:00:00Z",
                "html_url": "https://github.com/acme/widgets/issues/42",
                "repository_url": "https://api.github.com/repos/acme/widgets",
            },
            "repository": {
                "id": 99,
                "name": "widgets",
                "full_name": "acme/widgets",
                "owner": {"login": "acme", "id": 5},
                "html_url": "https://github.com/acme/widgets",
            },
            "sender": user,
        }
    )


def _make_classification(
    primary_label: str = "bug",
    confidence: float = 0.9,
    additional_labels: Sequence[str] = (),
    severity: Optional[Severity] = None,
) -> ClassificationResult:
    return ClassificationResult(
        primary_label=primary_label,
        confidence=confidence,
        reasoning="Reproducible crash.",
        additional_labels=tuple(additional_labels),
        severity=severity,
    )


def _make_orchestrator(
    classification: Optional[ClassificationResult] = None,
    classify_error: Optional[Exception] = None,
    add_labels_error: Optional[Exception] = None,
    comment_error: Optional[Exception] = None,
    auto_comment: bool = True,
    threshold: float = 0.75,
):
    classifier = MagicMock()
    classifier.classify = AsyncMock(
        return_value=classification or _make_classification(),
        side_effect=classify_error,
    )
    classifier.health_check = AsyncMock(return_value=True)

    tracker = MagicMock()
    tracker.add_labels = AsyncMock(
        side_effect=add_labels_error or (lambda number, labels: list(labels))
    )
    tracker.post_comment = AsyncMock(side_effect=comment_error)
    tracker.health_check = AsyncMock(return_value=True)

    emitter = RecordingEmitter()
    orchestrator = TriageOrchestrator(
        classifier=classifier,
        tracker=tracker,
        confidence_threshold=threshold,
        auto_comment=auto_comment,
        event_emitter=emitter,
    )
    return orchestrator, classifier, tracker, emitter


class TestSuccessfulTriage:
    def test_new_issue_is_labeled_and_commented(self):
        orchestrator, classifier, tracker, emitter = _make_orchestrator()

        result = run_async(orchestrator.triage_issue(_make_event(), "cid-1"))

        assert result.success is True
        assert result.labels_applied == ("bug",)
        assert result.comment_posted is True
        assert result.final_stage == TriageStage.COMPLETED
        assert result.classification.primary_label == "bug"
        assert result.error is None

        context = classifier.classify.await_args.args[0]
        assert context.title == "App crashes on save"
        assert context.existing_labels == ()
        tracker.add_labels.assert_awaited_once_with(42, ["bug"])
        tracker.post_comment.assert_awaited_once_with(42, result.classification)

        assert emitter.stages == [
            "classifying",
            "classified",
            "labeling",
            "commenting",
            "completed",
        ]
        completion = emitter.of_type(TriageEventType.COMPLETION)[0]
        assert completion.correlation_id == "cid-1"
        assert completion.details["labels_applied"] == ["bug"]

    def test_only_missing_labels_are_added(self):
        orchestrator, _, tracker, _ = _make_orchestrator(
            classification=_make_classification(additional_labels=["enhancement", "question"])
        )

        result = run_async(orchestrator.triage_issue(_make_event(labels=["question"])))

        tracker.add_labels.assert_awaited_once_with(42, ["bug", "enhancement"])
        assert result.labels_applied == ("bug", "enhancement")

    def test_labels_applied_are_those_the_tracker_confirmed(self):
        orchestrator, _, tracker, _ = _make_orchestrator(
            classification=_make_classification(additional_labels=["enhancement"])
        )
        tracker.add_labels.side_effect = None
        tracker.add_labels.return_value = ["bug"]

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.labels_applied == ("bug",)

    def test_existing_labels_skip_the_tracker(self):
        orchestrator, _, tracker, _ = _make_orchestrator()

        result = run_async(orchestrator.triage_issue(_make_event(labels=["bug"])))

        assert result.success is True
        assert result.labels_applied == ()
        tracker.add_labels.assert_not_awaited()

    def test_auto_comment_off(self):
        orchestrator, _, tracker, emitter = _make_orchestrator(auto_comment=False)

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is True
        assert result.comment_posted is False
        tracker.post_comment.assert_not_awaited()
        assert "commenting" not in emitter.stages

    def test_confidence_equal_to_threshold_passes(self):
        orchestrator, _, tracker, _ = _make_orchestrator(
            classification=_make_classification(confidence=0.75)
        )

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is True
        tracker.add_labels.assert_awaited_once()

    def test_comment_failure_is_absorbed(self):
        orchestrator, _, _, emitter = _make_orchestrator(
            comment_error=network_failure("HTTP 500", api_status_code=500)
        )

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is True
        assert result.comment_posted is False
        assert result.labels_applied == ("bug",)
        assert emitter.stages[-1] == "completed"


class TestLowConfidence:
    def test_below_threshold_takes_no_action(self):
        orchestrator, _, tracker, emitter = _make_orchestrator(
            classification=_make_classification(confidence=0.4)
        )

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is False
        assert result.low_confidence is True
        assert result.final_stage == TriageStage.LOW_CONFIDENCE
        assert result.error == "Classification confidence 0.4 below threshold 0.75"
        assert result.classification is None
        assert result.error_kind == ErrorKind.LOW_CONFIDENCE.value
        assert result.retryable is False
        tracker.add_labels.assert_not_awaited()
        tracker.post_comment.assert_not_awaited()
        assert emitter.stages == ["classifying", "low_confidence"]
        assert len(emitter.of_type(TriageEventType.LOW_CONFIDENCE)) == 1
        assert emitter.of_type(TriageEventType.ERROR) == []


class TestFailures:
    @pytest.mark.parametrize(
        "error,kind,retryable",
        [
            (classification_failed("bad JSON"), ErrorKind.CLASSIFICATION_ERROR, True),
            (rate_limited(retry_after=10), ErrorKind.RATE_LIMIT, True),
            (auth_failed(), ErrorKind.AUTH_ERROR, False),
            (timed_out("classification request", 30), ErrorKind.TIMEOUT, True),
        ],
    )
    def test_classification_failure(self, error, kind, retryable):
        orchestrator, _, tracker, emitter = _make_orchestrator(classify_error=error)

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is False
        assert result.final_stage == TriageStage.FAILED
        assert result.error == error.message
        assert result.error_kind == kind.value
        assert result.retryable is retryable
        tracker.add_labels.assert_not_awaited()

        failure = emitter.of_type(TriageEventType.ERROR)[0]
        assert failure.details["stage"] == "classifying"
        assert failure.details["error_kind"] == kind.value

    def test_labeling_failure(self):
        orchestrator, _, tracker, emitter = _make_orchestrator(
            add_labels_error=network_failure("HTTP 422", api_status_code=422)
        )

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is False
        assert result.error_kind == ErrorKind.NETWORK_ERROR.value
        tracker.post_comment.assert_not_awaited()
        assert emitter.of_type(TriageEventType.ERROR)[0].details["stage"] == "labeling"

    def test_opaque_labeling_failure_is_wrapped_as_network_error(self):
        orchestrator, _, _, _ = _make_orchestrator(add_labels_error=KeyError("name"))

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.final_stage == TriageStage.FAILED
        assert result.error_kind == ErrorKind.NETWORK_ERROR.value

    def test_opaque_classification_failure_is_wrapped(self):
        orchestrator, _, _, _ = _make_orchestrator(classify_error=ValueError("weird"))

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.error_kind == ErrorKind.CLASSIFICATION_ERROR.value
        assert "weird" in result.error

    def test_emitter_failure_does_not_affect_result(self):
        orchestrator, _, _, _ = _make_orchestrator()
        orchestrator.event_emitter = MagicMock()
        orchestrator.event_emitter.emit = AsyncMock(side_effect=RuntimeError("sink down"))

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.success is True

    def test_emitter_failure_on_failed_attempt_still_returns_result(self):
        orchestrator, _, _, _ = _make_orchestrator(classify_error=auth_failed())
        orchestrator.event_emitter = MagicMock()
        orchestrator.event_emitter.emit = AsyncMock(side_effect=RuntimeError("sink down"))

        result = run_async(orchestrator.triage_issue(_make_event()))

        assert result.final_stage == TriageStage.FAILED
        assert result.error_kind == ErrorKind.AUTH_ERROR.value

    def test_event_construction_failure_does_not_abort_attempt(self):
        orchestrator, _, tracker, emitter = _make_orchestrator()
        event = _make_event()
        # an issue snapshot whose repository name the event model rejects
        blank_repository = event.model_copy(
            update={"repository": event.repository.model_copy(update={"full_name": ""})}
        )

        result = run_async(orchestrator.triage_issue(blank_repository))

        assert result.success is True
        assert result.labels_applied == ("bug",)
        tracker.add_labels.assert_awaited_once()
        assert emitter.events == []

    def test_event_construction_failure_on_failed_attempt_returns_result(self):
        orchestrator, _, _, _ = _make_orchestrator(
            classify_error=classification_failed("bad JSON")
        )
        event = _make_event()
        blank_repository = event.model_copy(
            update={"repository": event.repository.model_copy(update={"full_name": ""})}
        )

        result = run_async(orchestrator.triage_issue(blank_repository))

        assert result.success is False
        assert result.final_stage == TriageStage.FAILED
        assert result.error_kind == ErrorKind.CLASSIFICATION_ERROR.value
        assert "bad JSON" in result.error


class TestHealthCheck:
    def test_all_healthy(self):
        orchestrator, _, _, _ = _make_orchestrator()
        status = run_async(orchestrator.health_check())
        assert status.overall is True
        assert status.services == {"classifier": True, "github": True}

    def test_probe_raising_counts_as_unhealthy(self):
        orchestrator, classifier, tracker, _ = _make_orchestrator()
        classifier.health_check.side_effect = RuntimeError("down")

        status = run_async(orchestrator.health_check())

        assert status.overall is False
        assert status.services == {"classifier": False, "github": True}
        tracker.health_check.assert_awaited_once()
