"""Unit tests for the LLM issue classifier.

The chat model is replaced by a MagicMock whose bound runnable returns
canned AIMessages, so no network call is made.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage

from src.triage.classifier.agent import (
    IssueClassifier,
    build_classification_prompt,
    parse_classification_response,
)
from src.triage.classifier.models import ClassificationResult, IssueContext, Severity
from src.triage.errors import AppError, ErrorKind

LABELS = ("bug", "feature-request", "documentation", "question", "enhancement")

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def run_async(coro):
    return asyncio.run(coro)


def _make_context(**overrides) -> IssueContext:
    values = dict(
        title="App crashes on save",
        body="Steps: open, edit, save. Crash.",
        author="dev1",
        repository="acme/widgets",
        existing_labels=("question",),
        created_at="2024-01-01T00:00:00Z",
    )
    values.update(overrides)
    return IssueContext(**values)


def _make_classifier(content=None, side_effect=None, timeout: float = 30.0) -> IssueClassifier:
    classifier = IssueClassifier(
        api_key="sk-test-key",
        model_name="gpt-4o",
        labels=LABELS,
        timeout=timeout,
    )
    llm = MagicMock()
    llm.bind.return_value.ainvoke = AsyncMock(
        return_value=AIMessage(content=content) if content is not None else None,
        side_effect=side_effect,
    )
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="Hi"))
    classifier._llm = llm
    return classifier


def _status_response(status: int, headers=None) -> httpx.Response:
    return httpx.Response(
        status,
        headers=headers or {},
        request=httpx.Request("POST", OPENAI_URL),
    )


class TestPrompt:
    def test_prompt_includes_issue_and_labels(self):
        prompt = build_classification_prompt(_make_context(), LABELS)
        assert 'Title: "App crashes on save"' in prompt
        assert "Existing Labels: question" in prompt
        assert "AVAILABLE LABELS: bug, feature-request" in prompt
        assert '"primaryLabel"' in prompt

    def test_prompt_without_existing_labels(self):
        prompt = build_classification_prompt(_make_context(existing_labels=()), LABELS)
        assert "Existing Labels: None" in prompt


class TestParseResponse:
    def test_full_response(self):
        text = json.dumps(
            {
                "primaryLabel": "bug",
                "confidence": 0.92,
                "reasoning": "Reproducible crash.",
                "additionalLabels": ["enhancement", "bug", "enhancement"],
                "severity": "High",
            }
        )
        result = parse_classification_response(text, LABELS)
        assert result == ClassificationResult(
            primary_label="bug",
            confidence=0.92,
            reasoning="Reproducible crash.",
            additional_labels=("enhancement",),
            severity=Severity.HIGH,
        )

    def test_code_fenced_response(self):
        text = '```json\n{"primaryLabel": "question", "confidence": 1}\n```'
        result = parse_classification_response(text, LABELS)
        assert result.primary_label == "question"
        assert result.confidence == 1.0
        assert result.reasoning == ""
        assert result.additional_labels == ()

    def test_unknown_primary_label_falls_back(self):
        text = json.dumps({"primaryLabel": "urgent", "confidence": 0.95})
        result = parse_classification_response(text, LABELS)
        assert result.primary_label == "bug"
        assert result.confidence == 0.5

    def test_unknown_severity_is_dropped(self):
        text = json.dumps({"primaryLabel": "bug", "confidence": 0.8, "severity": "meh"})
        assert parse_classification_response(text, LABELS).severity is None

    @pytest.mark.parametrize(
        "text",
        [
            "not json at all",
            "[1, 2, 3]",
            json.dumps({"confidence": 0.9}),
            json.dumps({"primaryLabel": "bug"}),
            json.dumps({"primaryLabel": "bug", "confidence": "high"}),
            json.dumps({"primaryLabel": "bug", "confidence": True}),
            json.dumps({"primaryLabel": "", "confidence": 0.9}),
        ],
    )
    def test_unusable_responses(self, text):
        with pytest.raises(AppError) as exc_info:
            parse_classification_response(text, LABELS)
        assert exc_info.value.kind == ErrorKind.CLASSIFICATION_ERROR
        assert "Failed to parse response" in exc_info.value.message

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_confidence_out_of_range(self, confidence):
        text = json.dumps({"primaryLabel": "bug", "confidence": confidence})
        with pytest.raises(AppError) as exc_info:
            parse_classification_response(text, LABELS)
        assert "between 0 and 1" in exc_info.value.message


class TestClassify:
    def test_successful_classification(self):
        classifier = _make_classifier(
            content=json.dumps(
                {"primaryLabel": "bug", "confidence": 0.9, "reasoning": "crash"}
            )
        )

        result = run_async(classifier.classify(_make_context()))

        assert result.primary_label == "bug"
        assert result.confidence == 0.9
        classifier._llm.bind.assert_called_once_with(
            response_format={"type": "json_object"}
        )
        messages = classifier._llm.bind.return_value.ainvoke.await_args.args[0]
        assert len(messages) == 2
        assert "App crashes on save" in messages[1].content

    def test_non_text_content_is_classification_error(self):
        classifier = _make_classifier(content=[{"type": "image_url"}])

        with pytest.raises(AppError) as exc_info:
            run_async(classifier.classify(_make_context()))

        assert exc_info.value.kind == ErrorKind.CLASSIFICATION_ERROR

    def test_malformed_content_is_classification_error(self):
        classifier = _make_classifier(content="sorry, I cannot help")

        with pytest.raises(AppError) as exc_info:
            run_async(classifier.classify(_make_context()))

        assert exc_info.value.kind == ErrorKind.CLASSIFICATION_ERROR
        assert exc_info.value.retryable is True

    def test_deadline_exceeded_is_timeout(self):
        async def _slow(*args, **kwargs):
            await asyncio.sleep(1)

        classifier = _make_classifier(side_effect=_slow, timeout=0.01)

        with pytest.raises(AppError) as exc_info:
            run_async(classifier.classify(_make_context()))

        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert "10ms" in exc_info.value.message

    @pytest.mark.parametrize(
        "error,kind",
        [
            (
                openai.AuthenticationError(
                    "bad key", response=_status_response(401), body=None
                ),
                ErrorKind.AUTH_ERROR,
            ),
            (
                openai.RateLimitError(
                    "slow down",
                    response=_status_response(429, {"retry-after": "7"}),
                    body=None,
                ),
                ErrorKind.RATE_LIMIT,
            ),
            (
                openai.APITimeoutError(request=httpx.Request("POST", OPENAI_URL)),
                ErrorKind.TIMEOUT,
            ),
            (
                openai.APIConnectionError(
                    message="refused", request=httpx.Request("POST", OPENAI_URL)
                ),
                ErrorKind.NETWORK_ERROR,
            ),
            (
                openai.InternalServerError(
                    "upstream", response=_status_response(500), body=None
                ),
                ErrorKind.CLASSIFICATION_ERROR,
            ),
            (RuntimeError("unexpected"), ErrorKind.CLASSIFICATION_ERROR),
        ],
    )
    def test_client_errors_are_mapped(self, error, kind):
        classifier = _make_classifier(side_effect=error)

        with pytest.raises(AppError) as exc_info:
            run_async(classifier.classify(_make_context()))

        assert exc_info.value.kind == kind

    def test_rate_limit_keeps_retry_after(self):
        error = openai.RateLimitError(
            "slow down",
            response=_status_response(429, {"retry-after": "7"}),
            body=None,
        )
        classifier = _make_classifier(side_effect=error)

        with pytest.raises(AppError) as exc_info:
            run_async(classifier.classify(_make_context()))

        assert exc_info.value.details["retry_after"] == 7


class TestHealthCheck:
    def test_healthy(self):
        assert run_async(_make_classifier(content="{}").health_check()) is True

    def test_unhealthy_when_model_fails(self):
        classifier = _make_classifier(content="{}")
        classifier._llm.ainvoke = AsyncMock(side_effect=RuntimeError("down"))
        assert run_async(classifier.health_check()) is False


def test_empty_label_set_rejected():
    with pytest.raises(ValueError):
        IssueClassifier(api_key="k", model_name="m", labels=())


def test_llm_created_lazily_with_configuration():
    classifier = IssueClassifier(
        api_key="sk-test-key",
        model_name="gpt-4o-mini",
        labels=LABELS,
        base_url="https://models.example.com/v1",
        timeout=5.0,
    )
    assert classifier._llm is None
    llm = classifier.llm
    assert llm is classifier.llm
    assert llm.model_name == "gpt-4o-mini"
    assert llm.max_retries == 0
