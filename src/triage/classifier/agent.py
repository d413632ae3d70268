"""LLM-based issue classifier for the triage service.

This module implements the IssueClassifier that asks a language model to
pick the best-fit label for a GitHub issue from the configured label set.
The model returns JSON with:
- primaryLabel: one of the configured labels
- confidence: 0.0 to 1.0
- reasoning: short explanation
- additionalLabels: optional further labels
- severity: optional critical/high/medium/low for bugs

The classifier uses LangChain's ChatOpenAI client against an
OpenAI-compatible endpoint. Every call is bounded by a per-call timeout.
All failures are raised as AppError: authentication → AUTH_ERROR, quota →
RATE_LIMIT, deadline → TIMEOUT, transport → NETWORK_ERROR, anything else
(including unusable responses) → CLASSIFICATION_ERROR.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence

import openai
import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.triage.classifier.models import ClassificationResult, IssueContext, Severity
from src.triage.errors import (
    AppError,
    auth_failed,
    classification_failed,
    network_failure,
    rate_limited,
    timed_out,
)
from src.triage.logs import current_correlation_id

logger = structlog.get_logger(__name__)


CLASSIFICATION_SYSTEM_PROMPT = (
    "You are an expert GitHub issue triager. Always respond with valid JSON."
)


def build_classification_prompt(context: IssueContext, labels: Sequence[str]) -> str:
    """Build the user prompt for issue classification.

    Args:
        context: The issue being classified.
        labels: The configured label set the model must choose from.

    Returns:
        Formatted prompt string for the LLM.
    """
    existing = ", ".join(context.existing_labels) or "None"

    return f"""Analyze the following issue and classify it accurately.

ISSUE CONTEXT:
Title: "{context.title}"
Body: \"\"\"{context.body}\"\"\"
Author: {context.author}
Repository: {context.repository}
Existing Labels: {existing}
Created: {context.created_at}

AVAILABLE LABELS: {", ".join(labels)}

CLASSIFICATION RULES:
1. Choose the MOST APPROPRIATE single label from the available labels
2. Provide a confidence score between 0.0 and 1.0
3. Give clear reasoning for your classification
4. Optionally suggest additional labels if relevant
5. Assess severity if it's a bug (critical/high/medium/low)

Respond with JSON matching this exact structure:
{{
  "primaryLabel": "one of the available labels",
  "confidence": 0.0-1.0,
  "reasoning": "2-3 sentences explaining the classification",
  "additionalLabels": ["optional additional labels"],
  "severity": "optional: critical/high/medium/low for bugs"
}}"""


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_classification_response(
    response_text: str, labels: Sequence[str]
) -> ClassificationResult:
    """Parse and validate the model's JSON answer.

    A primaryLabel outside the configured set falls back to the first
    configured label, with confidence capped at 0.5. Unknown severities are
    dropped. additionalLabels are de-duplicated and never repeat the
    primary label.

    Args:
        response_text: Raw text returned by the model.
        labels: The configured label set.

    Returns:
        ClassificationResult.

    Raises:
        AppError: CLASSIFICATION_ERROR if the response is not JSON, lacks
            primaryLabel or a numeric confidence, or the confidence is
            outside [0, 1].
    """
    try:
        data = json.loads(_strip_code_fence(response_text))
    except json.JSONDecodeError as e:
        raise classification_failed(f"Failed to parse response: {e}") from e

    if not isinstance(data, dict):
        raise classification_failed("Failed to parse response: expected a JSON object")

    primary_label = data.get("primaryLabel")
    confidence = data.get("confidence")
    if (
        not isinstance(primary_label, str)
        or not primary_label.strip()
        or isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
    ):
        raise classification_failed("Failed to parse response: Missing required fields")

    confidence = float(confidence)
    if not 0.0 <= confidence <= 1.0:
        raise classification_failed(
            "Failed to parse response: Confidence must be between 0 and 1"
        )

    primary_label = primary_label.strip()
    if primary_label not in labels:
        logger.warning(
            "invalid_primary_label",
            invalid_label=primary_label,
            available_labels=list(labels),
            component="openai-classifier",
        )
        primary_label = labels[0]
        confidence = min(confidence, 0.5)

    additional: List[str] = []
    raw_additional = data.get("additionalLabels")
    if isinstance(raw_additional, list):
        for label in raw_additional:
            if not isinstance(label, str):
                continue
            label = label.strip()
            if label and label != primary_label and label not in additional:
                additional.append(label)

    severity: Optional[Severity] = None
    raw_severity = data.get("severity")
    if isinstance(raw_severity, str):
        try:
            severity = Severity(raw_severity.lower())
        except ValueError:
            logger.debug("invalid_severity_dropped", severity=raw_severity)

    reasoning = data.get("reasoning")

    return ClassificationResult(
        primary_label=primary_label,
        confidence=confidence,
        reasoning=str(reasoning) if reasoning is not None else "",
        additional_labels=tuple(additional),
        severity=severity,
    )


def _retry_after(error: openai.APIStatusError) -> Optional[int]:
    value = error.response.headers.get("retry-after") if error.response else None
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class IssueClassifier:
    """LLM-based classifier for GitHub issues.

    Attributes:
        model_name: Name of the model to use for inference.
        labels: The configured label set.
        base_url: OpenAI-compatible endpoint; None uses the provider default.
        timeout: Per-call deadline in seconds.
        temperature: Sampling temperature for the LLM.
        max_tokens: Completion token limit.

    Example:
        >>> classifier = IssueClassifier(
        ...     api_key="sk-...",
        ...     model_name="gpt-4o",
        ...     labels=("bug", "feature-request", "question"),
        ... )
        >>> result = await classifier.classify(context)
        >>> result.primary_label
        'bug'
    """

    def __init__(
        self,
        api_key: str,
        model_name: str,
        labels: Sequence[str],
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ):
        if not labels:
            raise ValueError("labels cannot be empty")
        self._api_key = api_key
        self.model_name = model_name
        self.labels = tuple(labels)
        self.base_url = base_url
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get the LLM client, creating it if necessary."""
        if self._llm is None:
            kwargs: Dict[str, Any] = {
                "model": self.model_name,
                "api_key": self._api_key,
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._llm = ChatOpenAI(**kwargs)
        return self._llm

    async def classify(self, context: IssueContext) -> ClassificationResult:
        """Classify an issue.

        Args:
            context: The issue details.

        Returns:
            ClassificationResult with a primary label from the configured set.

        Raises:
            AppError: CLASSIFICATION_ERROR, RATE_LIMIT, AUTH_ERROR, TIMEOUT
                or NETWORK_ERROR.
        """
        correlation_id = current_correlation_id()
        messages = [
            SystemMessage(content=CLASSIFICATION_SYSTEM_PROMPT),
            HumanMessage(content=build_classification_prompt(context, self.labels)),
        ]

        logger.debug(
            "classification_request",
            model=self.model_name,
            title_length=len(context.title),
            body_length=len(context.body),
            component="openai-classifier",
        )

        try:
            response = await asyncio.wait_for(
                self.llm.bind(response_format={"type": "json_object"}).ainvoke(messages),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise timed_out(
                "classification request",
                self.timeout,
                context={"correlation_id": correlation_id},
            ) from e
        except Exception as e:
            raise self._map_llm_error(e).with_context(
                correlation_id=correlation_id
            ) from e

        if not isinstance(response.content, str):
            raise classification_failed(
                f"Unexpected response type: {type(response.content).__name__}",
                context={"correlation_id": correlation_id},
            )

        try:
            result = parse_classification_response(response.content, self.labels)
        except AppError as e:
            logger.warning(
                "classification_response_invalid",
                response_preview=response.content[:200],
                error=e.message,
                component="openai-classifier",
            )
            raise e.with_context(correlation_id=correlation_id)

        logger.info(
            "classification_completed",
            primary_label=result.primary_label,
            confidence=result.confidence,
            additional_labels=list(result.additional_labels),
            component="openai-classifier",
        )
        return result

    def _map_llm_error(self, error: Exception) -> AppError:
        """Map an upstream client exception onto the error taxonomy."""
        if isinstance(error, AppError):
            return error
        if isinstance(error, openai.AuthenticationError):
            return auth_failed(f"Authentication failed: {error}")
        if isinstance(error, openai.RateLimitError):
            return rate_limited(
                f"Rate limit exceeded: {error}",
                retry_after=_retry_after(error),
            )
        # APITimeoutError subclasses APIConnectionError
        if isinstance(error, openai.APITimeoutError):
            return timed_out("classification request", self.timeout)
        if isinstance(error, openai.APIConnectionError):
            return network_failure(f"Request failed: {error}")
        if isinstance(error, openai.APIStatusError):
            return classification_failed(f"API error ({error.status_code}): {error}")
        return classification_failed(f"LLM invocation failed: {error}")

    async def health_check(self) -> bool:
        """Check that the model endpoint answers a minimal prompt."""
        try:
            await asyncio.wait_for(
                self.llm.ainvoke([HumanMessage(content="Hello")]),
                timeout=self.timeout,
            )
            return True
        except Exception as e:
            logger.warning(
                "classifier_health_check_failed",
                error=str(e),
                component="openai-classifier",
            )
            return False
