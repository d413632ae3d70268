"""Issue classification models for the triage service.

This module defines the data exchanged with the classification service:
- IssueContext: the minimal projection of a webhook event the classifier sees
- Severity: bug severity levels
- ClassificationResult: the classifier's verdict for one triage attempt

Both IssueContext and ClassificationResult are frozen; each is created
once per triage attempt and never mutated.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from src.triage.webhook.models import WebhookEvent


class Severity(str, Enum):
    """Severity of a bug report. Meaningful only when the primary label is "bug"."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IssueContext(BaseModel):
    """Issue details passed to the classifier.

    Attributes:
        title: The issue title.
        body: The issue body; empty string when the issue has none.
        author: Login of the issue author.
        repository: Full repository name ("owner/name").
        existing_labels: Label names already on the issue, in tracker order.
        created_at: Issue creation timestamp as sent by GitHub.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    body: str = ""
    author: str
    repository: str
    existing_labels: Tuple[str, ...] = ()
    created_at: str

    @classmethod
    def from_event(cls, event: WebhookEvent) -> "IssueContext":
        """Project a webhook event onto the fields the classifier needs."""
        return cls(
            title=event.issue.title,
            body=event.issue.body or "",
            author=event.issue.user.login,
            repository=event.repository.full_name,
            existing_labels=event.label_names,
            created_at=event.issue.created_at,
        )


class ClassificationResult(BaseModel):
    """Result of LLM-based issue classification.

    Attributes:
        primary_label: The single best-fit label; a member of the configured
            label set.
        confidence: Classifier confidence in [0, 1].
        reasoning: Free-text explanation of the decision.
        additional_labels: Other relevant labels, in the order suggested.
        severity: Bug severity, only set for bug reports.
    """

    model_config = ConfigDict(frozen=True)

    primary_label: str = Field(..., min_length=1)

    confidence: float = Field(..., ge=0.0, le=1.0)

    reasoning: str = ""

    additional_labels: Tuple[str, ...] = ()

    severity: Optional[Severity] = None

    @property
    def is_bug(self) -> bool:
        return self.primary_label == "bug"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used in API responses."""
        data: Dict[str, Any] = {
            "primaryLabel": self.primary_label,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }
        if self.additional_labels:
            data["additionalLabels"] = list(self.additional_labels)
        if self.severity is not None:
            data["severity"] = self.severity.value
        return data
