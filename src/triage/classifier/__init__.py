"""Issue classification for the triage service.

Provides the classifier's input and output models, the pure confidence
gate and label diff, and the LLM-backed IssueClassifier.
"""

from .agent import IssueClassifier, parse_classification_response
from .gating import desired_labels, diff, gate
from .models import ClassificationResult, IssueContext, Severity

__all__ = [
    "ClassificationResult",
    "IssueClassifier",
    "IssueContext",
    "Severity",
    "desired_labels",
    "diff",
    "gate",
    "parse_classification_response",
]
