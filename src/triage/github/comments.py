"""Markdown rendering of the triage comment posted on an issue."""

from typing import List

from src.triage.classifier.models import ClassificationResult, Severity

SEVERITY_MARKERS = {
    Severity.CRITICAL: "🚨",
    Severity.HIGH: "⚠️",
    Severity.MEDIUM: "⚡",
    Severity.LOW: "📝",
}

COMMENT_FOOTER = (
    "*This classification was generated automatically. If you believe this "
    "is incorrect, please feel free to update the labels manually.*"
)


def format_triage_comment(classification: ClassificationResult) -> str:
    """Render a classification as the triage comment body.

    Severity is shown only for bugs. Confidence is rounded to a whole
    percent.
    """
    lines: List[str] = [
        "🤖 **Auto-Triage Results**",
        "",
        f"This issue has been automatically classified as: **{classification.primary_label}**",
        f"Confidence: {round(classification.confidence * 100)}%",
        "",
    ]

    if classification.reasoning:
        lines += [f"**Reasoning:** {classification.reasoning}", ""]

    if classification.severity is not None and classification.is_bug:
        marker = SEVERITY_MARKERS[classification.severity]
        lines += [
            f"**Severity:** {marker} {classification.severity.value.upper()}",
            "",
        ]

    if classification.additional_labels:
        suggested = ", ".join(classification.additional_labels)
        lines += [f"**Additional labels suggested:** {suggested}", ""]

    lines += ["---", COMMENT_FOOTER]
    return "\n".join(lines)
