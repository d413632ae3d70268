"""Confidence gating and label diffing.

Pure functions with no side effects, shared by the orchestrator and usable
in isolation. The label diff keeps a deterministic order: the primary label
first, then additional labels in the order the classifier gave them.
"""

from typing import Iterable, List

from src.triage.classifier.models import ClassificationResult


def gate(confidence: float, threshold: float) -> bool:
    """Return True when a classification is confident enough to act on."""
    return confidence >= threshold


def desired_labels(classification: ClassificationResult) -> List[str]:
    """Labels a classification asks for, primary label first, without duplicates."""
    ordered: List[str] = []
    for label in (classification.primary_label, *classification.additional_labels):
        if label not in ordered:
            ordered.append(label)
    return ordered


def diff(desired: Iterable[str], existing: Iterable[str]) -> List[str]:
    """Compute ``desired - existing`` preserving the order of ``desired``.

    Args:
        desired: Labels to be present, in priority order.
        existing: Labels already on the issue.

    Returns:
        Labels that still need to be added. Empty when the issue already
        carries every desired label.
    """
    present = set(existing)
    missing: List[str] = []
    for label in desired:
        if label not in present and label not in missing:
            missing.append(label)
    return missing
