"""GitHub API access for the triage service.

Wraps the GitHub REST API calls the orchestrator and admin surface need:
labels, comments, issue creation and repository introspection.
"""

from src.triage.github.client import GitHubClient, is_not_found
from src.triage.github.comments import format_triage_comment
from src.triage.github.models import CreatedIssue, LabelValidation, RateLimitStatus

__all__ = [
    "CreatedIssue",
    "GitHubClient",
    "LabelValidation",
    "RateLimitStatus",
    "format_triage_comment",
    "is_not_found",
]
