"""GitHub webhook event models for the triage service.

This module defines the schema of an inbound ``issues`` webhook event.
Parsing an event validates the whole structure at once; any missing or
mismatched field is reported with its dotted path. Parsed events are
frozen and consumed read-only by the orchestrator.

The models use Pydantic for validation, consistent with the service's
configuration approach in config.py.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class IssueAction(str, Enum):
    """GitHub issue event action types.

    Every action is accepted by the gateway; only OPENED and EDITED on an
    open issue trigger triage.
    """

    OPENED = "opened"
    EDITED = "edited"
    CLOSED = "closed"
    REOPENED = "reopened"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    LABELED = "labeled"
    UNLABELED = "unlabeled"


class IssueState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class GitHubUser(_Frozen):
    login: StrictStr = Field(..., min_length=1)
    id: StrictInt


class IssueLabel(_Frozen):
    id: StrictInt
    name: StrictStr
    color: StrictStr


class Issue(_Frozen):
    """Snapshot of the issue at the time the event was sent."""

    id: StrictInt
    number: StrictInt = Field(..., gt=0)
    title: StrictStr
    body: Optional[StrictStr]
    state: IssueState
    user: GitHubUser
    assignee: Optional[GitHubUser] = None
    labels: Tuple[IssueLabel, ...]
    created_at: StrictStr
    updated_at: StrictStr
    html_url: StrictStr
    repository_url: StrictStr


class Repository(_Frozen):
    id: StrictInt
    name: StrictStr = Field(..., min_length=1)
    full_name: StrictStr = Field(..., min_length=1)
    owner: GitHubUser
    html_url: StrictStr


class WebhookEvent(_Frozen):
    """Parsed GitHub ``issues`` webhook event.

    Attributes:
        action: The type of issue event.
        issue: Snapshot of the issue (number, title, body, state, labels, ...).
        repository: The repository the issue belongs to.
        sender: The user whose action triggered the event.
    """

    action: IssueAction
    issue: Issue
    repository: Repository
    sender: GitHubUser

    @property
    def issue_number(self) -> int:
        return self.issue.number

    @property
    def full_repository(self) -> str:
        """Repository path in format "{owner}/{name}"."""
        return self.repository.full_name

    @property
    def issue_id(self) -> str:
        """Canonical issue identifier "{owner}/{name}#{number}"."""
        return f"{self.repository.full_name}#{self.issue.number}"

    @property
    def label_names(self) -> Tuple[str, ...]:
        """Names of the labels on the issue, in the order GitHub sent them."""
        return tuple(label.name for label in self.issue.labels)
