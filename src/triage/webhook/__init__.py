"""GitHub webhook intake for the triage service.

Receives ``issues`` webhook events, verifies their HMAC signature, validates
the payload and hands triggering events (opened/edited on an open issue in
the target repository) to the background supervisor.

The gateway itself lives in handler.py; it depends on the orchestrator,
which in turn consumes the models exported here.
"""

from .models import IssueAction, IssueState, WebhookEvent

__all__ = [
    "IssueAction",
    "IssueState",
    "WebhookEvent",
]
