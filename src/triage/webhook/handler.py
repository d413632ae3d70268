"""GitHub webhook gateway for the triage service.

This module decides whether an inbound webhook is authentic and relevant
before any expensive work happens:

1. verify: HMAC-SHA256 of the exact raw body, compared in constant time
   against the ``X-Hub-Signature-256`` header
2. validate: structural validation of the body into a WebhookEvent
3. is_target_repository: events for other repositories are a no-op
4. should_trigger: only ``opened``/``edited`` on an open issue is triaged

Triggering events are handed to the TriageSupervisor and the response is
returned immediately; the sender never waits on classification latency.
Failures inside the background attempt are logged by the supervisor and
never reflected in the HTTP response.

GitHub Webhook Payload Structure (issues event, abridged):
{
  "action": "opened",
  "issue": {"id": 1, "number": 123, "title": "...", "body": "...",
            "state": "open", "user": {"login": "...", "id": 2},
            "labels": [{"id": 3, "name": "bug", "color": "d73a4a"}], ...},
  "repository": {"id": 4, "name": "repo", "full_name": "owner/repo",
                 "owner": {"login": "owner", "id": 5}, "html_url": "..."},
  "sender": {"login": "...", "id": 2}
}
"""

import hashlib
import hmac
from typing import Any, Dict, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from src.triage.errors import AppError, ErrorKind, invalid_payload
from src.triage.logs import new_correlation_id
from src.triage.orchestrator import TriageOrchestrator
from src.triage.supervisor import TriageSupervisor
from src.triage.webhook.models import IssueAction, IssueState, WebhookEvent

logger = structlog.get_logger(__name__)

SIGNATURE_PREFIX = "sha256="

TRIGGER_ACTIONS = frozenset({IssueAction.OPENED, IssueAction.EDITED})


def compute_signature(raw_body: bytes, secret: Union[str, bytes]) -> str:
    """Return the ``sha256=<hex>`` signature GitHub would send for a body."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digest = hmac.new(key, raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Union[str, bytes],
) -> bool:
    """Check a webhook signature header against the raw request body.

    Args:
        raw_body: The exact bytes received, before any JSON parsing.
        signature_header: Value of ``X-Hub-Signature-256``; may be None.
        secret: The shared webhook secret.

    Returns:
        True only if the header carries the ``sha256=`` prefix and the hex
        digest decodes to the expected bytes. Hex case is ignored and the
        digest comparison is constant-time.
    """
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False

    try:
        received = bytes.fromhex(signature_header[len(SIGNATURE_PREFIX):])
    except ValueError:
        return False

    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    expected = hmac.new(key, raw_body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, received)


def _format_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        path = ".".join(str(loc) for loc in err.get("loc", ())) or "body"
        parts.append(f"{path}: {err.get('msg', 'invalid')}")
    return ", ".join(parts)


class WebhookResponse(BaseModel):
    """HTTP status and JSON body produced by the gateway."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: Dict[str, Any]


class WebhookGateway:
    """Authenticates and gates inbound GitHub webhook events.

    Attributes:
        target_owner: Owner login of the single target repository.
        target_name: Name of the single target repository.
        orchestrator: Runs triage attempts.
        supervisor: Owns the background triage tasks.
    """

    def __init__(
        self,
        secret: Union[str, bytes],
        target_owner: str,
        target_name: str,
        orchestrator: TriageOrchestrator,
        supervisor: TriageSupervisor,
    ) -> None:
        self._secret = secret
        self.target_owner = target_owner
        self.target_name = target_name
        self.orchestrator = orchestrator
        self.supervisor = supervisor

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        return verify_signature(raw_body, signature_header, self._secret)

    def validate(
        self, raw_body: bytes, correlation_id: Optional[str] = None
    ) -> WebhookEvent:
        """Parse and validate a webhook body.

        Raises:
            AppError: PAYLOAD_ERROR naming each offending field path.
        """
        try:
            return WebhookEvent.model_validate_json(raw_body)
        except PydanticValidationError as exc:
            message = _format_validation_error(exc)
            first_path = message.split(":", 1)[0] if message else None
            raise invalid_payload(
                message,
                path=first_path,
                context={"correlation_id": correlation_id},
            ) from exc

    def is_target_repository(self, event: WebhookEvent) -> bool:
        return (
            event.repository.owner.login == self.target_owner
            and event.repository.name == self.target_name
        )

    def should_trigger(self, event: WebhookEvent) -> bool:
        """True only for opened/edited events on an open issue."""
        return event.action in TRIGGER_ACTIONS and event.issue.state == IssueState.OPEN

    async def handle(
        self, raw_body: bytes, signature_header: Optional[str]
    ) -> WebhookResponse:
        """Handle one webhook delivery end to end.

        Args:
            raw_body: The exact request body bytes.
            signature_header: Value of ``X-Hub-Signature-256``.

        Returns:
            WebhookResponse with the status code and JSON body to send.
        """
        correlation_id = new_correlation_id()
        log = logger.bind(correlation_id=correlation_id, component="webhook-handler")

        try:
            verified = self.verify(raw_body, signature_header)
        except Exception:
            log.exception("webhook_verification_error")
            return WebhookResponse(
                status_code=500,
                body={
                    "error": "Internal Server Error",
                    "message": "Failed to verify webhook",
                    "correlationId": correlation_id,
                },
            )

        if not verified:
            log.warning(
                "webhook_signature_invalid",
                signature_present=signature_header is not None,
                signature_prefix=(signature_header or "")[:16],
            )
            return WebhookResponse(
                status_code=401,
                body={
                    "error": "Unauthorized",
                    "message": ErrorKind.VERIFICATION_ERROR.traits.default_message,
                },
            )

        try:
            event = self.validate(raw_body, correlation_id)

            log.info(
                "webhook_received",
                issue_number=event.issue_number,
                action=event.action.value,
                repository=event.full_repository,
            )

            if not self.is_target_repository(event):
                log.debug(
                    "webhook_other_repository",
                    repository=event.full_repository,
                    target_repository=f"{self.target_owner}/{self.target_name}",
                )
                return WebhookResponse(
                    status_code=200,
                    body={
                        "message": "Webhook received but not for target repository",
                        "processed": False,
                    },
                )

            if not self.should_trigger(event):
                log.debug(
                    "webhook_not_triggering",
                    action=event.action.value,
                    issue_state=event.issue.state.value,
                    issue_number=event.issue_number,
                )
                return WebhookResponse(
                    status_code=200,
                    body={
                        "message": "Webhook received but action does not trigger triage",
                        "processed": False,
                    },
                )

            self.supervisor.submit(
                lambda: self.orchestrator.triage_issue(event, correlation_id),
                correlation_id=correlation_id,
                issue_number=event.issue_number,
            )
            log.info(
                "webhook_processing_started",
                issue_number=event.issue_number,
                action=event.action.value,
            )
            return WebhookResponse(
                status_code=200,
                body={
                    "message": "Webhook received and processing started",
                    "processed": True,
                    "correlationId": correlation_id,
                },
            )

        except AppError as exc:
            log.warning("webhook_rejected", **exc.to_dict())
            if exc.kind in (ErrorKind.PAYLOAD_ERROR, ErrorKind.VALIDATION_ERROR):
                return WebhookResponse(
                    status_code=exc.status_code,
                    body={
                        "error": exc.kind.error_name,
                        "message": exc.message,
                        "correlationId": correlation_id,
                    },
                )
            return self._internal_error(correlation_id)
        except Exception:
            log.exception("webhook_processing_failed")
            return self._internal_error(correlation_id)

    @staticmethod
    def _internal_error(correlation_id: str) -> WebhookResponse:
        return WebhookResponse(
            status_code=500,
            body={
                "error": "Internal Server Error",
                "message": "Failed to process webhook",
                "correlationId": correlation_id,
            },
        )
