"""Administrative routes for manual triage and introspection.

These routes call the same orchestrator the webhook path uses, but await
the result and return it:
- POST /admin/triage: triage a synthetic event built from request fields
- POST /admin/issues: create an issue, then triage it
- GET /admin/health: collaborator health
- GET /admin/config: non-secret settings
- GET /admin/labels: configured labels present/missing in the repository
- GET /admin/rate-limit: GitHub API quota

AppErrors raised by the GitHub client propagate to the application's
exception handler, which renders them with error_response().
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.triage.config import TriageSettings
from src.triage.container import ServiceContainer
from src.triage.logs import bind_correlation_id, new_correlation_id
from src.triage.webhook.models import (
    GitHubUser,
    Issue,
    IssueAction,
    IssueLabel,
    IssueState,
    Repository,
    WebhookEvent,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class ManualTriageRequest(BaseModel):
    issue_number: int = Field(..., gt=0)
    title: str = Field(..., min_length=1)
    body: str = ""
    author: str = Field("manual-trigger", min_length=1)
    labels: List[str] = Field(default_factory=list)


class CreateIssueRequest(BaseModel):
    title: str = Field(..., min_length=1)
    body: str = ""
    expected_type: Optional[str] = None


def build_synthetic_event(
    settings: TriageSettings,
    issue_number: int,
    title: str,
    body: str = "",
    author: str = "manual-trigger",
    labels: Optional[List[str]] = None,
    html_url: Optional[str] = None,
) -> WebhookEvent:
    """Build an ``opened`` event for the target repository.

    Numeric ids GitHub would assign are unknown here and set to the issue
    number (issue) or 0 (users, repository).
    """
    now = datetime.now(timezone.utc).isoformat()
    owner = GitHubUser(login=settings.github_repo_owner, id=0)
    user = GitHubUser(login=author, id=0)
    repo_html = f"https://github.com/{settings.target_repository}"

    return WebhookEvent(
        action=IssueAction.OPENED,
        issue=Issue(
            id=issue_number,
            number=issue_number,
            title=title,
            body=body,
            state=IssueState.OPEN,
            user=user,
            labels=tuple(
                IssueLabel(id=0, name=name, color="ededed") for name in (labels or [])
            ),
            created_at=now,
            updated_at=now,
            html_url=html_url or f"{repo_html}/issues/{issue_number}",
            repository_url=f"{settings.github_base_url}/repos/{settings.target_repository}",
        ),
        repository=Repository(
            id=0,
            name=settings.github_repo_name,
            full_name=settings.target_repository,
            owner=owner,
            html_url=repo_html,
        ),
        sender=user,
    )


def _container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.post("/triage")
async def manual_triage(payload: ManualTriageRequest, request: Request) -> Dict[str, Any]:
    """Triage an issue on demand and return the result."""
    container = _container(request)
    correlation_id = new_correlation_id()
    event = build_synthetic_event(
        container.settings,
        issue_number=payload.issue_number,
        title=payload.title,
        body=payload.body,
        author=payload.author,
        labels=payload.labels,
    )

    with bind_correlation_id(correlation_id):
        logger.info("manual_triage_requested", issue_number=payload.issue_number)
        result = await container.orchestrator.triage_issue(event, correlation_id)

    return {"correlationId": correlation_id, "result": result.to_dict()}


@router.post("/issues")
async def create_and_triage(payload: CreateIssueRequest, request: Request) -> Dict[str, Any]:
    """Create an issue in the target repository, then triage it.

    When expected_type is given, the response reports whether the primary
    label matched it.
    """
    container = _container(request)
    correlation_id = new_correlation_id()

    with bind_correlation_id(correlation_id):
        created = await container.github_client.create_issue(payload.title, payload.body)
        event = build_synthetic_event(
            container.settings,
            issue_number=created.number,
            title=payload.title,
            body=payload.body,
            html_url=created.url,
        )
        result = await container.orchestrator.triage_issue(event, correlation_id)

    response: Dict[str, Any] = {
        "correlationId": correlation_id,
        "issue": created.model_dump(),
        "result": result.to_dict(),
    }
    if payload.expected_type is not None:
        response["correctClassification"] = (
            result.classification is not None
            and result.classification.primary_label == payload.expected_type
        )
    return response


@router.get("/health")
async def admin_health(request: Request) -> Dict[str, Any]:
    status = await _container(request).orchestrator.health_check()
    return {
        "overall": status.overall,
        "services": status.services,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/config")
async def admin_config(request: Request) -> Dict[str, Any]:
    """Non-secret configuration, grouped by concern."""
    settings = _container(request).settings
    return {
        "repository": {
            "owner": settings.github_repo_owner,
            "name": settings.github_repo_name,
            "baseUrl": settings.github_base_url,
        },
        "triage": {
            "labels": list(settings.labels),
            "confidenceThreshold": settings.confidence_threshold,
            "autoComment": settings.auto_comment,
            "model": settings.openai_model,
        },
        "server": {
            "host": settings.host,
            "port": settings.port,
            "environment": settings.environment,
            "logLevel": settings.log_level,
        },
    }


@router.get("/labels")
async def admin_labels(request: Request) -> Dict[str, Any]:
    container = _container(request)
    validation = await container.github_client.validate_repository_labels(
        container.settings.labels
    )
    return validation.model_dump()


@router.get("/rate-limit")
async def admin_rate_limit(request: Request) -> Dict[str, Any]:
    status = await _container(request).github_client.get_rate_limit_status()
    return status.model_dump()
