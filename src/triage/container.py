"""Dependency wiring for the triage service.

build_container() constructs every component once, in dependency order,
from the immutable settings:

    GitHubClient, IssueClassifier, event emitter
        → TriageOrchestrator → TriageSupervisor → WebhookGateway

The FastAPI lifespan owns the resulting container and closes it on
shutdown.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry

from src.triage.classifier.agent import IssueClassifier
from src.triage.config import TriageSettings
from src.triage.events.emitter import EventEmitter, EventSinkType
from src.triage.events.factory import create_event_emitter
from src.triage.github.client import GitHubClient
from src.triage.orchestrator import TriageOrchestrator
from src.triage.supervisor import TriageSupervisor
from src.triage.webhook.handler import WebhookGateway

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """All long-lived components of a running service."""

    settings: TriageSettings
    github_client: GitHubClient
    classifier: IssueClassifier
    event_emitter: EventEmitter
    orchestrator: TriageOrchestrator
    supervisor: TriageSupervisor
    gateway: WebhookGateway

    async def aclose(self, drain_timeout: Optional[float] = None) -> None:
        """Wait for background triage, then release network resources."""
        await self.supervisor.drain(timeout=drain_timeout)
        await self.event_emitter.close()
        await self.github_client.close()


def build_container(
    settings: TriageSettings,
    registry: Optional[CollectorRegistry] = None,
) -> ServiceContainer:
    """Wire the service from settings.

    Args:
        settings: Validated, immutable settings.
        registry: Optional Prometheus registry for the metrics sink.

    Returns:
        ServiceContainer with every component constructed.
    """
    github_client = GitHubClient(
        token=settings.github_token,
        owner=settings.github_repo_owner,
        repo=settings.github_repo_name,
        base_url=settings.github_base_url,
        timeout=settings.request_timeout_seconds,
    )
    classifier = IssueClassifier(
        api_key=settings.openai_api_key,
        model_name=settings.openai_model,
        labels=settings.labels,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout_seconds,
    )
    event_emitter = create_event_emitter(
        [EventSinkType.LOGGING, EventSinkType.METRICS],
        registry=registry,
    )
    orchestrator = TriageOrchestrator(
        classifier=classifier,
        tracker=github_client,
        confidence_threshold=settings.confidence_threshold,
        auto_comment=settings.auto_comment,
        event_emitter=event_emitter,
    )
    supervisor = TriageSupervisor()
    gateway = WebhookGateway(
        secret=settings.github_webhook_secret,
        target_owner=settings.github_repo_owner,
        target_name=settings.github_repo_name,
        orchestrator=orchestrator,
        supervisor=supervisor,
    )

    logger.info(
        "service_container_built",
        repository=settings.target_repository,
        labels=list(settings.labels),
        confidence_threshold=settings.confidence_threshold,
        auto_comment=settings.auto_comment,
    )
    return ServiceContainer(
        settings=settings,
        github_client=github_client,
        classifier=classifier,
        event_emitter=event_emitter,
        orchestrator=orchestrator,
        supervisor=supervisor,
        gateway=gateway,
    )
