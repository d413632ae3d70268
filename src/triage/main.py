"""FastAPI application entry point for the triage service.

Routes:
- POST /webhooks/github: GitHub webhook receiver
- GET /health: liveness probe
- GET /ready: readiness probe (collaborator health, 503 when unhealthy)
- GET /metrics: Prometheus metrics
- /admin/*: manual triage and introspection (admin.py)

Settings are loaded once in the lifespan handler, logged with secrets
redacted, and used to build the service container. Components live on
``app.state.container``; nothing is read from module globals at request
time.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry

from src.triage.admin import router as admin_router
from src.triage.config import get_settings
from src.triage.container import ServiceContainer, build_container
from src.triage.errors import AppError, error_response
from src.triage.events.metrics import generate_metrics_output
from src.triage.logs import SERVICE_NAME, configure_logging, new_correlation_id

logger = structlog.get_logger(__name__)


def create_app(
    container: Optional[ServiceContainer] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        container: Pre-built container. When None, settings are loaded from
            the environment at startup and the container is built from them.
        registry: Prometheus registry served at /metrics. None uses the
            default registry.

    Returns:
        The configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Load configuration, wire dependencies, and clean up on shutdown."""
        services = container
        if services is None:
            settings = get_settings()
            configure_logging(settings.log_level, settings.environment)
            logger.info("triage_service_starting", config=settings.sanitized())
            services = build_container(settings, registry=registry)

        app.state.container = services
        logger.info(
            "triage_service_started",
            repository=services.settings.target_repository,
        )

        yield

        logger.info("triage_service_stopping", pending=services.supervisor.pending)
        await services.aclose(drain_timeout=services.settings.request_timeout_seconds)
        logger.info("triage_service_stopped")

    app = FastAPI(
        title="GitHub Triage Agent",
        description="Automatic classification and labeling of GitHub issues",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.metrics_registry = registry

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        logger.warning("request_failed", path=request.url.path, **exc.to_dict())
        return JSONResponse(status_code=exc.status_code, content=error_response(exc))

    @app.post("/webhooks/github")
    async def github_webhook(request: Request) -> JSONResponse:
        """GitHub webhook receiver.

        The raw body bytes are used for signature verification; the body is
        never re-serialised before the HMAC is checked.
        """
        raw_body = await request.body()
        signature = request.headers.get("x-hub-signature-256")
        outcome = await request.app.state.container.gateway.handle(raw_body, signature)
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    @app.get("/health")
    async def health():
        """Liveness probe. Returns 200 while the process is running."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
        }

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe backed by the orchestrator health check."""
        status = await request.app.state.container.orchestrator.health_check(
            new_correlation_id()
        )
        return JSONResponse(
            status_code=200 if status.overall else 503,
            content={
                "status": "ready" if status.overall else "not_ready",
                "services": status.services,
            },
        )

    @app.get("/metrics")
    async def metrics(request: Request) -> Response:
        """Prometheus metrics in text exposition format."""
        return Response(
            content=generate_metrics_output(request.app.state.metrics_registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    app.include_router(admin_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.triage.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
