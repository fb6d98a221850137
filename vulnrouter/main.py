"""Vulnerability Severity Router Service.

Consumes vulnerability findings from Pub/Sub, announces those at or above
each category's severity threshold in Slack, and serves the operator page
used to edit those thresholds.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from vulnrouter.api.routes.health import router as health_router
from vulnrouter.api.routes.monitoring import router as monitoring_router
from vulnrouter.api.routes.routing_config import api_router as routing_api_router
from vulnrouter.api.routes.routing_config import page_router as routing_page_router
from vulnrouter.clients.slack_client import SlackNotifier
from vulnrouter.core.config import AppEnvironment, Settings, get_settings
from vulnrouter.core.errors import VulnRouterError, get_status_code
from vulnrouter.core.logging import setup_logging
from vulnrouter.core.tracing import clear_tracing_context, set_request_id
from vulnrouter.ingestion.consumer import FindingConsumer
from vulnrouter.ingestion.pubsub_subscriber import PubSubSubscriber
from vulnrouter.routing.store import FindingCategory, RoutingConfigStore, RoutingRule

logger = structlog.get_logger(__name__)

API_V1_PREFIX = "/api/v1"
API_CSP_POLICY = (
    "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; "
    "form-action 'none'; object-src 'none'"
)
CONFIG_PAGE_CSP_POLICY = (
    "default-src 'none'; style-src 'unsafe-inline'; form-action 'self'; "
    "frame-ancestors 'none'; base-uri 'none'; object-src 'none'"
)


def _request_log_context(request: Request) -> dict[str, str]:
    return {
        "path": request.url.path,
        "method": request.method,
        "request_id": getattr(request.state, "request_id", ""),
        "client_host": request.client.host if request.client else "",
    }


def build_config_store(settings: Settings) -> RoutingConfigStore:
    """Seed the routing configuration from the configured defaults."""
    defaults = settings.routing
    return RoutingConfigStore(
        {
            FindingCategory.OS.value: RoutingRule(
                channel=defaults.os_channel, min_severity=defaults.os_min_severity
            ),
            FindingCategory.APP.value: RoutingRule(
                channel=defaults.app_channel, min_severity=defaults.app_min_severity
            ),
        }
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging()

    logger.info(
        "Starting Vulnerability Router",
        app=settings.app.name,
        env=settings.app.env.value,
        version=settings.app.version,
        routing=app.state.config_store.snapshot().to_dict(),
    )

    subscriber: PubSubSubscriber | None = None
    if settings.pubsub.is_configured:
        subscriber = PubSubSubscriber(config=settings.pubsub, consumer=app.state.consumer)
        await subscriber.start()
    else:
        logger.warning(
            "Pub/Sub ingestion disabled",
            enabled=settings.pubsub.enabled,
            project_id=settings.pubsub.project_id,
            subscription=settings.pubsub.subscription,
        )
    app.state.subscriber = subscriber

    yield

    if subscriber is not None:
        await subscriber.stop()
    await app.state.notifier.close()

    logger.info("Vulnerability Router stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Vulnerability Severity Router",
        description="Routes vulnerability findings to Slack by per-category severity threshold.",
        version=settings.app.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.app.env != AppEnvironment.PROD else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.app.env != AppEnvironment.PROD else None,
    )

    store = build_config_store(settings)
    notifier = SlackNotifier(config=settings.slack, project_id=settings.pubsub.project_id)
    app.state.settings = settings
    app.state.config_store = store
    app.state.notifier = notifier
    app.state.consumer = FindingConsumer(store=store, notifier=notifier)
    app.state.subscriber = None

    app.include_router(monitoring_router, prefix=API_V1_PREFIX)
    app.include_router(health_router, prefix=API_V1_PREFIX)
    app.include_router(routing_api_router, prefix=API_V1_PREFIX)
    app.include_router(routing_page_router)

    setup_telemetry(app, settings)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Propagate X-Request-ID, generating one when the caller sent none."""
        request_id = set_request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
            clear_tracing_context()

        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def payload_size_guard(request: Request, call_next):
        max_request = settings.security.max_request_size_bytes
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_request:
            logger.warning(
                "Request payload exceeds configured size limit",
                **_request_log_context(request),
                content_length=content_length,
                max_request_size_bytes=max_request,
            )
            return JSONResponse(status_code=413, content={"detail": "Request payload too large"})
        return await call_next(request)

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        """Set baseline security headers for all responses."""
        response = await call_next(request)
        if not settings.security.security_headers_enabled:
            return response

        if request.url.path == "/config":
            csp_policy = CONFIG_PAGE_CSP_POLICY
        elif request.url.path.startswith("/docs") or request.url.path == "/openapi.json":
            return response
        else:
            csp_policy = API_CSP_POLICY
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Content-Security-Policy", csp_policy)
        return response

    @app.exception_handler(VulnRouterError)
    async def domain_error_handler(request: Request, exc: VulnRouterError) -> JSONResponse:
        """Handle domain-specific errors."""
        status_code = get_status_code(exc)
        logger.warning(
            "Domain exception",
            **_request_log_context(request),
            status_code=status_code,
            error=exc.message,
            error_details=exc.details or {},
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                **({"errors": exc.details} if exc.details else {}),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(
            "Unhandled exception",
            **_request_log_context(request),
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    """Setup OpenTelemetry instrumentation."""
    if not settings.observability.otlp_endpoint:
        return

    resource = Resource(
        attributes={
            SERVICE_NAME: settings.observability.service_name,
        }
    )

    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=settings.observability.otlp_endpoint,
        insecure=settings.observability.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    # Routing configuration lives in process memory, so a single worker
    # process must own it.
    uvicorn.run(
        "vulnrouter.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.env == AppEnvironment.LOCAL,
        workers=1,
        log_level=settings.app.log_level.lower(),
    )


if __name__ == "__main__":
    run()
