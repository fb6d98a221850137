"""Health check routes."""

from fastapi import APIRouter, Request

from vulnrouter.schemas.v1.health import HealthResponse, ReadyResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=ReadyResponse)
async def readiness_check(request: Request):
    """Readiness check with ingestion and notification status.

    The routing configuration is always available in-process; the service is
    degraded when it is not consuming findings or cannot deliver alerts.
    """
    subscriber = getattr(request.app.state, "subscriber", None)
    notifier = getattr(request.app.state, "notifier", None)

    dependencies: dict[str, bool] = {
        "pubsub_subscriber": bool(subscriber is not None and subscriber.is_running),
        "slack_webhook": bool(notifier is not None and notifier.is_configured),
    }
    status = "ready" if all(dependencies.values()) else "degraded"
    return ReadyResponse(status=status, dependencies=dependencies)


@router.get("/health/live", response_model=HealthResponse)
async def liveness_check():
    """Liveness check."""
    return HealthResponse(status="alive")
