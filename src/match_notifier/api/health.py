"""Health check API endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from match_notifier import __version__
from match_notifier.api.deps import get_coordinator, get_subscriber
from match_notifier.capture import CaptureCoordinator
from match_notifier.realtime import ChangeEventSubscriber

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response with component status."""

    status: str = "healthy"
    version: str
    capture_state: str
    subscription: str = "disabled"
    storage: str = "unknown"


@router.get("", response_model=HealthResponse)
async def health_check(
    coordinator: CaptureCoordinator = Depends(get_coordinator),
    subscriber: ChangeEventSubscriber | None = Depends(get_subscriber),
) -> HealthResponse:
    """Check service health and component status.

    Always returns 200 with component status in body.
    Monitoring systems should check the body for unhealthy components.
    """
    overall_status = "healthy"

    storage_status = "healthy" if coordinator.store.is_writable() else "read-only"
    if storage_status != "healthy":
        logger.warning("storage_health_check_failed", path=str(coordinator.store.base_path))
        overall_status = "degraded"

    subscription_status = "disabled"
    if subscriber is not None:
        subscription_status = subscriber.status
        if not subscriber.is_subscribed:
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        capture_state=coordinator.state.value,
        subscription=subscription_status,
        storage=storage_status,
    )


@router.get("/ready")
async def readiness_check(
    coordinator: CaptureCoordinator = Depends(get_coordinator),
) -> dict:
    """Check if the service can capture.

    Returns 503 if the screenshot directory is not writable.
    """
    if not coordinator.store.is_writable():
        logger.warning("readiness_storage_failed", path=str(coordinator.store.base_path))
        raise HTTPException(status_code=503, detail="Screenshot directory not writable")

    return {"ready": True}
