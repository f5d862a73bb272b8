"""Capture control endpoints."""

import structlog
from fastapi import APIRouter, Depends

from match_notifier.api.deps import get_coordinator
from match_notifier.capture import CaptureCoordinator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/captures", tags=["captures"])


@router.post("/trigger")
async def trigger_capture(
    coordinator: CaptureCoordinator = Depends(get_coordinator),
) -> dict:
    """Start a capture job unless one is already running."""
    task = coordinator.trigger(reason="api")
    return {"accepted": task is not None, "state": coordinator.state.value}


@router.get("/status")
async def capture_status(
    coordinator: CaptureCoordinator = Depends(get_coordinator),
) -> dict:
    """Current coordinator state and the last finished job."""
    return coordinator.get_status()
