"""Capture module: rendering engine, coordinator and screenshot storage."""

from match_notifier.capture.coordinator import (
    CaptureCoordinator,
    CaptureJob,
    CaptureState,
    JobStatus,
)
from match_notifier.capture.engine import RenderingEngine
from match_notifier.capture.storage import ScreenshotStore

__all__ = [
    "CaptureCoordinator",
    "CaptureJob",
    "CaptureState",
    "JobStatus",
    "RenderingEngine",
    "ScreenshotStore",
]
