"""Single-flight coordinator that turns a trigger into a posted screenshot."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

import structlog

from match_notifier.capture.engine import RenderingEngine
from match_notifier.capture.storage import ScreenshotStore
from match_notifier.config import Settings
from match_notifier.errors import CaptureError, NavigationTimeout, ReadinessTimeout
from match_notifier.logging import bind_job_id, log_capture_stored, log_state_change
from match_notifier.notifications import (
    DispatchResult,
    NotificationPayload,
    WebhookDispatcher,
    dated_caption,
)

logger = structlog.get_logger(__name__)


class CaptureState(Enum):
    """State of the capture coordinator."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    RENDERING = "rendering"
    CAPTURING = "capturing"
    DISPATCHING = "dispatching"
    FAILED = "failed"


class JobStatus(Enum):
    """Outcome of a capture job."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CaptureJob:
    """One in-flight attempt to render, screenshot and post the report."""

    url: str
    viewport: tuple[int, int]
    path: Path
    reason: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: JobStatus = JobStatus.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    error: str | None = None
    error_type: str | None = None
    dispatch: DispatchResult | None = None

    @property
    def filename(self) -> str:
        return self.path.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reason": self.reason,
            "status": self.status.value,
            "filename": self.filename,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
            "error_type": self.error_type,
            "dispatched": self.dispatch.success if self.dispatch else None,
        }


async def _bounded(
    awaitable: Awaitable[Any],
    timeout: float,
    error_type: type[CaptureError],
    message: str,
) -> Any:
    """Await with a hard upper bound, raising error_type when exceeded."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise error_type(message) from e


class CaptureCoordinator:
    """Owns the capture lifecycle and guarantees at most one job at a time.

    State machine:
        IDLE -> ACQUIRING -> RENDERING -> CAPTURING -> DISPATCHING -> IDLE
        ACQUIRING | RENDERING | CAPTURING -> FAILED -> IDLE

    A trigger arriving while the coordinator is not IDLE is dropped. All
    state lives on this instance and is only touched from the event loop;
    the IDLE check and the move to ACQUIRING happen without an
    intervening suspension point.

    Example:
        coordinator = CaptureCoordinator.from_settings(settings)
        coordinator.trigger(reason="change_event")
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        store: ScreenshotStore,
        engine_factory: Callable[[], RenderingEngine],
        report_url: str,
        viewport: tuple[int, int] = (850, 900),
        ready_selector: str = ".match_history",
        navigation_timeout: float = 60.0,
        ready_timeout: float = 10.0,
        image_timeout: float = 10.0,
        caption_suffix: str = "최신 전적 업데이트!",
    ) -> None:
        self._dispatcher = dispatcher
        self._store = store
        self._engine_factory = engine_factory
        self.report_url = report_url
        self.viewport = viewport
        self.ready_selector = ready_selector
        self.navigation_timeout = navigation_timeout
        self.ready_timeout = ready_timeout
        self.image_timeout = image_timeout
        self.caption_suffix = caption_suffix

        self._state = CaptureState.IDLE
        self._current_job: CaptureJob | None = None
        self._last_job: CaptureJob | None = None
        self._task: asyncio.Task | None = None
        self._state_change_callbacks: list[Callable[[CaptureState], None]] = []

        self._jobs_started = 0
        self._jobs_failed = 0
        self._triggers_dropped = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        dispatcher: WebhookDispatcher | None = None,
        engine_factory: Callable[[], RenderingEngine] | None = None,
    ) -> "CaptureCoordinator":
        """Build a coordinator wired from configuration."""
        viewport = (settings.viewport_width, settings.viewport_height)
        return cls(
            dispatcher=dispatcher
            or WebhookDispatcher(settings.webhook_url, timeout=settings.webhook_timeout),
            store=ScreenshotStore(
                settings.screenshot_dir,
                retention_mode=settings.retention_mode,
                retention_count=settings.retention_count,
            ),
            engine_factory=engine_factory or (lambda: RenderingEngine(*viewport)),
            report_url=settings.report_url,
            viewport=viewport,
            ready_selector=settings.ready_selector,
            navigation_timeout=settings.navigation_timeout,
            ready_timeout=settings.ready_timeout,
            image_timeout=settings.image_timeout,
            caption_suffix=settings.caption_suffix,
        )

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def store(self) -> ScreenshotStore:
        return self._store

    @property
    def current_job(self) -> CaptureJob | None:
        return self._current_job

    @property
    def last_job(self) -> CaptureJob | None:
        return self._last_job

    def on_state_change(self, callback: Callable[[CaptureState], None]) -> None:
        """Register callback for state changes.

        Args:
            callback: Function called with the new CaptureState
        """
        self._state_change_callbacks.append(callback)

    def _set_state(self, new_state: CaptureState) -> None:
        if self._state == new_state:
            return
        old_state = self._state
        self._state = new_state
        job_id = self._current_job.id if self._current_job else None
        log_state_change(logger, old_state.value, new_state.value, job_id=job_id)
        for callback in self._state_change_callbacks:
            try:
                callback(new_state)
            except Exception:
                logger.exception("state_callback_failed", state=new_state.value)

    def trigger(self, reason: str = "manual") -> asyncio.Task | None:
        """Start a capture job in the background unless one is running.

        Must be called from within the event loop. Returns immediately.

        Args:
            reason: What caused the trigger, recorded on the job

        Returns:
            The task running the job, or None if the trigger was dropped.
        """
        if self._state is not CaptureState.IDLE:
            self._triggers_dropped += 1
            logger.info(
                "trigger_dropped",
                reason=reason,
                state=self._state.value,
                job_id=self._current_job.id if self._current_job else None,
            )
            return None

        job = CaptureJob(
            url=self.report_url,
            viewport=self.viewport,
            path=self._store.next_path(),
            reason=reason,
        )
        self._current_job = job
        self._jobs_started += 1
        self._set_state(CaptureState.ACQUIRING)

        self._task = asyncio.create_task(self._run(job), name=f"capture-{job.id}")
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def capture_now(self, reason: str = "manual") -> CaptureJob | None:
        """Trigger a job and wait for it to finish.

        Returns:
            The finished job, or None if another job was already running.
        """
        task = self.trigger(reason=reason)
        if task is None:
            return None
        return await task

    async def wait_idle(self) -> None:
        """Wait for the running job, if any, to finish."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("capture_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "capture_task_crashed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def _run(self, job: CaptureJob) -> CaptureJob:
        bind_job_id(job.id)
        log = logger.bind(job_id=job.id, reason=job.reason)
        log.info("capture_started", url=job.url, filename=job.filename)
        started = time.monotonic()
        engine: RenderingEngine | None = None

        try:
            engine = self._engine_factory()
            await engine.acquire()

            self._set_state(CaptureState.RENDERING)
            await _bounded(
                engine.navigate(job.url, self.navigation_timeout),
                self.navigation_timeout,
                NavigationTimeout,
                f"Navigation to {job.url} exceeded {self.navigation_timeout}s",
            )
            await engine.wait_for_images(self.image_timeout)
            await _bounded(
                engine.wait_ready(self.ready_selector, self.ready_timeout),
                self.ready_timeout,
                ReadinessTimeout,
                f"Selector {self.ready_selector!r} not found within {self.ready_timeout}s",
            )

            self._set_state(CaptureState.CAPTURING)
            await engine.screenshot(job.path)
            job.status = JobStatus.SUCCEEDED
            log_capture_stored(
                log, job.id, str(job.path), (time.monotonic() - started) * 1000
            )

            self._set_state(CaptureState.DISPATCHING)
            job.dispatch = await self._dispatcher.send(
                NotificationPayload.from_file(job.path, dated_caption(self.caption_suffix))
            )
            if not job.dispatch.success:
                log.warning("capture_not_delivered", error=job.dispatch.error)

        except CaptureError as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            job.error_type = type(e).__name__
            log.error("capture_failed", error_type=type(e).__name__, error=str(e))

        finally:
            if engine is not None:
                await engine.release()
            if job.status is JobStatus.RUNNING:
                job.status = JobStatus.FAILED
                job.error = job.error or "capture aborted"
            job.finished_at = datetime.now(timezone.utc)
            if job.status is JobStatus.FAILED:
                self._jobs_failed += 1
                self._set_state(CaptureState.FAILED)
            await self._apply_retention(job)
            self._last_job = job
            self._current_job = None
            self._set_state(CaptureState.IDLE)

        log.info(
            "capture_finished",
            status=job.status.value,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return job

    async def _apply_retention(self, job: CaptureJob) -> None:
        dispatched = job.dispatch is not None and job.dispatch.success
        latest = job.path if job.status is JobStatus.SUCCEEDED else None
        try:
            await self._store.apply_retention(latest=latest, dispatched=dispatched)
        except OSError as e:
            logger.warning("retention_failed", job_id=job.id, error=str(e))

    def get_status(self) -> dict[str, Any]:
        """Get current coordinator status.

        Returns:
            Dictionary with state, running job, last job and counters
        """
        return {
            "state": self._state.value,
            "current_job": self._current_job.to_dict() if self._current_job else None,
            "last_job": self._last_job.to_dict() if self._last_job else None,
            "jobs_started": self._jobs_started,
            "jobs_failed": self._jobs_failed,
            "triggers_dropped": self._triggers_dropped,
        }
