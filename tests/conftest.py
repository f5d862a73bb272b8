"""Shared fakes for capture pipeline tests."""

import asyncio
from pathlib import Path

import pytest

from match_notifier.capture import CaptureCoordinator, ScreenshotStore
from match_notifier.config import RetentionMode
from match_notifier.errors import CaptureIOError, EngineUnavailable
from match_notifier.notifications import DispatchResult, NotificationPayload

SUFFIX = "최신 전적 업데이트!"


class EngineTracker:
    """Counts live engines and records the calls made on them."""

    def __init__(self) -> None:
        self.alive = 0
        self.max_alive = 0
        self.created = 0
        self.release_calls = 0
        self.calls: list[str] = []


class FakeEngine:
    """Stand-in for RenderingEngine with controllable failures and stalls."""

    def __init__(
        self,
        tracker: EngineTracker,
        fail_on: str | None = None,
        stall_on: str | None = None,
        gate: asyncio.Event | None = None,
        broken_images: int = 0,
    ) -> None:
        self.tracker = tracker
        self.fail_on = fail_on
        self.stall_on = stall_on
        self.gate = gate
        self.broken_images = broken_images
        self._acquired = False
        tracker.created += 1

    async def _step(self, name: str) -> None:
        self.tracker.calls.append(name)
        if self.stall_on == name:
            await asyncio.Event().wait()

    async def acquire(self) -> None:
        self._acquired = True
        self.tracker.alive += 1
        self.tracker.max_alive = max(self.tracker.max_alive, self.tracker.alive)
        await self._step("acquire")
        if self.fail_on == "acquire":
            raise EngineUnavailable("chromium missing")

    async def navigate(self, url: str, timeout: float) -> None:
        await self._step("navigate")
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_on == "navigate":
            raise RuntimeError("unexpected driver crash")

    async def wait_for_images(self, timeout: float) -> dict:
        await self._step("wait_for_images")
        return {"total": 3, "broken": self.broken_images}

    async def wait_ready(self, selector: str, timeout: float) -> None:
        await self._step("wait_ready")

    async def screenshot(self, path: Path) -> Path:
        await self._step("screenshot")
        if self.fail_on == "screenshot":
            raise CaptureIOError(f"disk full: {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x89PNG fake")
        return path

    async def release(self) -> None:
        self.tracker.release_calls += 1
        self.tracker.calls.append("release")
        if self._acquired:
            self._acquired = False
            self.tracker.alive -= 1


class RecordingDispatcher:
    """Dispatcher double that records payloads instead of posting them."""

    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.payloads: list[NotificationPayload] = []

    async def send(self, payload: NotificationPayload) -> DispatchResult:
        self.payloads.append(payload)
        if self.success:
            return DispatchResult(success=True, filename=payload.artifact.filename, status_code=200)
        return DispatchResult(
            success=False,
            filename=payload.artifact.filename,
            status_code=401,
            error="Webhook rejected upload: 401 - Invalid Webhook Token",
        )


class FakeChannel:
    """Records the registration made on a realtime channel."""

    def __init__(self, topic: str, fail_subscribe: bool = False) -> None:
        self.topic = topic
        self.fail_subscribe = fail_subscribe
        self.registrations: list[dict] = []
        self.callback = None
        self.subscribed = False

    def on_postgres_changes(self, event, schema=None, table=None, filter=None, callback=None):
        self.registrations.append({"event": event, "schema": schema, "table": table})
        self.callback = callback
        return self

    async def subscribe(self, callback=None):
        if self.fail_subscribe:
            raise ConnectionError("realtime socket closed")
        self.subscribed = True
        if callback is not None:
            callback("SUBSCRIBED", None)
        return self


class FakeClient:
    """Supabase client double exposing channel/remove_channel."""

    def __init__(self, fail_subscribe: bool = False) -> None:
        self.fail_subscribe = fail_subscribe
        self.channels: list[FakeChannel] = []
        self.removed: list[FakeChannel] = []

    def channel(self, topic: str) -> FakeChannel:
        channel = FakeChannel(topic, fail_subscribe=self.fail_subscribe)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        self.removed.append(channel)


@pytest.fixture
def tracker() -> EngineTracker:
    return EngineTracker()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_coordinator(tmp_path, tracker, dispatcher):
    """Build a coordinator over fake engines with short timeouts."""

    def _make(
        retention_mode: RetentionMode = RetentionMode.KEEP_ALL,
        dispatcher_override: RecordingDispatcher | None = None,
        **engine_kwargs,
    ) -> CaptureCoordinator:
        return CaptureCoordinator(
            dispatcher=dispatcher_override or dispatcher,
            store=ScreenshotStore(tmp_path / "screenshots", retention_mode=retention_mode),
            engine_factory=lambda: FakeEngine(tracker, **engine_kwargs),
            report_url="http://localhost:8080/main",
            navigation_timeout=0.2,
            ready_timeout=0.2,
            image_timeout=0.2,
            caption_suffix=SUFFIX,
        )

    return _make
