"""Tests for the Playwright rendering engine adapter.

The Playwright driver is mocked; these tests check how driver behavior
maps onto the engine's operations and error types.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from conftest import RecordingDispatcher
from match_notifier.capture import CaptureCoordinator, CaptureState, ScreenshotStore
from match_notifier.capture.engine import LAUNCH_ARGS, RenderingEngine
from match_notifier.errors import (
    CaptureIOError,
    EngineUnavailable,
    NavigationError,
    NavigationTimeout,
    ReadinessTimeout,
)


def _mock_driver():
    """Build a mocked async_playwright() chain returning (factory, playwright, browser, page)."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.evaluate = AsyncMock(return_value={"total": 0, "broken": 0})

    async def _screenshot(path, full_page):
        Path(path).write_bytes(b"\x89PNG")

    page.screenshot = AsyncMock(side_effect=_screenshot)

    browser = MagicMock()
    browser.new_page = AsyncMock(return_value=page)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    factory = MagicMock()
    factory.return_value.start = AsyncMock(return_value=playwright)
    return factory, playwright, browser, page


@pytest.fixture
def driver():
    factory, playwright, browser, page = _mock_driver()
    with patch("match_notifier.capture.engine.async_playwright", factory):
        yield playwright, browser, page


class TestAcquire:
    """Launching the headless browser."""

    @pytest.mark.asyncio
    async def test_launches_headless_sandboxed_with_viewport(self, driver):
        """Chromium starts headless with sandbox flags and the configured viewport."""
        playwright, browser, _ = driver
        engine = RenderingEngine(850, 900)

        await engine.acquire()

        playwright.chromium.launch.assert_awaited_once_with(headless=True, args=LAUNCH_ARGS)
        browser.new_page.assert_awaited_once_with(viewport={"width": 850, "height": 900})
        assert engine.is_acquired

    @pytest.mark.asyncio
    async def test_launch_failure_raises_engine_unavailable(self, driver):
        """A failed launch raises EngineUnavailable; release stops the driver."""
        playwright, _, _ = driver
        playwright.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
        engine = RenderingEngine(850, 900)

        with pytest.raises(EngineUnavailable):
            await engine.acquire()

        assert not engine.is_acquired
        playwright.stop.assert_not_awaited()

        await engine.release()

        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_launch_under_coordinator_stops_driver_once(self, driver, tmp_path):
        """The coordinator's release is the only teardown after a failed launch."""
        playwright, _, _ = driver
        playwright.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
        coordinator = CaptureCoordinator(
            dispatcher=RecordingDispatcher(),
            store=ScreenshotStore(tmp_path),
            engine_factory=lambda: RenderingEngine(850, 900),
            report_url="http://localhost:8080/main",
        )

        job = await coordinator.capture_now()

        assert job.error_type == "EngineUnavailable"
        playwright.stop.assert_awaited_once()
        assert coordinator.state is CaptureState.IDLE

    @pytest.mark.asyncio
    async def test_operations_require_acquire(self):
        """Using the engine before acquire raises EngineUnavailable."""
        engine = RenderingEngine(850, 900)

        with pytest.raises(EngineUnavailable):
            await engine.navigate("http://localhost:8080/main", timeout=1)


class TestNavigate:
    """Loading the report page."""

    @pytest.mark.asyncio
    async def test_waits_for_network_idle(self, driver):
        """goto waits for networkidle with the timeout in milliseconds."""
        _, _, page = driver
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        await engine.navigate("http://localhost:8080/main", timeout=60)

        page.goto.assert_awaited_once_with(
            "http://localhost:8080/main", wait_until="networkidle", timeout=60000
        )

    @pytest.mark.asyncio
    async def test_timeout_raises_navigation_timeout(self, driver):
        """A driver timeout becomes NavigationTimeout."""
        _, _, page = driver
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 60000ms exceeded")
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        with pytest.raises(NavigationTimeout):
            await engine.navigate("http://localhost:8080/main", timeout=60)

    @pytest.mark.asyncio
    async def test_connection_failure_raises_navigation_error(self, driver):
        """A refused connection becomes NavigationError, not a timeout."""
        _, _, page = driver
        page.goto.side_effect = PlaywrightError("net::ERR_CONNECTION_REFUSED")
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        with pytest.raises(NavigationError) as exc_info:
            await engine.navigate("http://localhost:8080/main", timeout=60)
        assert not isinstance(exc_info.value, NavigationTimeout)


class TestWaits:
    """Readiness marker and image loading."""

    @pytest.mark.asyncio
    async def test_ready_selector_timeout(self, driver):
        """A missing marker raises ReadinessTimeout."""
        _, _, page = driver
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 10000ms exceeded")
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        with pytest.raises(ReadinessTimeout):
            await engine.wait_ready(".match_history", timeout=10)

        page.wait_for_selector.assert_awaited_once_with(".match_history", timeout=10000)

    @pytest.mark.asyncio
    async def test_broken_images_are_tolerated(self, driver):
        """Broken images are reported, not raised."""
        _, _, page = driver
        page.evaluate.return_value = {"total": 3, "broken": 1}
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        stats = await engine.wait_for_images(timeout=10)

        assert stats == {"total": 3, "broken": 1}

    @pytest.mark.asyncio
    async def test_stalled_images_are_abandoned(self, driver):
        """Images still loading after the timeout do not block the capture."""
        _, _, page = driver

        async def _never(*args):
            await asyncio.Event().wait()

        page.evaluate.side_effect = _never
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        stats = await engine.wait_for_images(timeout=0.05)

        assert stats == {"total": None, "broken": None}


class TestScreenshot:
    """Writing the full-page image."""

    @pytest.mark.asyncio
    async def test_full_page_png_written(self, driver, tmp_path):
        """The page is captured full-page to the given path."""
        _, _, page = driver
        engine = RenderingEngine(850, 900)
        await engine.acquire()
        target = tmp_path / "shots" / "screenshot-1.png"

        result = await engine.screenshot(target)

        assert result == target
        assert target.exists()
        page.screenshot.assert_awaited_once_with(path=str(target), full_page=True)

    @pytest.mark.asyncio
    async def test_write_failure_raises_capture_io_error(self, driver, tmp_path):
        """A driver write error becomes CaptureIOError."""
        _, _, page = driver
        page.screenshot.side_effect = PlaywrightError("ENOSPC: no space left on device")
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        with pytest.raises(CaptureIOError):
            await engine.screenshot(tmp_path / "screenshot-1.png")


class TestRelease:
    """Tearing the browser down."""

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, driver):
        """Repeated release closes the browser only once."""
        playwright, browser, _ = driver
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        await engine.release()
        await engine.release()

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert not engine.is_acquired

    @pytest.mark.asyncio
    async def test_release_never_raises(self, driver):
        """Errors while closing are swallowed after logging."""
        playwright, browser, _ = driver
        browser.close.side_effect = PlaywrightError("Target closed")
        engine = RenderingEngine(850, 900)
        await engine.acquire()

        await engine.release()

        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_release_without_acquire(self):
        """Release on a fresh engine is a no-op."""
        engine = RenderingEngine(850, 900)

        await engine.release()

        assert not engine.is_acquired
