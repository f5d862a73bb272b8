"""Headless Chromium session used to render and screenshot the report page.

Wraps one Playwright browser behind acquire / navigate / wait / screenshot /
release. Every failure is translated into a CaptureError subclass so the
coordinator only has to know about one exception family.
"""

import asyncio
from pathlib import Path
from typing import Any

import structlog
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from match_notifier.errors import (
    CaptureIOError,
    EngineUnavailable,
    NavigationError,
    NavigationTimeout,
    ReadinessTimeout,
)

logger = structlog.get_logger(__name__)

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]

# Resolves once every <img> has either loaded or errored. Broken images
# count as done so a dead asset URL cannot block the capture.
WAIT_FOR_IMAGES_JS = """
() => Promise.all(
    Array.from(document.images).map(img => {
        if (img.complete) {
            return Promise.resolve(img.naturalWidth > 0);
        }
        return new Promise(resolve => {
            img.addEventListener('load', () => resolve(true), { once: true });
            img.addEventListener('error', () => resolve(false), { once: true });
        });
    })
).then(results => ({
    total: results.length,
    broken: results.filter(ok => !ok).length,
}))
"""


class RenderingEngine:
    """One headless browser session.

    A new engine is created for every capture job. release() is safe to
    call at any point, any number of times.

    Example:
        engine = RenderingEngine(850, 900)
        try:
            await engine.acquire()
            await engine.navigate("http://localhost:8080/main", timeout=60)
            await engine.wait_for_images(timeout=10)
            await engine.wait_ready(".match_history", timeout=10)
            await engine.screenshot(Path("screenshots/screenshot-1.png"))
        finally:
            await engine.release()
    """

    def __init__(self, viewport_width: int, viewport_height: int) -> None:
        self.viewport = {"width": viewport_width, "height": viewport_height}
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    @property
    def is_acquired(self) -> bool:
        return self._page is not None

    async def acquire(self) -> None:
        """Launch the sandboxed headless browser and open a page.

        Whatever started before a failure stays referenced; the caller
        releases it with release(), as it does on every other exit path.

        Raises:
            EngineUnavailable: If the browser process cannot start
        """
        if self._page is not None:
            return

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=LAUNCH_ARGS,
            )
            self._page = await self._browser.new_page(viewport=self.viewport)
        except (PlaywrightError, OSError) as e:
            raise EngineUnavailable(f"Browser failed to start: {e}") from e

        logger.debug("engine_acquired", viewport=self.viewport)

    async def navigate(self, url: str, timeout: float) -> None:
        """Load url and wait for network activity to settle.

        Raises:
            NavigationTimeout: If the page does not settle within timeout seconds
            NavigationError: If the page cannot be loaded at all
        """
        page = self._require_page()
        try:
            await page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Navigation to {url} exceeded {timeout}s") from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {url} failed: {e}") from e

    async def wait_for_images(self, timeout: float) -> dict[str, Any]:
        """Wait until every image on the page has loaded or failed.

        Broken images are tolerated. If images are still pending after
        timeout seconds the wait is abandoned and the capture proceeds.

        Returns:
            Dictionary with total image count and broken image count
        """
        page = self._require_page()
        try:
            stats = await asyncio.wait_for(page.evaluate(WAIT_FOR_IMAGES_JS), timeout)
        except asyncio.TimeoutError:
            logger.warning("images_still_loading", timeout=timeout)
            return {"total": None, "broken": None}
        except PlaywrightError as e:
            logger.warning("image_wait_failed", error=str(e))
            return {"total": None, "broken": None}

        if stats.get("broken"):
            logger.warning("broken_images", **stats)
        return stats

    async def wait_ready(self, selector: str, timeout: float) -> None:
        """Wait for the readiness marker element to appear.

        Raises:
            ReadinessTimeout: If selector is not attached within timeout seconds
        """
        page = self._require_page()
        try:
            await page.wait_for_selector(selector, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise ReadinessTimeout(f"Selector {selector!r} not found within {timeout}s") from e
        except PlaywrightError as e:
            raise ReadinessTimeout(f"Waiting for {selector!r} failed: {e}") from e

    async def screenshot(self, path: Path) -> Path:
        """Write a full-page PNG of the rendered report to path.

        Raises:
            CaptureIOError: If the file cannot be written
        """
        page = self._require_page()
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as e:
            raise CaptureIOError(f"Could not write screenshot to {path}: {e}") from e

        if not path.exists():
            raise CaptureIOError(f"Screenshot missing after capture: {path}")
        return path

    async def release(self) -> None:
        """Close the browser and stop the driver. Never raises."""
        browser, playwright = self._browser, self._playwright
        self._page = None
        self._browser = None
        self._playwright = None

        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("browser_close_failed", error=str(e))
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning("playwright_stop_failed", error=str(e))

    def _require_page(self) -> Page:
        if self._page is None:
            raise EngineUnavailable("Rendering engine has not been acquired")
        return self._page
