"""Playwright (chromium) page-session provider."""

import logging
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Request,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import SimulationConfig
from .errors import NavigationError, NavigationTimeout, ProviderLaunchError
from .models import CapturedRequest
from .providers import NO_CACHE_HEADERS, USER_AGENT, PageSession, PageSessionProvider

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}


def capture(request: Request, with_timing: bool = True) -> CapturedRequest:
    """Convert a playwright request into a ``CapturedRequest``."""
    start_ms: Optional[float] = None
    end_ms: Optional[float] = None
    if with_timing:
        timing = request.timing or {}
        start = timing.get("startTime", -1)
        response_end = timing.get("responseEnd", -1)
        # responseEnd is relative to startTime.
        if start is not None and response_end is not None and start >= 0 and response_end >= 0:
            start_ms = start
            end_ms = start + response_end
    return CapturedRequest(
        key=request,
        url=request.url,
        resource_type=request.resource_type,
        start_ms=start_ms,
        end_ms=end_ms,
    )


class BrowserPageSession(PageSession):
    """A page inside its own browser context."""

    def __init__(self, context: BrowserContext, page: Page):
        super().__init__()
        self.context = context
        self.page = page
        page.on("request", lambda request: self._emit_observed(capture(request, with_timing=False)))
        page.on("requestfinished", lambda request: self._emit_finished(capture(request)))
        page.on("requestfailed", lambda request: self._emit_failed(capture(request)))

    async def navigate(self, url: str, timeout_ms: int) -> None:
        try:
            await self.page.goto(url, wait_until="load", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(url, timeout_ms) from e
        except PlaywrightError as e:
            raise NavigationError(e.message) from e

    async def wait_for_network_idle(self, timeout_ms: int) -> bool:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True

    async def wait(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    async def close(self) -> None:
        await self.context.close()


class BrowserProvider(PageSessionProvider):
    """One chromium instance per run, one browser context per session."""

    name = "browser"

    def __init__(self, config: SimulationConfig):
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
        except Exception as e:
            await self.stop()
            raise ProviderLaunchError(f"Could not launch chromium: {e}") from e
        logger.debug("Chromium %s launched (headless=%s)", self._browser.version, self.config.headless)

    async def open(self) -> BrowserPageSession:
        if self._browser is None:
            raise ProviderLaunchError("Browser provider used before start()")
        context = await self._browser.new_context(
            user_agent=USER_AGENT,
            viewport=VIEWPORT,
            service_workers="block",
        )
        try:
            page = await context.new_page()
            await page.set_extra_http_headers(NO_CACHE_HEADERS)
        except Exception:
            await context.close()
            raise
        return BrowserPageSession(context, page)

    async def stop(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning("Error closing browser: %s", e)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
