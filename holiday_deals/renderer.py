"""Headless browser lifecycle and page rendering via Playwright."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Callable, Optional, Protocol

from playwright.async_api import Browser, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import ScraperSettings
from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

# Images stay enabled: gallery extraction reads image URLs from the DOM.
BLOCKED_RESOURCE_TYPES = frozenset({"stylesheet", "font", "media"})

_BODY_TEXT_SCRIPT = "() => document.body ? document.body.innerText : ''"


@dataclass
class RenderedPage:
    """A fully rendered listing page ready for signal extraction."""

    url: str
    html: str
    text: str
    title: Optional[str] = None


class Renderer(Protocol):
    """Interface the batch workflow expects from a page renderer."""

    async def open(self) -> None:
        ...

    async def render(self, url: str) -> RenderedPage:
        ...

    async def close(self) -> None:
        ...


class BrowserManager:
    """Owns the single headless browser shared by every render in a process.

    ``acquire`` launches the browser on first use, hands back the live instance
    on later calls and relaunches it when the previous one disconnected.
    ``release`` closes whatever is running. Both are safe to call repeatedly.
    """

    def __init__(
        self,
        settings: ScraperSettings,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.settings = settings
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                LOGGER.warning("Browser disconnected, launching a new instance")
                self._browser = None
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            LOGGER.info("Launching headless browser (headless=%s)", self.settings.headless)
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
                args=list(self.settings.browser_args),
            )
            return self._browser

    async def release(self) -> None:
        async with self._lock:
            browser, self._browser = self._browser, None
            playwright, self._playwright = self._playwright, None
            if browser is not None:
                try:
                    await browser.close()
                except PlaywrightError as exc:
                    LOGGER.warning("Closing the browser failed: %s", exc)
            if playwright is not None:
                await playwright.stop()

    async def __aenter__(self) -> "BrowserManager":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc: BaseException | None, tb: Any | None) -> bool:
        await self.release()
        return False


async def _block_non_essential(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class PageRenderer:
    """Render listing pages in isolated browser contexts."""

    def __init__(self, browser_manager: BrowserManager, settings: ScraperSettings | None = None) -> None:
        self.browser_manager = browser_manager
        self.settings = settings or browser_manager.settings

    async def open(self) -> None:
        await self.browser_manager.acquire()

    async def close(self) -> None:
        await self.browser_manager.release()

    async def render(self, url: str) -> RenderedPage:
        """Load ``url`` and return its DOM once client-side rendering settled."""

        try:
            browser = await self.browser_manager.acquire()
            context = await browser.new_context(
                viewport=dict(self.settings.viewport),
                user_agent=self.settings.user_agent,
            )
        except PlaywrightError as exc:
            raise ExtractionError(url, f"browser unavailable ({exc})") from exc

        try:
            page = await context.new_page()
            await page.route("**/*", _block_non_essential)

            LOGGER.info("Navigating to %s", url)
            try:
                await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self.settings.navigation_timeout_ms,
                )
            except PlaywrightTimeoutError as exc:
                raise ExtractionError(
                    url, f"navigation timed out after {self.settings.navigation_timeout_ms} ms"
                ) from exc

            try:
                await page.wait_for_selector("h1", timeout=self.settings.heading_timeout_ms)
            except PlaywrightTimeoutError:
                LOGGER.info("No heading appeared on %s, continuing with partial content", url)

            await asyncio.sleep(self.settings.settle_delay)

            html = await page.content()
            text = await page.evaluate(_BODY_TEXT_SCRIPT)
            title = await page.title()
            return RenderedPage(url=url, html=html, text=text or "", title=title or None)
        except PlaywrightError as exc:
            raise ExtractionError(url, str(exc).splitlines()[0] if str(exc) else repr(exc)) from exc
        finally:
            try:
                await context.close()
            except PlaywrightError as exc:
                LOGGER.warning("Closing the page context for %s failed: %s", url, exc)
