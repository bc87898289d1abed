"""Tests for the Playwright browser manager and page renderer."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from holiday_deals.config import ScraperSettings
from holiday_deals.errors import ExtractionError
from holiday_deals.renderer import BrowserManager, PageRenderer

URL = "https://www.jet2holidays.com/beach/spain/tenerife/costa-adeje/hotel-la-playa"


class _StubPage:
    def __init__(self, goto_error: Optional[Exception] = None, heading_error: Optional[Exception] = None) -> None:
        self.goto_error = goto_error
        self.heading_error = heading_error
        self.goto_calls: List[Dict[str, Any]] = []
        self.routes: List[str] = []
        self.route_handlers: List[Any] = []

    async def route(self, pattern: str, handler) -> None:
        self.routes.append(pattern)
        self.route_handlers.append(handler)

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[int] = None) -> None:
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.goto_error:
            raise self.goto_error

    async def wait_for_selector(self, selector: str, timeout: Optional[int] = None) -> None:
        if self.heading_error:
            raise self.heading_error

    async def content(self) -> str:
        return "<html><body><h1>Hotel La Playa</h1></body></html>"

    async def evaluate(self, script: str) -> str:
        return "Hotel La Playa"

    async def title(self) -> str:
        return "Hotel La Playa | Jet2holidays"


class _StubContext:
    def __init__(self, page: _StubPage) -> None:
        self.page = page
        self.closed = False

    async def new_page(self) -> _StubPage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class _StubBrowser:
    def __init__(self, page: _StubPage) -> None:
        self.page = page
        self.connected = True
        self.closed = False
        self.contexts: List[_StubContext] = []
        self.context_options: List[Dict[str, Any]] = []

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **options: Any) -> _StubContext:
        self.context_options.append(options)
        context = _StubContext(self.page)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class _StubChromium:
    def __init__(self, page: _StubPage) -> None:
        self.page = page
        self.launches: List[Dict[str, Any]] = []
        self.browsers: List[_StubBrowser] = []

    async def launch(self, headless: bool = True, args: Optional[List[str]] = None) -> _StubBrowser:
        self.launches.append({"headless": headless, "args": args})
        browser = _StubBrowser(self.page)
        self.browsers.append(browser)
        return browser


class _StubPlaywright:
    def __init__(self, page: _StubPage) -> None:
        self.chromium = _StubChromium(page)
        self.stopped = 0

    async def stop(self) -> None:
        self.stopped += 1


class _StubPlaywrightFactory:
    """Mimics ``async_playwright()`` returning an object with ``start()``."""

    def __init__(self, page: _StubPage) -> None:
        self.runtime = _StubPlaywright(page)
        self.starts = 0

    def __call__(self) -> "_StubPlaywrightFactory":
        return self

    async def start(self) -> _StubPlaywright:
        self.starts += 1
        return self.runtime


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> ScraperSettings:
    return ScraperSettings(settle_delay=0, navigation_timeout_ms=1234, heading_timeout_ms=50)


def _renderer(settings: ScraperSettings, page: _StubPage):
    factory = _StubPlaywrightFactory(page)
    manager = BrowserManager(settings, playwright_factory=factory)
    return PageRenderer(manager, settings), manager, factory


@pytest.mark.anyio
async def test_acquire_reuses_live_browser_and_release_is_idempotent(settings) -> None:
    _, manager, factory = _renderer(settings, _StubPage())

    first = await manager.acquire()
    second = await manager.acquire()
    assert first is second
    assert manager.is_running
    assert factory.starts == 1
    assert factory.runtime.chromium.launches[0]["headless"] is True

    await manager.release()
    await manager.release()
    assert first.closed
    assert not manager.is_running
    assert factory.runtime.stopped == 1


@pytest.mark.anyio
async def test_acquire_relaunches_disconnected_browser(settings) -> None:
    _, manager, factory = _renderer(settings, _StubPage())

    first = await manager.acquire()
    first.connected = False
    second = await manager.acquire()

    assert second is not first
    assert len(factory.runtime.chromium.launches) == 2


@pytest.mark.anyio
async def test_render_returns_page_content(settings) -> None:
    page = _StubPage()
    renderer, manager, factory = _renderer(settings, page)

    rendered = await renderer.render(URL)

    assert rendered.url == URL
    assert "<h1>Hotel La Playa</h1>" in rendered.html
    assert rendered.text == "Hotel La Playa"
    assert rendered.title == "Hotel La Playa | Jet2holidays"
    assert page.goto_calls == [{"url": URL, "wait_until": "domcontentloaded", "timeout": 1234}]
    assert page.routes == ["**/*"]
    browser = factory.runtime.chromium.browsers[0]
    assert browser.context_options[0]["viewport"] == {"width": 1920, "height": 1080}
    assert browser.contexts[0].closed
    await manager.release()


@pytest.mark.anyio
async def test_navigation_timeout_raises_extraction_error_and_closes_context(settings) -> None:
    page = _StubPage(goto_error=PlaywrightTimeoutError("Timeout 1234ms exceeded."))
    renderer, _, factory = _renderer(settings, page)

    with pytest.raises(ExtractionError) as excinfo:
        await renderer.render(URL)

    assert excinfo.value.url == URL
    assert "timed out" in str(excinfo.value)
    assert factory.runtime.chromium.browsers[0].contexts[0].closed


@pytest.mark.anyio
async def test_missing_heading_is_tolerated(settings) -> None:
    page = _StubPage(heading_error=PlaywrightTimeoutError("waiting for h1"))
    renderer, _, _ = _renderer(settings, page)

    rendered = await renderer.render(URL)

    assert rendered.text == "Hotel La Playa"


@pytest.mark.anyio
async def test_open_and_close_delegate_to_manager(settings) -> None:
    renderer, manager, factory = _renderer(settings, _StubPage())

    await renderer.open()
    assert manager.is_running
    await renderer.close()
    assert not manager.is_running
    assert factory.runtime.stopped == 1


class _StubRequest:
    def __init__(self, resource_type: str) -> None:
        self.resource_type = resource_type


class _StubRoute:
    def __init__(self, resource_type: str) -> None:
        self.request = _StubRequest(resource_type)
        self.aborted = False
        self.continued = False

    async def abort(self) -> None:
        self.aborted = True

    async def continue_(self) -> None:
        self.continued = True


@pytest.mark.anyio
async def test_route_handler_blocks_only_non_essential_resources(settings) -> None:
    page = _StubPage()
    renderer, _, _ = _renderer(settings, page)
    await renderer.render(URL)
    (handler,) = page.route_handlers

    outcomes = {}
    for resource_type in ("stylesheet", "font", "media", "image", "document", "script"):
        route = _StubRoute(resource_type)
        await handler(route)
        outcomes[resource_type] = (route.aborted, route.continued)

    assert outcomes == {
        "stylesheet": (True, False),
        "font": (True, False),
        "media": (True, False),
        "image": (False, True),
        "document": (False, True),
        "script": (False, True),
    }
