"""High level orchestration for scraping a batch of listing URLs."""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Awaitable, Callable, List, Optional, Sequence
from urllib.parse import urlparse

from .config import ScraperSettings
from .errors import BatchSetupError, ExtractionError, InvalidBatchError
from .models import RUN_COMPLETED, RUN_FAILED, RUN_RUNNING, BatchResult, UrlResult
from .reconciler import reconcile
from .renderer import BrowserManager, PageRenderer, Renderer
from .repository import ListingRepository, utc_now
from .sources import ListingPageExtractor
from .upsert import ListingUpserter
from .url_decoder import decode_listing_url
from .validator import describe_missing, validate_candidate

LOGGER = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50


def validate_batch_urls(urls: Sequence[str]) -> List[str]:
    """Return ``urls`` as a list after checking the 1-50 absolute URL contract."""

    if isinstance(urls, str) or not isinstance(urls, Sequence):
        raise InvalidBatchError("urls must be a list of absolute URLs")
    if not 1 <= len(urls) <= MAX_BATCH_SIZE:
        raise InvalidBatchError(f"Expected between 1 and {MAX_BATCH_SIZE} URLs, got {len(urls)}")
    checked: List[str] = []
    for url in urls:
        parsed = urlparse(url) if isinstance(url, str) else None
        if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidBatchError(f"Not an absolute URL: {url!r}")
        checked.append(url)
    return checked


class ScrapeService:
    """Run the render, extract, reconcile, validate and upsert cycle per URL.

    URLs are processed strictly one after another with a fixed delay between
    them. The renderer's browser is opened once per batch and always closed when
    the batch ends.
    """

    def __init__(
        self,
        repository: ListingRepository,
        renderer: Renderer,
        settings: ScraperSettings | None = None,
        extractor: ListingPageExtractor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.renderer = renderer
        self.settings = settings or ScraperSettings()
        self.extractor = extractor or ListingPageExtractor(self.settings)
        self.upserter = ListingUpserter(repository)
        self._sleep = sleep

    def ensure_provider(self) -> int:
        return self.repository.ensure_provider(
            slug=self.settings.provider_slug,
            name=self.settings.provider_name,
            base_url=self.settings.base_url,
            logo_url=self.settings.provider_logo_url,
            departure_airport=self.settings.provider_departure_airport,
        )

    async def process_url(
        self, url: str, run_id: Optional[int] = None, provider_id: Optional[int] = None
    ) -> UrlResult:
        """Scrape one URL; every failure is reported in the result, never raised."""

        try:
            decoded = decode_listing_url(url)
            page = await self.renderer.render(url)
            signals = self.extractor.extract(page)
            candidate = reconcile(decoded, signals, self.settings)
            missing = validate_candidate(candidate)
            if missing:
                LOGGER.warning("Rejected %s, missing %s", url, ", ".join(missing))
                return UrlResult(url=url, success=False, error=describe_missing(missing))
            outcome = await self.upserter.upsert(candidate, run_id, provider_id)
        except ExtractionError as exc:
            LOGGER.warning("Rendering failed for %s: %s", url, exc.reason)
            return UrlResult(url=url, success=False, error=str(exc))
        except Exception as exc:
            LOGGER.exception("Processing %s failed", url)
            return UrlResult(url=url, success=False, error=str(exc) or exc.__class__.__name__)
        return UrlResult(
            url=url,
            success=True,
            record_id=outcome.listing.id,
            created=outcome.created,
        )

    async def run_batch(
        self, urls: Sequence[str], provider_id: Optional[int] = None
    ) -> BatchResult:
        """Scrape ``urls`` in order and record the batch as one scrape run."""

        url_list = validate_batch_urls(urls)
        if provider_id is None:
            provider_id = await asyncio.to_thread(self.ensure_provider)

        run_id = await asyncio.to_thread(self.repository.create_run, provider_id)
        await asyncio.to_thread(
            self.repository.update_run_status,
            run_id,
            status=RUN_RUNNING,
            started_at=utc_now(),
        )
        LOGGER.info("Scrape run %s started for %d URLs", run_id, len(url_list))

        results: List[UrlResult] = []
        deals_found = 0
        deals_new = 0
        try:
            try:
                await self.renderer.open()
            except Exception as exc:
                raise BatchSetupError(f"Could not start the browser: {exc}") from exc

            for index, url in enumerate(url_list):
                if index:
                    await self._sleep(self.settings.request_delay)
                result = await self.process_url(url, run_id, provider_id)
                results.append(result)
                if result.success:
                    deals_found += 1
                    if result.created:
                        deals_new += 1
                await self._record_progress(run_id, deals_found, deals_new)
        except Exception as exc:
            LOGGER.exception("Scrape run %s failed", run_id)
            await asyncio.to_thread(
                self.repository.update_run_status,
                run_id,
                status=RUN_FAILED,
                completed_at=utc_now(),
                error_message=str(exc),
            )
            raise
        finally:
            await self._close_renderer()

        try:
            await asyncio.to_thread(
                self.repository.update_run_status,
                run_id,
                status=RUN_COMPLETED,
                completed_at=utc_now(),
                deals_found=deals_found,
                deals_new=deals_new,
                deals_updated=deals_found - deals_new,
            )
            await asyncio.to_thread(self.repository.touch_provider, provider_id)
        except sqlite3.Error as exc:
            LOGGER.warning("Completing scrape run %s failed: %s", run_id, exc)

        batch = BatchResult(run_id=run_id, results=results)
        LOGGER.info("Scrape run %s completed: %s", run_id, batch.summary)
        return batch

    async def _record_progress(self, run_id: int, deals_found: int, deals_new: int) -> None:
        try:
            await asyncio.to_thread(
                self.repository.update_run_status,
                run_id,
                deals_found=deals_found,
                deals_new=deals_new,
                deals_updated=deals_found - deals_new,
            )
        except sqlite3.Error as exc:
            LOGGER.warning("Recording progress of scrape run %s failed: %s", run_id, exc)

    async def _close_renderer(self) -> None:
        try:
            await self.renderer.close()
        except Exception:
            LOGGER.exception("Releasing the browser failed")


def create_scrape_service(settings: ScraperSettings) -> ScrapeService:
    """Wire the default Playwright renderer and SQLite store together."""

    repository = ListingRepository(settings.database_path)
    renderer = PageRenderer(BrowserManager(settings), settings)
    return ScrapeService(repository, renderer, settings=settings)


def run_batch_sync(
    service: ScrapeService, urls: Sequence[str], provider_id: Optional[int] = None
) -> BatchResult:
    """Run :meth:`ScrapeService.run_batch` from synchronous code."""

    async def runner() -> BatchResult:
        return await service.run_batch(urls, provider_id=provider_id)

    try:
        return asyncio.run(runner())
    except RuntimeError as exc:
        if "asyncio.run() cannot be called" not in str(exc):
            raise
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            return loop.run_until_complete(runner())
        finally:
            asyncio.set_event_loop(None)
            loop.close()
