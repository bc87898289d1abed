"""Holiday listing ingestion: render, extract, reconcile, validate and store."""
from .config import ScraperSettings, load_settings
from .errors import BatchSetupError, ExtractionError, InvalidBatchError
from .models import BatchResult, ListingCandidate, ScrapeRun, StoredListing, UrlResult
from .repository import ListingFilters, ListingRepository
from .workflow import ScrapeService, create_scrape_service, run_batch_sync

__all__ = [
    "BatchResult",
    "BatchSetupError",
    "ExtractionError",
    "InvalidBatchError",
    "ListingCandidate",
    "ListingFilters",
    "ListingRepository",
    "ScrapeRun",
    "ScrapeService",
    "ScraperSettings",
    "StoredListing",
    "UrlResult",
    "create_scrape_service",
    "load_settings",
    "run_batch_sync",
]
