"""Insert-or-update of validated listings keyed by their canonical URL."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Optional, Protocol

from .models import ListingCandidate, StoredListing

LOGGER = logging.getLogger(__name__)


class ListingStore(Protocol):
    """The subset of the repository the upsert coordinator relies on."""

    def find_by_url(self, url: str) -> Optional[StoredListing]:
        ...

    def insert(
        self,
        candidate: ListingCandidate,
        scrape_run_id: Optional[int] = None,
        provider_id: Optional[int] = None,
    ) -> StoredListing:
        ...

    def update(self, listing_id: int, candidate: ListingCandidate) -> StoredListing:
        ...


@dataclass
class UpsertOutcome:
    listing: StoredListing
    created: bool


class ListingUpserter:
    """Keep at most one stored listing per source URL.

    Lookup and write are two separate store calls; callers process one URL at
    a time per batch so no locking is applied here.
    """

    def __init__(self, store: ListingStore) -> None:
        self.store = store

    async def upsert(
        self,
        candidate: ListingCandidate,
        scrape_run_id: Optional[int] = None,
        provider_id: Optional[int] = None,
    ) -> UpsertOutcome:
        existing = await asyncio.to_thread(self.store.find_by_url, candidate.source_url)
        if existing is not None:
            listing = await asyncio.to_thread(self.store.update, existing.id, candidate)
            LOGGER.info("Updated listing %s for %s", listing.id, candidate.source_url)
            return UpsertOutcome(listing=listing, created=False)

        listing = await asyncio.to_thread(
            self.store.insert, candidate, scrape_run_id, provider_id
        )
        LOGGER.info("Inserted listing %s for %s", listing.id, candidate.source_url)
        return UpsertOutcome(listing=listing, created=True)
