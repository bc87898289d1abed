"""Tests for the SQLite listing store and the upsert coordinator."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from holiday_deals.models import RUN_COMPLETED, RUN_PENDING, ListingCandidate, ReviewSnippet
from holiday_deals.repository import ListingFilters, ListingRepository
from holiday_deals.upsert import ListingUpserter

URL = "https://www.jet2holidays.com/beach/spain/tenerife/costa-adeje/hotel-la-playa?duration=7"


class FrozenClock:
    """Returns the same instant until moved, to exercise timestamp ordering."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _candidate(url: str = URL, **overrides) -> ListingCandidate:
    values = dict(
        source_url=url,
        title="Hotel La Playa",
        destination_label="Costa Adeje, Tenerife, Spain",
        country="Spain",
        total_price=1478.0,
        departure_date=date(2025, 6, 10),
        return_date=date(2025, 6, 17),
        duration_nights=7,
        board_basis_label="All Inclusive",
        gallery_image_urls=["https://media.jet2.com/1.jpg"],
        amenities=["Pool"],
        review_snippets=[ReviewSnippet("Lovely", 5.0)],
    )
    values.update(overrides)
    return ListingCandidate(**values)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def repository(tmp_path) -> ListingRepository:
    return ListingRepository(str(tmp_path / "deals.db"))


def test_insert_round_trips_listing(repository) -> None:
    stored = repository.insert(_candidate())

    loaded = repository.find_by_url(URL)
    assert loaded is not None
    assert loaded.id == stored.id
    assert loaded.listing.departure_date == date(2025, 6, 10)
    assert loaded.listing.gallery_image_urls == ["https://media.jet2.com/1.jpg"]
    assert loaded.listing.review_snippets == [ReviewSnippet("Lovely", 5.0)]
    assert loaded.created_at == loaded.updated_at


def test_update_keeps_identity_and_advances_timestamp(tmp_path) -> None:
    clock = FrozenClock()
    repository = ListingRepository(str(tmp_path / "deals.db"), clock=clock)
    first = repository.insert(_candidate())

    second = repository.update(first.id, _candidate(total_price=1299.0))

    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.updated_at > first.updated_at
    assert second.listing.total_price == 1299.0


def test_update_unknown_listing_raises(repository) -> None:
    with pytest.raises(LookupError):
        repository.update(999, _candidate())


def test_list_listings_filters_and_paginates(repository) -> None:
    repository.insert(_candidate(url=f"{URL}&a=1", total_price=900.0, country="Spain"))
    repository.insert(_candidate(url=f"{URL}&a=2", total_price=1500.0, country="Spain"))
    repository.insert(_candidate(url=f"{URL}&a=3", total_price=700.0, country="Greece"))

    listings, total = repository.list_listings(
        ListingFilters(country="Spain", sort_by="price", sort_order="asc")
    )
    assert total == 2
    assert [item.listing.total_price for item in listings] == [900.0, 1500.0]

    page, total = repository.list_listings(ListingFilters(limit=1, page=2, sort_by="price", sort_order="asc"))
    assert total == 3
    assert [item.listing.total_price for item in page] == [900.0]

    cheap, _ = repository.list_listings(ListingFilters(max_price=800.0))
    assert [item.listing.country for item in cheap] == ["Greece"]


def test_scrape_run_lifecycle(repository) -> None:
    provider_id = repository.ensure_provider("jet2", "Jet2holidays", "https://www.jet2holidays.com")
    assert repository.ensure_provider("jet2", "Other", "https://other.test") == provider_id

    run_id = repository.create_run(provider_id)
    assert repository.get_run(run_id).status == RUN_PENDING

    finished = datetime(2025, 1, 1, tzinfo=timezone.utc)
    repository.update_run_status(
        run_id, status=RUN_COMPLETED, deals_found=2, deals_new=1, deals_updated=1, completed_at=finished
    )
    run = repository.get_run(run_id)
    assert run.status == RUN_COMPLETED
    assert (run.deals_found, run.deals_new, run.deals_updated) == (2, 1, 1)
    assert run.completed_at == finished
    assert [item.id for item in repository.recent_runs()] == [run_id]

    repository.touch_provider(provider_id)
    assert repository.get_provider(provider_id).last_scraped_at is not None


def test_update_run_status_rejects_unknown_values(repository) -> None:
    run_id = repository.create_run()
    with pytest.raises(ValueError):
        repository.update_run_status(run_id, status="exploded")
    with pytest.raises(ValueError):
        repository.update_run_status(run_id, colour="red")


@pytest.mark.anyio
async def test_upsert_same_url_twice_keeps_one_record(tmp_path) -> None:
    clock = FrozenClock()
    repository = ListingRepository(str(tmp_path / "deals.db"), clock=clock)
    upserter = ListingUpserter(repository)

    first = await upserter.upsert(_candidate())
    clock.now += timedelta(minutes=5)
    second = await upserter.upsert(_candidate(total_price=1350.0))

    assert first.created is True
    assert second.created is False
    assert second.listing.id == first.listing.id
    assert second.listing.updated_at > first.listing.updated_at
    assert second.listing.listing.total_price == 1350.0
    _, total = repository.list_listings()
    assert total == 1


class VanishingRepository(ListingRepository):
    """Loses rows between write and read-back, as a concurrent delete would."""

    def get_listing(self, listing_id):
        return None


def test_insert_raises_when_written_row_cannot_be_read_back(tmp_path) -> None:
    repository = VanishingRepository(str(tmp_path / "deals.db"))

    with pytest.raises(LookupError):
        repository.insert(_candidate())
