"""Merge URL-derived and page-derived signals into one listing candidate."""
from __future__ import annotations

from datetime import date, timedelta
import json
import math
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from .config import ScraperSettings
from .models import ExtractedSignals, ListingCandidate, ReviewSnippet
from .sources.extraction_common import clean_text, unique_preserving_order
from .sources.listing_page import MAX_AMENITIES, MAX_GALLERY_IMAGES, MAX_REVIEWS
from .url_decoder import DecodedListingUrl

UNKNOWN_DESTINATION = "Unknown"


def compute_return_date(departure: date | None, nights: int | None) -> Optional[date]:
    if departure is None or nights is None:
        return None
    try:
        return departure + timedelta(days=nights)
    except OverflowError:
        return None


def build_destination_label(
    resort: str | None, destination_area: str | None, country: str | None
) -> str:
    """Join the known location parts from most to least specific."""

    parts = [part for part in (resort, destination_area, country) if part]
    if parts:
        return ", ".join(parts)
    return country or UNKNOWN_DESTINATION


def make_absolute_url(url: str | None, base_url: str) -> Optional[str]:
    if not url:
        return None
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith(("http://", "https://")):
        return url
    return urljoin(base_url.rstrip("/") + "/", url)


def _absolute_urls(urls: Iterable[str], base_url: str, limit: int) -> List[str]:
    return unique_preserving_order(
        (make_absolute_url(url, base_url) for url in urls), limit=limit
    )


def _bounded(value: float | None, upper: float) -> Optional[float]:
    if value is None or math.isnan(value) or value < 0 or value > upper:
        return None
    return value


def _positive(value: float | None) -> Optional[float]:
    if value is None or math.isnan(value) or value <= 0:
        return None
    return value


def _reviews(snippets: Iterable[ReviewSnippet]) -> List[ReviewSnippet]:
    unique: List[ReviewSnippet] = []
    seen = set()
    for snippet in snippets:
        if not snippet.text or snippet.text in seen:
            continue
        seen.add(snippet.text)
        unique.append(ReviewSnippet(text=snippet.text, rating=_bounded(snippet.rating, 5.0)))
        if len(unique) >= MAX_REVIEWS:
            break
    return unique


def reconcile(
    decoded: DecodedListingUrl,
    signals: ExtractedSignals,
    settings: ScraperSettings | None = None,
) -> ListingCandidate:
    """Build the :class:`ListingCandidate` for one scraped URL.

    The live page is trusted for the board basis, with the URL's board code as
    a fallback. Airport, dates and duration come from the URL only.
    """

    settings = settings or ScraperSettings()
    departure_date = decoded.departure_date
    duration = decoded.duration_nights
    hotel_name = clean_text(signals.hotel_name) or None
    review_count = signals.review_count
    if review_count is not None and review_count < 0:
        review_count = None

    raw_extraction = json.dumps(
        {
            "params": decoded.params,
            "location": decoded.location_dict(),
            "signals": signals.to_dict(),
        },
        default=str,
        sort_keys=True,
    )

    return ListingCandidate(
        source_url=decoded.url,
        title=hotel_name,
        destination_label=build_destination_label(
            decoded.resort, decoded.destination_area, decoded.country
        ),
        country=decoded.country,
        destination_area=decoded.destination_area,
        resort=decoded.resort,
        total_price=signals.total_price,
        price_per_person=_positive(signals.price_per_person),
        original_price=_positive(signals.original_price),
        currency=settings.currency,
        departure_airport_code=decoded.airport_code,
        departure_date=departure_date,
        return_date=compute_return_date(departure_date, duration),
        duration_nights=duration,
        hotel_name=hotel_name,
        hotel_star_rating=_bounded(signals.star_rating, 5.0),
        board_basis_label=signals.board_basis or decoded.board_basis_label,
        primary_image_url=make_absolute_url(signals.image_url, settings.base_url),
        gallery_image_urls=_absolute_urls(
            signals.gallery_images, settings.base_url, MAX_GALLERY_IMAGES
        ),
        description=clean_text(signals.description) or None,
        amenities=unique_preserving_order(
            (clean_text(item) for item in signals.amenities), limit=MAX_AMENITIES
        ),
        review_score=_bounded(signals.review_score, 5.0),
        review_count=review_count,
        review_snippets=_reviews(signals.reviews),
        raw_extraction=raw_extraction,
    )
