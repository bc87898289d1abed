"""Shared data structures used across extraction, reconciliation and storage."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

RUN_PENDING = "pending"
RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
RUN_STATUSES = (RUN_PENDING, RUN_RUNNING, RUN_COMPLETED, RUN_FAILED)


def _iso(value: date | datetime | None) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class ReviewSnippet:
    """A single guest review harvested from a listing page."""

    text: str
    rating: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"rating": self.rating, "text": self.text}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ReviewSnippet":
        rating = payload.get("rating")
        return cls(text=str(payload.get("text") or ""), rating=float(rating) if rating is not None else None)


@dataclass
class ExtractedSignals:
    """Raw signals pulled from a rendered listing page, not yet validated."""

    hotel_name: Optional[str] = None
    image_url: Optional[str] = None
    star_rating: Optional[float] = None
    description: Optional[str] = None
    amenities: List[str] = field(default_factory=list)
    review_score: Optional[float] = None
    review_count: Optional[int] = None
    reviews: List[ReviewSnippet] = field(default_factory=list)
    gallery_images: List[str] = field(default_factory=list)
    total_price: Optional[float] = None
    price_per_person: Optional[float] = None
    original_price: Optional[float] = None
    board_basis: Optional[str] = None
    page_title: Optional[str] = None
    json_ld_found: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hotel_name": self.hotel_name,
            "image_url": self.image_url,
            "star_rating": self.star_rating,
            "description": self.description,
            "amenities": list(self.amenities),
            "review_score": self.review_score,
            "review_count": self.review_count,
            "reviews": [review.to_dict() for review in self.reviews],
            "gallery_images": list(self.gallery_images),
            "total_price": self.total_price,
            "price_per_person": self.price_per_person,
            "original_price": self.original_price,
            "board_basis": self.board_basis,
            "page_title": self.page_title,
            "json_ld_found": self.json_ld_found,
        }


@dataclass
class ListingCandidate:
    """Normalised holiday listing produced by one scrape attempt."""

    source_url: str
    title: Optional[str] = None
    destination_label: str = "Unknown"
    country: Optional[str] = None
    destination_area: Optional[str] = None
    resort: Optional[str] = None
    total_price: Optional[float] = None
    price_per_person: Optional[float] = None
    original_price: Optional[float] = None
    currency: str = "GBP"
    departure_airport_code: Optional[str] = None
    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    duration_nights: Optional[int] = None
    hotel_name: Optional[str] = None
    hotel_star_rating: Optional[float] = None
    board_basis_label: Optional[str] = None
    primary_image_url: Optional[str] = None
    gallery_image_urls: List[str] = field(default_factory=list)
    description: Optional[str] = None
    amenities: List[str] = field(default_factory=list)
    review_score: Optional[float] = None
    review_count: Optional[int] = None
    review_snippets: List[ReviewSnippet] = field(default_factory=list)
    raw_extraction: Optional[str] = None

    @property
    def savings(self) -> Optional[float]:
        if self.original_price is None or self.total_price is None:
            return None
        if self.original_price <= self.total_price:
            return None
        return self.original_price - self.total_price

    def to_dict(self) -> Dict[str, Any]:
        """Return the listing using the field names of the public deals API."""

        return {
            "title": self.title,
            "destination": self.destination_label,
            "country": self.country,
            "resort": self.resort,
            "price": self.total_price,
            "pricePerPerson": self.price_per_person,
            "originalPrice": self.original_price,
            "savings": self.savings,
            "currency": self.currency,
            "departureAirport": self.departure_airport_code,
            "departureDate": _iso(self.departure_date),
            "returnDate": _iso(self.return_date),
            "duration": self.duration_nights,
            "hotelName": self.hotel_name,
            "hotelRating": self.hotel_star_rating,
            "boardBasis": self.board_basis_label,
            "imageUrl": self.primary_image_url,
            "images": list(self.gallery_image_urls),
            "url": self.source_url,
            "description": self.description,
            "amenities": list(self.amenities),
            "reviewScore": self.review_score,
            "reviewCount": self.review_count,
            "reviews": [review.to_dict() for review in self.review_snippets],
        }


@dataclass
class StoredListing:
    """A persisted listing: a candidate plus its store identity and timestamps."""

    id: int
    listing: ListingCandidate
    created_at: datetime
    updated_at: datetime
    scrape_run_id: Optional[int] = None
    provider_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "providerId": self.provider_id}
        payload.update(self.listing.to_dict())
        payload["rawData"] = self.listing.raw_extraction
        payload["scrapeJobId"] = self.scrape_run_id
        payload["createdAt"] = self.created_at.isoformat()
        payload["updatedAt"] = self.updated_at.isoformat()
        return payload


@dataclass
class Provider:
    """A travel site the scraper collects listings from."""

    id: int
    name: str
    slug: str
    base_url: str
    created_at: datetime
    logo_url: Optional[str] = None
    departure_airport: Optional[str] = None
    active: bool = True
    last_scraped_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "baseUrl": self.base_url,
            "logoUrl": self.logo_url,
            "departureAirport": self.departure_airport,
            "active": self.active,
            "lastScrapedAt": _iso(self.last_scraped_at),
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class ScrapeRun:
    """Audit record for one batch of scraped URLs."""

    id: int
    status: str
    created_at: datetime
    provider_id: Optional[int] = None
    deals_found: int = 0
    deals_new: int = 0
    deals_updated: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "providerId": self.provider_id,
            "status": self.status,
            "dealsFound": self.deals_found,
            "dealsNew": self.deals_new,
            "dealsUpdated": self.deals_updated,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "errorMessage": self.error_message,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class UrlResult:
    """Outcome of processing one URL within a batch."""

    url: str
    success: bool
    record_id: Optional[int] = None
    error: Optional[str] = None
    created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"url": self.url, "success": self.success}
        if self.record_id is not None:
            payload["recordId"] = self.record_id
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class BatchResult:
    """Result returned by :meth:`holiday_deals.workflow.ScrapeService.run_batch`."""

    run_id: int
    results: List[UrlResult]

    @property
    def summary(self) -> Dict[str, int]:
        successful = sum(1 for result in self.results if result.success)
        return {
            "total": len(self.results),
            "successful": successful,
            "failed": len(self.results) - successful,
            "newRecords": sum(1 for result in self.results if result.success and result.created),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.run_id,
            "summary": self.summary,
            "results": [result.to_dict() for result in self.results],
        }
