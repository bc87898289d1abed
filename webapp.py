"""Flask based JSON API for scraping and browsing holiday deals."""
from __future__ import annotations

import asyncio
from datetime import date
import logging
import math
import threading
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from flask import Flask, jsonify, request

from holiday_deals import (
    BatchSetupError,
    InvalidBatchError,
    ListingCandidate,
    ListingFilters,
    ListingRepository,
    ScrapeService,
    load_settings,
    run_batch_sync,
)
from holiday_deals.renderer import BrowserManager, PageRenderer
from holiday_deals.repository import MAX_PAGE_SIZE
from holiday_deals.upsert import ListingUpserter
from holiday_deals.url_decoder import BOARD_BASIS

LOGGER = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

app = Flask(__name__)

settings = load_settings()
repository = ListingRepository(settings.database_path)
scrape_service = ScrapeService(
    repository, PageRenderer(BrowserManager(settings), settings), settings=settings
)
# The shared browser handle serves one batch at a time.
_scrape_lock = threading.Lock()


def _error(message: str, status: int, details: Any = None):
    payload: Dict[str, Any] = {"success": False, "error": message}
    if details is not None:
        payload["details"] = details
    return jsonify(payload), status


def _query_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _query_float(name: str) -> Optional[float]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


@app.route("/api/scrape", methods=["POST"])
def scrape():
    payload = request.get_json(silent=True) or {}
    urls = payload.get("urls") if isinstance(payload, dict) else None
    provider_id = payload.get("providerId") if isinstance(payload, dict) else None
    if provider_id is not None and (isinstance(provider_id, bool) or not isinstance(provider_id, int)):
        return _error("Invalid request", 400, [{"field": "providerId", "message": "must be an integer"}])
    if not isinstance(urls, list):
        return _error("Invalid request", 400, [{"field": "urls", "message": "must be a list of URLs"}])

    with _scrape_lock:
        try:
            batch = run_batch_sync(scrape_service, urls, provider_id=provider_id)
        except InvalidBatchError as exc:
            return _error("Invalid request", 400, [{"field": "urls", "message": str(exc)}])
        except BatchSetupError as exc:
            LOGGER.error("Scrape batch could not start: %s", exc)
            return _error("Scraping failed", 500, str(exc))

    return jsonify({"success": True, **batch.to_dict()})


@app.route("/api/scrape", methods=["GET"])
def scrape_status():
    job_id = request.args.get("jobId")
    if job_id:
        try:
            run = repository.get_run(int(job_id))
        except ValueError:
            return _error("Invalid job ID", 400)
        if run is None:
            return _error("Job not found", 404)
        return jsonify({"success": True, "data": run.to_dict()})

    runs = repository.recent_runs(limit=10)
    return jsonify({"success": True, "data": [run.to_dict() for run in runs]})


@app.route("/api/deals")
def list_deals():
    page = max(1, _query_int("page", 1) or 1)
    limit = max(1, min(_query_int("limit", 20) or 20, MAX_PAGE_SIZE))
    filters = ListingFilters(
        page=page,
        limit=limit,
        destination=request.args.get("destination") or None,
        country=request.args.get("country") or None,
        min_price=_query_float("minPrice"),
        max_price=_query_float("maxPrice"),
        departure_airport=request.args.get("airport") or None,
        board_basis=request.args.get("board") or None,
        min_duration=_query_int("minDuration"),
        max_duration=_query_int("maxDuration"),
        sort_by=request.args.get("sortBy", "createdAt"),
        sort_order=request.args.get("sortOrder", "desc"),
    )
    listings, total = repository.list_listings(filters)
    total_pages = math.ceil(total / limit) if total else 0
    return jsonify(
        {
            "success": True,
            "data": [listing.to_dict() for listing in listings],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": total_pages,
                "hasMore": page < total_pages,
            },
        }
    )


@app.route("/api/deals/<deal_id>")
def get_deal(deal_id: str):
    try:
        listing_id = int(deal_id)
    except ValueError:
        return _error("Invalid deal ID", 400)

    stored = repository.get_listing(listing_id)
    if stored is None:
        return _error("Deal not found", 404)

    data = stored.to_dict()
    provider = repository.get_provider(stored.provider_id) if stored.provider_id else None
    data["provider"] = provider.to_dict() if provider else None
    return jsonify({"success": True, "data": data})


_OPTIONAL_TEXT_FIELDS = (
    "country",
    "resort",
    "currency",
    "departureAirport",
    "hotelName",
    "boardBasis",
    "description",
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_absolute_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _parse_manual_deal(payload: Dict[str, Any]) -> Tuple[Optional[ListingCandidate], List[Dict[str, str]]]:
    """Validate a manually entered deal and build its candidate."""

    issues: List[Dict[str, str]] = []

    def issue(field: str, message: str) -> None:
        issues.append({"field": field, "message": message})

    for name in ("title", "destination"):
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            issue(name, "is required")
    if not _is_number(payload.get("price")) or payload["price"] <= 0:
        issue("price", "must be a positive number")
    if not _is_absolute_url(payload.get("url")):
        issue("url", "must be an absolute URL")

    for name in ("pricePerPerson", "originalPrice"):
        value = payload.get(name)
        if value is not None and (not _is_number(value) or value <= 0):
            issue(name, "must be a positive number")
    for name in ("hotelRating", "reviewScore"):
        value = payload.get(name)
        if value is not None and (not _is_number(value) or not 0 <= value <= 5):
            issue(name, "must be between 0 and 5")
    for name in ("duration", "reviewCount"):
        value = payload.get(name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            issue(name, "must be a non-negative integer")
    if payload.get("duration") == 0:
        issue("duration", "must be a positive integer")
    for name in _OPTIONAL_TEXT_FIELDS:
        value = payload.get(name)
        if value is not None and not isinstance(value, str):
            issue(name, "must be a string")
    board_basis = payload.get("boardBasis")
    if isinstance(board_basis, str) and board_basis not in BOARD_BASIS.values():
        issue("boardBasis", f"must be one of: {', '.join(BOARD_BASIS.values())}")
    image_url = payload.get("imageUrl")
    if image_url is not None and not _is_absolute_url(image_url):
        issue("imageUrl", "must be an absolute URL")

    dates: Dict[str, Optional[date]] = {}
    for name in ("departureDate", "returnDate"):
        value = payload.get(name)
        dates[name] = None
        if value is None:
            continue
        try:
            dates[name] = date.fromisoformat(str(value))
        except ValueError:
            issue(name, "must be an ISO date (YYYY-MM-DD)")

    if issues:
        return None, issues

    candidate = ListingCandidate(
        source_url=payload["url"],
        title=payload["title"].strip(),
        destination_label=payload["destination"].strip(),
        country=payload.get("country"),
        resort=payload.get("resort"),
        total_price=float(payload["price"]),
        price_per_person=payload.get("pricePerPerson"),
        original_price=payload.get("originalPrice"),
        currency=payload.get("currency") or settings.currency,
        departure_airport_code=payload.get("departureAirport"),
        departure_date=dates["departureDate"],
        return_date=dates["returnDate"],
        duration_nights=payload.get("duration"),
        hotel_name=payload.get("hotelName"),
        hotel_star_rating=payload.get("hotelRating"),
        board_basis_label=payload.get("boardBasis"),
        primary_image_url=image_url,
        description=payload.get("description"),
        review_score=payload.get("reviewScore"),
        review_count=payload.get("reviewCount"),
    )
    return candidate, []


@app.route("/api/deals/manual", methods=["POST"])
def create_manual_deal():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("Invalid deal data", 400, [{"field": "body", "message": "must be a JSON object"}])

    candidate, issues = _parse_manual_deal(payload)
    if candidate is None:
        return _error("Invalid deal data", 400, issues)

    provider_id = scrape_service.ensure_provider()
    outcome = asyncio.run(ListingUpserter(repository).upsert(candidate, provider_id=provider_id))
    return jsonify(
        {
            "success": True,
            "message": "Deal created" if outcome.created else "Deal updated",
            "dealId": outcome.listing.id,
        }
    )


if __name__ == "__main__":
    app.run(debug=True)
