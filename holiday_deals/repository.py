"""SQLite-backed persistence for listings, scrape runs and providers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
import json
from pathlib import Path
import sqlite3
from typing import Any, Callable, List, Optional, Tuple

from .models import (
    RUN_PENDING,
    RUN_STATUSES,
    ListingCandidate,
    Provider,
    ReviewSnippet,
    ScrapeRun,
    StoredListing,
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS providers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        base_url TEXT NOT NULL,
        logo_url TEXT,
        departure_airport TEXT,
        active INTEGER NOT NULL DEFAULT 1,
        last_scraped_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scrape_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        provider_id INTEGER REFERENCES providers(id),
        status TEXT NOT NULL DEFAULT 'pending',
        deals_found INTEGER NOT NULL DEFAULT 0,
        deals_new INTEGER NOT NULL DEFAULT 0,
        deals_updated INTEGER NOT NULL DEFAULT 0,
        started_at TEXT,
        completed_at TEXT,
        error_message TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deals (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        provider_id INTEGER REFERENCES providers(id),
        title TEXT NOT NULL,
        destination TEXT NOT NULL,
        country TEXT,
        destination_area TEXT,
        resort TEXT,
        price REAL NOT NULL,
        price_per_person REAL,
        original_price REAL,
        currency TEXT DEFAULT 'GBP',
        departure_airport TEXT,
        departure_date TEXT,
        return_date TEXT,
        duration INTEGER,
        hotel_name TEXT,
        hotel_rating REAL,
        board_basis TEXT,
        image_url TEXT,
        images TEXT,
        url TEXT NOT NULL,
        description TEXT,
        amenities TEXT,
        review_score REAL,
        review_count INTEGER,
        reviews TEXT,
        raw_data TEXT,
        scrape_job_id INTEGER REFERENCES scrape_runs(id),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS deals_url_idx ON deals (url)",
)

_LISTING_COLUMNS = (
    "title",
    "destination",
    "country",
    "destination_area",
    "resort",
    "price",
    "price_per_person",
    "original_price",
    "currency",
    "departure_airport",
    "departure_date",
    "return_date",
    "duration",
    "hotel_name",
    "hotel_rating",
    "board_basis",
    "image_url",
    "images",
    "url",
    "description",
    "amenities",
    "review_score",
    "review_count",
    "reviews",
    "raw_data",
)

_RUN_FIELDS = {
    "status",
    "deals_found",
    "deals_new",
    "deals_updated",
    "started_at",
    "completed_at",
    "error_message",
}

SORT_COLUMNS = {
    "price": "price",
    "pricePerPerson": "price_per_person",
    "duration": "duration",
    "departureDate": "departure_date",
    "hotelRating": "hotel_rating",
    "createdAt": "created_at",
}

MAX_PAGE_SIZE = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: date | datetime | None) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _datetime(value: str | None) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _date(value: str | None) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _json_list(value: str | None) -> List[Any]:
    if not value:
        return []
    loaded = json.loads(value)
    return loaded if isinstance(loaded, list) else []


@dataclass
class ListingFilters:
    """Browsing filters accepted by :meth:`ListingRepository.list_listings`."""

    page: int = 1
    limit: int = 20
    destination: Optional[str] = None
    country: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    departure_airport: Optional[str] = None
    board_basis: Optional[str] = None
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"

    def where_clause(self) -> Tuple[str, List[Any]]:
        conditions: List[str] = []
        params: List[Any] = []
        if self.destination:
            conditions.append("destination LIKE ?")
            params.append(f"%{self.destination}%")
        if self.country:
            conditions.append("country = ?")
            params.append(self.country)
        if self.min_price is not None:
            conditions.append("price >= ?")
            params.append(self.min_price)
        if self.max_price is not None:
            conditions.append("price <= ?")
            params.append(self.max_price)
        if self.departure_airport:
            conditions.append("departure_airport = ?")
            params.append(self.departure_airport)
        if self.board_basis:
            conditions.append("board_basis = ?")
            params.append(self.board_basis)
        if self.min_duration is not None:
            conditions.append("duration >= ?")
            params.append(self.min_duration)
        if self.max_duration is not None:
            conditions.append("duration <= ?")
            params.append(self.max_duration)
        if not conditions:
            return "", params
        return "WHERE " + " AND ".join(conditions), params


class ListingRepository:
    """SQLite persistence for :class:`StoredListing` and :class:`ScrapeRun` records."""

    def __init__(self, database: str, clock: Callable[[], datetime] = utc_now) -> None:
        self.database = database
        self._clock = clock
        db_path = Path(database)
        if db_path.parent and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.database)
        connection.row_factory = sqlite3.Row
        return connection

    def _ensure_schema(self) -> None:
        with self._connect() as connection:
            for statement in _SCHEMA:
                connection.execute(statement)

    # -- listings ------------------------------------------------------------

    @staticmethod
    def _listing_values(candidate: ListingCandidate) -> Tuple[Any, ...]:
        return (
            candidate.title,
            candidate.destination_label,
            candidate.country,
            candidate.destination_area,
            candidate.resort,
            candidate.total_price,
            candidate.price_per_person,
            candidate.original_price,
            candidate.currency,
            candidate.departure_airport_code,
            _iso(candidate.departure_date),
            _iso(candidate.return_date),
            candidate.duration_nights,
            candidate.hotel_name,
            candidate.hotel_star_rating,
            candidate.board_basis_label,
            candidate.primary_image_url,
            json.dumps(candidate.gallery_image_urls),
            candidate.source_url,
            candidate.description,
            json.dumps(candidate.amenities),
            candidate.review_score,
            candidate.review_count,
            json.dumps([review.to_dict() for review in candidate.review_snippets]),
            candidate.raw_extraction,
        )

    @staticmethod
    def _row_to_listing(row: sqlite3.Row) -> StoredListing:
        candidate = ListingCandidate(
            source_url=row["url"],
            title=row["title"],
            destination_label=row["destination"],
            country=row["country"],
            destination_area=row["destination_area"],
            resort=row["resort"],
            total_price=row["price"],
            price_per_person=row["price_per_person"],
            original_price=row["original_price"],
            currency=row["currency"] or "GBP",
            departure_airport_code=row["departure_airport"],
            departure_date=_date(row["departure_date"]),
            return_date=_date(row["return_date"]),
            duration_nights=row["duration"],
            hotel_name=row["hotel_name"],
            hotel_star_rating=row["hotel_rating"],
            board_basis_label=row["board_basis"],
            primary_image_url=row["image_url"],
            gallery_image_urls=_json_list(row["images"]),
            description=row["description"],
            amenities=_json_list(row["amenities"]),
            review_score=row["review_score"],
            review_count=row["review_count"],
            review_snippets=[ReviewSnippet.from_dict(item) for item in _json_list(row["reviews"])],
            raw_extraction=row["raw_data"],
        )
        return StoredListing(
            id=row["id"],
            listing=candidate,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            scrape_run_id=row["scrape_job_id"],
            provider_id=row["provider_id"],
        )

    def find_by_url(self, url: str) -> Optional[StoredListing]:
        with self._connect() as connection:
            row = connection.execute("SELECT * FROM deals WHERE url = ?", (url,)).fetchone()
        return self._row_to_listing(row) if row else None

    def get_listing(self, listing_id: int) -> Optional[StoredListing]:
        with self._connect() as connection:
            row = connection.execute("SELECT * FROM deals WHERE id = ?", (listing_id,)).fetchone()
        return self._row_to_listing(row) if row else None

    def insert(
        self,
        candidate: ListingCandidate,
        scrape_run_id: Optional[int] = None,
        provider_id: Optional[int] = None,
    ) -> StoredListing:
        now = self._clock().isoformat()
        columns = _LISTING_COLUMNS + ("provider_id", "scrape_job_id", "created_at", "updated_at")
        placeholders = ", ".join("?" for _ in columns)
        payload = self._listing_values(candidate) + (provider_id, scrape_run_id, now, now)
        with self._connect() as connection:
            cursor = connection.execute(
                f"INSERT INTO deals ({', '.join(columns)}) VALUES ({placeholders})",
                payload,
            )
            listing_id = cursor.lastrowid
        stored = self.get_listing(listing_id)
        if stored is None:
            raise LookupError(f"Listing {listing_id} disappeared after being written")
        return stored

    def update(self, listing_id: int, candidate: ListingCandidate) -> StoredListing:
        """Overwrite the mutable fields of a listing, keeping identity and creation time."""

        existing = self.get_listing(listing_id)
        if existing is None:
            raise LookupError(f"Listing {listing_id} does not exist")
        updated_at = self._clock()
        if updated_at <= existing.updated_at:
            updated_at = existing.updated_at + timedelta(microseconds=1)
        assignments = ", ".join(f"{column} = ?" for column in _LISTING_COLUMNS)
        payload = self._listing_values(candidate) + (updated_at.isoformat(), listing_id)
        with self._connect() as connection:
            connection.execute(
                f"UPDATE deals SET {assignments}, updated_at = ? WHERE id = ?",
                payload,
            )
        stored = self.get_listing(listing_id)
        if stored is None:
            raise LookupError(f"Listing {listing_id} disappeared after being written")
        return stored

    def list_listings(self, filters: ListingFilters | None = None) -> Tuple[List[StoredListing], int]:
        filters = filters or ListingFilters()
        where, params = filters.where_clause()
        sort_column = SORT_COLUMNS.get(filters.sort_by, "created_at")
        direction = "ASC" if filters.sort_order == "asc" else "DESC"
        limit = max(1, min(filters.limit, MAX_PAGE_SIZE))
        offset = (max(1, filters.page) - 1) * limit
        with self._connect() as connection:
            rows = connection.execute(
                f"SELECT * FROM deals {where} ORDER BY {sort_column} {direction}, id {direction} "
                "LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            total = connection.execute(f"SELECT COUNT(*) FROM deals {where}", params).fetchone()[0]
        return [self._row_to_listing(row) for row in rows], int(total)

    # -- scrape runs ---------------------------------------------------------

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> ScrapeRun:
        return ScrapeRun(
            id=row["id"],
            provider_id=row["provider_id"],
            status=row["status"],
            deals_found=row["deals_found"],
            deals_new=row["deals_new"],
            deals_updated=row["deals_updated"],
            started_at=_datetime(row["started_at"]),
            completed_at=_datetime(row["completed_at"]),
            error_message=row["error_message"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def create_run(self, provider_id: Optional[int] = None) -> int:
        with self._connect() as connection:
            cursor = connection.execute(
                "INSERT INTO scrape_runs (provider_id, status, created_at) VALUES (?, ?, ?)",
                (provider_id, RUN_PENDING, self._clock().isoformat()),
            )
            return int(cursor.lastrowid)

    def update_run_status(self, run_id: int, **fields: Any) -> None:
        unknown = set(fields) - _RUN_FIELDS
        if unknown:
            raise ValueError(f"Unknown scrape run fields: {', '.join(sorted(unknown))}")
        if "status" in fields and fields["status"] not in RUN_STATUSES:
            raise ValueError(f"Unknown scrape run status: {fields['status']}")
        if not fields:
            return
        values = [
            value.isoformat() if isinstance(value, datetime) else value
            for value in fields.values()
        ]
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._connect() as connection:
            connection.execute(
                f"UPDATE scrape_runs SET {assignments} WHERE id = ?",
                (*values, run_id),
            )

    def get_run(self, run_id: int) -> Optional[ScrapeRun]:
        with self._connect() as connection:
            row = connection.execute("SELECT * FROM scrape_runs WHERE id = ?", (run_id,)).fetchone()
        return self._row_to_run(row) if row else None

    def recent_runs(self, limit: int = 10) -> List[ScrapeRun]:
        with self._connect() as connection:
            rows = connection.execute(
                "SELECT * FROM scrape_runs ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_run(row) for row in rows]

    # -- providers -----------------------------------------------------------

    @staticmethod
    def _row_to_provider(row: sqlite3.Row) -> Provider:
        return Provider(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            base_url=row["base_url"],
            logo_url=row["logo_url"],
            departure_airport=row["departure_airport"],
            active=bool(row["active"]),
            last_scraped_at=_datetime(row["last_scraped_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def ensure_provider(
        self,
        slug: str,
        name: str,
        base_url: str,
        logo_url: Optional[str] = None,
        departure_airport: Optional[str] = None,
    ) -> int:
        """Return the id of the provider with ``slug``, creating it when missing."""

        with self._connect() as connection:
            row = connection.execute("SELECT id FROM providers WHERE slug = ?", (slug,)).fetchone()
            if row:
                return int(row["id"])
            cursor = connection.execute(
                """
                INSERT INTO providers (name, slug, base_url, logo_url, departure_airport, active, created_at)
                VALUES (?, ?, ?, ?, ?, 1, ?)
                """,
                (name, slug, base_url, logo_url, departure_airport, self._clock().isoformat()),
            )
            return int(cursor.lastrowid)

    def get_provider(self, provider_id: int) -> Optional[Provider]:
        with self._connect() as connection:
            row = connection.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        return self._row_to_provider(row) if row else None

    def touch_provider(self, provider_id: int) -> None:
        with self._connect() as connection:
            connection.execute(
                "UPDATE providers SET last_scraped_at = ? WHERE id = ?",
                (self._clock().isoformat(), provider_id),
            )
