"""Decode location and booking parameters encoded in listing URLs."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlparse

# Numeric ids used by the source site in its ``board`` query parameter.
BOARD_BASIS: Dict[int, str] = {
    1: "Bed and Breakfast",
    2: "Half Board",
    3: "Full Board",
    4: "All Inclusive",
    5: "Room Only",
    6: "Self Catering",
}

# Numeric ids used by the source site in its ``airport`` query parameter.
AIRPORTS: Dict[int, str] = {
    1: "BHX",  # Birmingham
    2: "EMA",  # East Midlands
    3: "EDI",  # Edinburgh
    4: "BFS",  # Belfast International
    5: "GLA",  # Glasgow
    6: "LBA",  # Leeds Bradford
    7: "MAN",  # Manchester
    8: "NCL",  # Newcastle
    9: "STN",  # London Stansted
}

_DATE_FORMAT = "%d-%m-%Y"

MAX_DURATION_NIGHTS = 365


@dataclass
class DecodedListingUrl:
    """Everything that can be learned about a listing from its URL alone."""

    url: str
    country: Optional[str] = None
    destination_area: Optional[str] = None
    resort: Optional[str] = None
    airport_code: Optional[str] = None
    board_basis_label: Optional[str] = None
    departure_date_raw: Optional[str] = None
    duration_raw: Optional[str] = None
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def departure_date(self) -> Optional[date]:
        return parse_departure_date(self.departure_date_raw)

    @property
    def duration_nights(self) -> Optional[int]:
        return parse_duration(self.duration_raw)

    def location_dict(self) -> Dict[str, Optional[str]]:
        return {
            "country": self.country,
            "destination": self.destination_area,
            "resort": self.resort,
        }


def _title_case_segment(segment: str) -> Optional[str]:
    words = [word for word in segment.strip().split("-") if word]
    if not words:
        return None
    return " ".join(word[:1].upper() + word[1:] for word in words)


def _lookup_code(raw: Optional[str], table: Dict[int, str]) -> Optional[str]:
    if not raw:
        return None
    try:
        return table.get(int(raw.strip()))
    except ValueError:
        return None


def parse_departure_date(value: str | None) -> Optional[date]:
    """Parse the ``dd-mm-yyyy`` date used in listing URLs."""

    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), _DATE_FORMAT).date()
    except ValueError:
        return None


def parse_duration(value: str | None) -> Optional[int]:
    """Parse a duration in nights; only integers from 1 to 365 are accepted."""

    if not value:
        return None
    try:
        nights = int(value.strip())
    except ValueError:
        return None
    return nights if 0 < nights <= MAX_DURATION_NIGHTS else None


def board_basis_for_code(code: int | str | None) -> Optional[str]:
    """Return the catering label for a numeric board id, or ``None``."""

    if code is None:
        return None
    return _lookup_code(str(code), BOARD_BASIS)


def airport_for_code(code: int | str | None) -> Optional[str]:
    """Return the IATA code for a numeric airport id, or ``None``."""

    if code is None:
        return None
    return _lookup_code(str(code), AIRPORTS)


def decode_listing_url(url: str) -> DecodedListingUrl:
    """Split a listing URL into location labels and booking parameters.

    Path segments follow a fixed layout such as
    ``/beach/spain/tenerife/costa-adeje/hotel-name``: the second segment is the
    country, the third the destination area and the fourth (when present) the
    resort. Missing or malformed pieces are returned as ``None``; this function
    never raises for a URL it cannot make sense of.
    """

    try:
        parsed = urlparse(url)
    except ValueError:
        return DecodedListingUrl(url=url)

    decoded = DecodedListingUrl(url=url)

    segments = [segment for segment in parsed.path.split("/") if segment]
    if len(segments) >= 3:
        decoded.country = _title_case_segment(segments[1])
        decoded.destination_area = _title_case_segment(segments[2])
        if len(segments) >= 4:
            decoded.resort = _title_case_segment(segments[3])

    params: Dict[str, str] = {}
    for key, value in parse_qsl(parsed.query, keep_blank_values=False):
        params.setdefault(key, value)
    decoded.params = params

    decoded.airport_code = _lookup_code(params.get("airport"), AIRPORTS)
    decoded.board_basis_label = _lookup_code(params.get("board"), BOARD_BASIS)
    decoded.departure_date_raw = params.get("date") or None
    decoded.duration_raw = params.get("duration") or None
    return decoded
