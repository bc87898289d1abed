"""Reusable parsing helpers shared by listing-page extraction strategies."""
from __future__ import annotations

import json
import math
import re
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, TypeVar

from bs4 import BeautifulSoup, Tag

T = TypeVar("T")

Strategy = Callable[[Any], Optional[T]]

AMOUNT_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")
RATING_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Largest value an SQLite INTEGER column holds.
MAX_COUNT = 2**63 - 1


def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace and trim the result."""

    if not text:
        return ""
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def parse_price_from_text(text: str | None) -> Optional[float]:
    """Extract a numeric price such as ``£1,234`` -> ``1234.0``.

    Thousands separators are stripped before parsing; anything that does not
    contain a usable amount yields ``None``.
    """

    if not text:
        return None
    match = AMOUNT_PATTERN.search(text)
    if not match:
        return None
    try:
        return float(match.group().replace(",", ""))
    except ValueError:
        return None


def parse_rating(value: Any, scale: float = 5.0) -> Optional[float]:
    """Return a rating in ``0..scale`` from a number or loosely formatted text."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    else:
        match = RATING_PATTERN.search(str(value))
        if not match:
            return None
        try:
            number = float(match.group(1).replace(",", "."))
        except ValueError:
            return None
    if not math.isfinite(number) or number < 0 or number > scale:
        return None
    return number


def parse_count(value: Any) -> Optional[int]:
    """Return a non-negative integer from ``1,024`` style text or a number."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = int(value)
    if isinstance(value, int):
        count = value
    else:
        digits = re.sub(r"[^\d]", "", str(value))
        if not digits:
            return None
        count = int(digits)
    return count if 0 <= count <= MAX_COUNT else None


def unique_preserving_order(values: Iterable[T], limit: int | None = None) -> List[T]:
    """Drop duplicates and empties while keeping first-seen order."""

    seen = set()
    unique: List[T] = []
    for value in values:
        if value is None or value == "":
            continue
        if value in seen:
            continue
        seen.add(value)
        unique.append(value)
        if limit is not None and len(unique) >= limit:
            break
    return unique


def _is_miss(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)) and not value:
        return True
    return False


def first_non_null(strategies: Sequence[Strategy], document: Any) -> Optional[Any]:
    """Run ``strategies`` in order and return the first usable value."""

    for strategy in strategies:
        value = strategy(document)
        if not _is_miss(value):
            return value
    return None


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def extract_text(handle: BeautifulSoup | Tag, selectors: Sequence[str]) -> Optional[str]:
    """Return the first non-empty text found using the provided selectors."""

    for selector in selectors:
        element = handle.select_one(selector)
        if element is None:
            continue
        text = clean_text(element.get_text(" "))
        if text:
            return text
    return None


def extract_attribute(
    handle: BeautifulSoup | Tag, selectors: Sequence[str], attribute: str
) -> Optional[str]:
    """Return the first non-empty attribute value for the selectors provided."""

    for selector in selectors:
        element = handle.select_one(selector)
        if element is None:
            continue
        value = element.get(attribute)
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return None


def iter_json_ld(soup: BeautifulSoup) -> Iterator[dict]:
    """Yield every JSON-LD object on the page, flattening lists and ``@graph``."""

    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            continue
        pending: List[Any] = [data]
        while pending:
            item = pending.pop(0)
            if isinstance(item, list):
                pending.extend(item)
            elif isinstance(item, dict):
                graph = item.get("@graph")
                if isinstance(graph, list):
                    pending.extend(graph)
                yield item


def has_json_ld_type(item: dict, expected: str) -> bool:
    declared = item.get("@type")
    if isinstance(declared, list):
        return expected in declared
    return declared == expected
