"""Minimum-viability checks applied before a candidate reaches the store."""
from __future__ import annotations

import math
from typing import List

from .models import ListingCandidate

MISSING_DATA_ERROR = "missing required data"


def validate_candidate(candidate: ListingCandidate) -> List[str]:
    """Return the names of missing required fields; empty means persistable."""

    missing: List[str] = []
    if not candidate.title or not candidate.title.strip():
        missing.append("title")
    price = candidate.total_price
    if (
        price is None
        or isinstance(price, bool)
        or not isinstance(price, (int, float))
        or math.isnan(price)
        or math.isinf(price)
        or price <= 0
    ):
        missing.append("total_price")
    return missing


def describe_missing(missing: List[str]) -> str:
    return f"{MISSING_DATA_ERROR}: {', '.join(missing)}"
