"""Extraction strategies for the supported listing source."""
from .listing_page import FIELD_STRATEGIES, ListingDocument, ListingPageExtractor, ListingPageSelectors

__all__ = ["FIELD_STRATEGIES", "ListingDocument", "ListingPageExtractor", "ListingPageSelectors"]
