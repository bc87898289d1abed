"""Signal extraction for rendered holiday listing pages.

Every field is resolved by an ordered tuple of strategies. Each strategy looks
at a :class:`ListingDocument` and returns a value or ``None``; the first usable
value wins. Structured JSON-LD metadata comes first, then targeted DOM queries,
then patterns over the full page text.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from holiday_deals.config import ScraperSettings
from holiday_deals.models import ExtractedSignals, ReviewSnippet
from holiday_deals.renderer import RenderedPage
from .extraction_common import (
    Strategy,
    clean_text,
    extract_attribute,
    extract_text,
    first_non_null,
    has_json_ld_type,
    iter_json_ld,
    parse_count,
    parse_html,
    parse_price_from_text,
    parse_rating,
    unique_preserving_order,
)

LOGGER = logging.getLogger(__name__)

MAX_GALLERY_IMAGES = 10
MAX_AMENITIES = 20
MAX_AMENITY_LENGTH = 100
MAX_ICON_LABEL_LENGTH = 50
MAX_REVIEWS = 5
MAX_REVIEW_LENGTH = 500

# Checked in this order against the page text; the first phrase found wins.
BOARD_BASIS_PRIORITY: Tuple[str, ...] = (
    "All Inclusive",
    "Half Board",
    "Full Board",
    "Bed and Breakfast",
    "Room Only",
    "Self Catering",
)

REVIEW_SCORE_PATTERN = re.compile(r"(\d(?:\.\d+)?)\s*(?:/\s*5\b|out of 5\b)", re.IGNORECASE)
REVIEW_COUNT_PATTERN = re.compile(r"(\d[\d,]*)\s+reviews?\b", re.IGNORECASE)


@dataclass(frozen=True)
class ListingPageSelectors:
    """Selectors describing where signals live on a listing page."""

    heading: Sequence[str] = ("h1",)
    preview_image: Sequence[str] = (
        "meta[property='og:image']",
        "meta[name='og:image']",
    )
    meta_description: Sequence[str] = (
        "meta[name='description']",
        "meta[property='og:description']",
    )
    description: Sequence[str] = (
        "[class*='hotel-description']",
        "[class*='description'] p",
        "[data-testid*='description']",
    )
    gallery: Sequence[str] = (
        "[class*='gallery'] img",
        "[class*='carousel'] img",
        "[class*='slider'] img",
        "[class*='swiper'] img",
        "[data-testid*='gallery'] img",
    )
    amenity_containers: Sequence[str] = (
        "[class*='facilit']",
        "[class*='amenit']",
        "[class*='feature']",
        "[data-testid*='facilit']",
    )
    icon_labels: Sequence[str] = (
        "i + span",
        "svg + span",
        "[class*='icon'] + span",
    )
    review_containers: Sequence[str] = (
        "[itemprop='review']",
        "[class*='review-item']",
        "[class*='review-card']",
        "[class*='reviewCard']",
        "[class*='testimonial']",
        "[data-testid*='review-card']",
    )
    review_rating: Sequence[str] = (
        "[itemprop='ratingValue']",
        "[class*='rating']",
        "[class*='score']",
        "[class*='stars']",
    )


class ListingDocument:
    """A rendered page with the parsed views extraction strategies need."""

    def __init__(
        self,
        page: RenderedPage,
        settings: ScraperSettings,
        selectors: ListingPageSelectors,
    ) -> None:
        self.page = page
        self.settings = settings
        self.selectors = selectors

    @cached_property
    def soup(self) -> BeautifulSoup:
        return parse_html(self.page.html)

    @cached_property
    def text(self) -> str:
        """Visible page text, falling back to the HTML when innerText is missing."""

        if self.page.text and self.page.text.strip():
            return self.page.text
        stripped = parse_html(self.page.html)
        for tag in stripped(["script", "style", "noscript", "template"]):
            tag.decompose()
        return stripped.get_text("\n")

    @cached_property
    def hotel(self) -> Optional[Dict[str, Any]]:
        for item in iter_json_ld(self.soup):
            if has_json_ld_type(item, "Hotel"):
                return item
        return None

    @cached_property
    def gallery(self) -> List[str]:
        return _collect_gallery_images(self)


def _image_source(img: Tag) -> Optional[str]:
    for attribute in ("src", "data-src", "data-lazy-src", "data-original"):
        value = img.get(attribute)
        if value and value.strip() and not value.strip().startswith("data:"):
            return value.strip()
    srcset = img.get("srcset") or img.get("data-srcset")
    if srcset:
        first = srcset.split(",")[0].strip().split(" ")[0]
        if first and not first.startswith("data:"):
            return first
    return None


def _collect_gallery_images(doc: ListingDocument) -> List[str]:
    in_gallery = set()
    for selector in doc.selectors.gallery:
        for img in doc.soup.select(selector):
            in_gallery.add(id(img))

    candidates: List[str] = []
    tokens = doc.settings.media_host_tokens
    for img in doc.soup.find_all("img"):
        source = _image_source(img)
        if not source:
            continue
        if id(img) in in_gallery or any(token in source for token in tokens):
            candidates.append(source)
    return unique_preserving_order(candidates, limit=MAX_GALLERY_IMAGES)


# -- structured metadata -----------------------------------------------------


def _json_ld_name(doc: ListingDocument) -> Optional[str]:
    if doc.hotel is None:
        return None
    name = doc.hotel.get("name")
    return clean_text(name) if isinstance(name, str) else None


def _json_ld_image(doc: ListingDocument) -> Optional[str]:
    if doc.hotel is None:
        return None
    image = doc.hotel.get("image")
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url") or image.get("contentUrl")
    return image.strip() if isinstance(image, str) and image.strip() else None


def _json_ld_star_rating(doc: ListingDocument) -> Optional[float]:
    if doc.hotel is None:
        return None
    rating = doc.hotel.get("starRating")
    if isinstance(rating, dict):
        rating = rating.get("ratingValue")
    return parse_rating(rating)


def _json_ld_description(doc: ListingDocument) -> Optional[str]:
    if doc.hotel is None:
        return None
    description = doc.hotel.get("description")
    return clean_text(description) if isinstance(description, str) else None


def _json_ld_amenities(doc: ListingDocument) -> List[str]:
    if doc.hotel is None:
        return []
    features = doc.hotel.get("amenityFeature") or []
    if isinstance(features, (dict, str)):
        features = [features]
    names: List[str] = []
    for feature in features:
        if isinstance(feature, dict):
            if feature.get("value") is False:
                continue
            name = feature.get("name")
        else:
            name = feature
        if isinstance(name, str):
            names.append(clean_text(name))
    return names


def _json_ld_review_score(doc: ListingDocument) -> Optional[float]:
    if doc.hotel is None:
        return None
    aggregate = doc.hotel.get("aggregateRating")
    if not isinstance(aggregate, dict):
        return None
    best = parse_rating(aggregate.get("bestRating"), scale=100.0)
    if best and best != 5:
        value = parse_rating(aggregate.get("ratingValue"), scale=best)
        return round(value / best * 5, 2) if value is not None else None
    return parse_rating(aggregate.get("ratingValue"))


def _json_ld_review_count(doc: ListingDocument) -> Optional[int]:
    if doc.hotel is None:
        return None
    aggregate = doc.hotel.get("aggregateRating")
    if not isinstance(aggregate, dict):
        return None
    return parse_count(aggregate.get("reviewCount") or aggregate.get("ratingCount"))


# -- DOM heuristics ----------------------------------------------------------


def _first_heading(doc: ListingDocument) -> Optional[str]:
    return extract_text(doc.soup, doc.selectors.heading)


def _preview_image(doc: ListingDocument) -> Optional[str]:
    return extract_attribute(doc.soup, doc.selectors.preview_image, "content")


def _first_gallery_image(doc: ListingDocument) -> Optional[str]:
    return doc.gallery[0] if doc.gallery else None


def _meta_description(doc: ListingDocument) -> Optional[str]:
    return extract_attribute(doc.soup, doc.selectors.meta_description, "content")


def _description_block(doc: ListingDocument) -> Optional[str]:
    return extract_text(doc.soup, doc.selectors.description)


def _facility_list_items(doc: ListingDocument) -> List[str]:
    items: List[str] = []
    for selector in doc.selectors.amenity_containers:
        for container in doc.soup.select(selector):
            for item in container.find_all("li"):
                text = clean_text(item.get_text(" "))
                if text and len(text) <= MAX_AMENITY_LENGTH:
                    items.append(text)
    return items


def _icon_labels(doc: ListingDocument) -> List[str]:
    labels: List[str] = []
    for selector in doc.selectors.icon_labels:
        for span in doc.soup.select(selector):
            text = clean_text(span.get_text(" "))
            if text and len(text) <= MAX_ICON_LABEL_LENGTH:
                labels.append(text)
    return labels


def _nested_review_rating(container: Tag, selectors: Sequence[str]) -> Optional[float]:
    own = container.get("data-rating")
    if own:
        rating = parse_rating(own)
        if rating is not None:
            return rating
    for selector in selectors:
        element = container.select_one(selector)
        if element is None:
            continue
        for candidate in (
            element.get("content"),
            element.get("data-rating"),
            element.get("aria-label"),
            element.get_text(" "),
        ):
            rating = parse_rating(candidate)
            if rating is not None:
                return rating
    return None


def _review_snippets(doc: ListingDocument) -> List[ReviewSnippet]:
    combined = ", ".join(doc.selectors.review_containers)
    collected = set()
    snippets: List[ReviewSnippet] = []
    seen_texts = set()
    for container in doc.soup.select(combined):
        # nested matches (e.g. a testimonial inside a review card) belong to the outer one
        if any(id(parent) in collected for parent in container.parents):
            continue
        collected.add(id(container))
        text = clean_text(container.get_text(" "))[:MAX_REVIEW_LENGTH]
        if not text or text in seen_texts:
            continue
        seen_texts.add(text)
        snippets.append(
            ReviewSnippet(
                text=text,
                rating=_nested_review_rating(container, doc.selectors.review_rating),
            )
        )
        if len(snippets) >= MAX_REVIEWS:
            break
    return snippets


# -- full-page text patterns -------------------------------------------------


def labelled_price_pattern(label: str, symbol: str) -> Pattern[str]:
    """Match ``<label> ... <symbol><amount>`` without crossing another symbol."""

    escaped_symbol = re.escape(symbol)
    return re.compile(
        rf"{re.escape(label)}[^{escaped_symbol}]*{escaped_symbol}\s*(\d[\d,]*(?:\.\d+)?)",
        re.IGNORECASE,
    )


def _labelled_price(doc: ListingDocument, label: str) -> Optional[float]:
    match = labelled_price_pattern(label, doc.settings.currency_symbol).search(doc.text)
    if not match:
        return None
    return parse_price_from_text(match.group(1))


def _payable_price(doc: ListingDocument) -> Optional[float]:
    return _labelled_price(doc, f"Payable to {doc.settings.provider_name}")


def _per_person_price(doc: ListingDocument) -> Optional[float]:
    return _labelled_price(doc, "Price per person")


def _base_price(doc: ListingDocument) -> Optional[float]:
    return _labelled_price(doc, "Base price")


def _board_basis_from_text(doc: ListingDocument) -> Optional[str]:
    for label in BOARD_BASIS_PRIORITY:
        if label in doc.text:
            return label
    return None


def _review_score_from_text(doc: ListingDocument) -> Optional[float]:
    match = REVIEW_SCORE_PATTERN.search(doc.text)
    return parse_rating(match.group(1)) if match else None


def _review_count_from_text(doc: ListingDocument) -> Optional[int]:
    match = REVIEW_COUNT_PATTERN.search(doc.text)
    return parse_count(match.group(1)) if match else None


FIELD_STRATEGIES: Dict[str, Tuple[Strategy, ...]] = {
    "hotel_name": (_json_ld_name, _first_heading),
    "image_url": (_json_ld_image, _preview_image, _first_gallery_image),
    "star_rating": (_json_ld_star_rating,),
    "description": (_json_ld_description, _meta_description, _description_block),
    "amenities": (_json_ld_amenities, _facility_list_items, _icon_labels),
    "review_score": (_json_ld_review_score, _review_score_from_text),
    "review_count": (_json_ld_review_count, _review_count_from_text),
    "reviews": (_review_snippets,),
    "total_price": (_payable_price,),
    "price_per_person": (_per_person_price,),
    "original_price": (_base_price,),
    "board_basis": (_board_basis_from_text,),
}


class ListingPageExtractor:
    """Turn a :class:`RenderedPage` into an :class:`ExtractedSignals` bundle."""

    def __init__(
        self,
        settings: ScraperSettings | None = None,
        selectors: ListingPageSelectors | None = None,
        strategies: Dict[str, Tuple[Strategy, ...]] | None = None,
    ) -> None:
        self.settings = settings or ScraperSettings()
        self.selectors = selectors or ListingPageSelectors()
        self.strategies = dict(FIELD_STRATEGIES)
        if strategies:
            self.strategies.update(strategies)

    def resolve(self, field_name: str, document: ListingDocument) -> Optional[Any]:
        return first_non_null(self.strategies.get(field_name, ()), document)

    def extract(self, page: RenderedPage) -> ExtractedSignals:
        document = ListingDocument(page, self.settings, self.selectors)
        signals = ExtractedSignals(
            hotel_name=self.resolve("hotel_name", document),
            image_url=self.resolve("image_url", document),
            star_rating=self.resolve("star_rating", document),
            description=self.resolve("description", document),
            amenities=unique_preserving_order(
                self.resolve("amenities", document) or [], limit=MAX_AMENITIES
            ),
            review_score=self.resolve("review_score", document),
            review_count=self.resolve("review_count", document),
            reviews=list(self.resolve("reviews", document) or [])[:MAX_REVIEWS],
            gallery_images=list(document.gallery),
            total_price=self.resolve("total_price", document),
            price_per_person=self.resolve("price_per_person", document),
            original_price=self.resolve("original_price", document),
            board_basis=self.resolve("board_basis", document),
            page_title=page.title,
            json_ld_found=document.hotel is not None,
        )
        LOGGER.info(
            "Extracted signals from %s: hotel=%s total=%s board=%s images=%d json_ld=%s",
            page.url,
            signals.hotel_name,
            signals.total_price,
            signals.board_basis,
            len(signals.gallery_images),
            signals.json_ld_found,
        )
        return signals
