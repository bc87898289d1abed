"""Tests for merging URL and page signals into listing candidates."""
from __future__ import annotations

from datetime import date
import json
import unittest

from holiday_deals.config import ScraperSettings
from holiday_deals.models import ExtractedSignals, ListingCandidate, ReviewSnippet
from holiday_deals.reconciler import (
    build_destination_label,
    compute_return_date,
    make_absolute_url,
    reconcile,
)
from holiday_deals.url_decoder import decode_listing_url
from holiday_deals.validator import describe_missing, validate_candidate

LISTING_URL = (
    "https://www.jet2holidays.com/beach/spain/tenerife/costa-adeje/hotel-la-playa"
    "?airport=7&date=10-06-2025&duration=7&board=2"
)


class ReturnDateTests(unittest.TestCase):
    def test_return_date_adds_duration(self) -> None:
        self.assertEqual(compute_return_date(date(2025, 6, 10), 7), date(2025, 6, 17))

    def test_return_date_crosses_month_end(self) -> None:
        self.assertEqual(compute_return_date(date(2025, 12, 28), 7), date(2026, 1, 4))

    def test_return_date_out_of_calendar_range_is_none(self) -> None:
        self.assertIsNone(compute_return_date(date(9999, 12, 28), 7))
        self.assertIsNone(compute_return_date(date(2025, 6, 10), 99999999))

    def test_return_date_needs_both_parts(self) -> None:
        self.assertIsNone(compute_return_date(None, 7))
        self.assertIsNone(compute_return_date(date(2025, 6, 10), None))


class DestinationLabelTests(unittest.TestCase):
    def test_label_joins_known_parts(self) -> None:
        self.assertEqual(
            build_destination_label("Costa Adeje", "Tenerife", "Spain"),
            "Costa Adeje, Tenerife, Spain",
        )
        self.assertEqual(build_destination_label(None, "Crete", "Greece"), "Crete, Greece")

    def test_label_defaults_to_unknown(self) -> None:
        self.assertEqual(build_destination_label(None, None, None), "Unknown")


class AbsoluteUrlTests(unittest.TestCase):
    def test_relative_and_protocol_relative_urls(self) -> None:
        base = "https://www.jet2holidays.com"
        self.assertEqual(make_absolute_url("//media.jet2.com/a.jpg", base), "https://media.jet2.com/a.jpg")
        self.assertEqual(make_absolute_url("/media/b.jpg", base), "https://www.jet2holidays.com/media/b.jpg")
        self.assertEqual(make_absolute_url("https://x.test/c.jpg", base), "https://x.test/c.jpg")
        self.assertIsNone(make_absolute_url("", base))


class ReconcileTests(unittest.TestCase):
    def setUp(self) -> None:
        self.decoded = decode_listing_url(LISTING_URL)
        self.settings = ScraperSettings()

    def test_travel_fields_come_from_url(self) -> None:
        signals = ExtractedSignals(hotel_name="Hotel La Playa", total_price=1478.0)
        candidate = reconcile(self.decoded, signals, self.settings)

        self.assertEqual(candidate.source_url, LISTING_URL)
        self.assertEqual(candidate.title, "Hotel La Playa")
        self.assertEqual(candidate.hotel_name, "Hotel La Playa")
        self.assertEqual(candidate.destination_label, "Costa Adeje, Tenerife, Spain")
        self.assertEqual(candidate.departure_airport_code, "MAN")
        self.assertEqual(candidate.departure_date, date(2025, 6, 10))
        self.assertEqual(candidate.return_date, date(2025, 6, 17))
        self.assertEqual(candidate.duration_nights, 7)
        self.assertEqual(candidate.currency, "GBP")

    def test_page_board_basis_wins_over_url(self) -> None:
        candidate = reconcile(self.decoded, ExtractedSignals(board_basis="All Inclusive"), self.settings)
        self.assertEqual(candidate.board_basis_label, "All Inclusive")

    def test_url_board_basis_is_fallback(self) -> None:
        candidate = reconcile(self.decoded, ExtractedSignals(), self.settings)
        self.assertEqual(candidate.board_basis_label, "Half Board")

    def test_media_and_ratings_are_normalised(self) -> None:
        signals = ExtractedSignals(
            hotel_name="Hotel",
            image_url="//media.jet2.com/main.jpg",
            gallery_images=["/media/1.jpg", "https://www.jet2holidays.com/media/1.jpg", "/media/2.jpg"],
            star_rating=7.0,
            review_score=4.2,
            review_count=-1,
            amenities=["Pool", " Pool ", "Spa"],
            reviews=[ReviewSnippet("Great", 9.0), ReviewSnippet("Great", 4.0), ReviewSnippet("Nice", 4.0)],
            price_per_person=0.0,
        )
        candidate = reconcile(self.decoded, signals, self.settings)

        self.assertEqual(candidate.primary_image_url, "https://media.jet2.com/main.jpg")
        self.assertEqual(
            candidate.gallery_image_urls,
            ["https://www.jet2holidays.com/media/1.jpg", "https://www.jet2holidays.com/media/2.jpg"],
        )
        self.assertIsNone(candidate.hotel_star_rating)
        self.assertEqual(candidate.review_score, 4.2)
        self.assertIsNone(candidate.review_count)
        self.assertEqual(candidate.amenities, ["Pool", "Spa"])
        self.assertEqual([review.text for review in candidate.review_snippets], ["Great", "Nice"])
        self.assertIsNone(candidate.review_snippets[0].rating)
        self.assertIsNone(candidate.price_per_person)

    def test_raw_extraction_records_inputs(self) -> None:
        candidate = reconcile(self.decoded, ExtractedSignals(hotel_name="Hotel"), self.settings)
        raw = json.loads(candidate.raw_extraction)
        self.assertEqual(raw["params"]["airport"], "7")
        self.assertEqual(raw["location"]["resort"], "Costa Adeje")
        self.assertEqual(raw["signals"]["hotel_name"], "Hotel")

    def test_oversized_duration_degrades_to_none(self) -> None:
        decoded = decode_listing_url(
            "https://www.jet2holidays.com/beach/spain/tenerife/costa-adeje/hotel"
            "?date=10-06-2025&duration=99999999"
        )
        candidate = reconcile(decoded, ExtractedSignals(hotel_name="Hotel", total_price=1000.0), self.settings)
        self.assertIsNone(candidate.duration_nights)
        self.assertIsNone(candidate.return_date)
        self.assertEqual(candidate.departure_date, date(2025, 6, 10))
        self.assertEqual(validate_candidate(candidate), [])

    def test_unparseable_url_yields_unknown_destination(self) -> None:
        decoded = decode_listing_url("https://www.jet2holidays.com/hotel")
        candidate = reconcile(decoded, ExtractedSignals(hotel_name="Hotel"), self.settings)
        self.assertEqual(candidate.destination_label, "Unknown")
        self.assertIsNone(candidate.return_date)


class ValidatorTests(unittest.TestCase):
    def test_missing_title_and_price_are_reported(self) -> None:
        missing = validate_candidate(ListingCandidate(source_url=LISTING_URL))
        self.assertEqual(missing, ["title", "total_price"])
        self.assertEqual(describe_missing(missing), "missing required data: title, total_price")

    def test_blank_title_and_non_positive_price_are_rejected(self) -> None:
        candidate = ListingCandidate(source_url=LISTING_URL, title="   ", total_price=0.0)
        self.assertEqual(validate_candidate(candidate), ["title", "total_price"])
        candidate = ListingCandidate(source_url=LISTING_URL, title="Hotel", total_price=float("nan"))
        self.assertEqual(validate_candidate(candidate), ["total_price"])

    def test_complete_candidate_passes(self) -> None:
        candidate = ListingCandidate(source_url=LISTING_URL, title="Hotel", total_price=1478.0)
        self.assertEqual(validate_candidate(candidate), [])


if __name__ == "__main__":
    unittest.main()
