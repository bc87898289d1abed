"""Reporting helpers for scrape batches."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .models import BatchResult, StoredListing, UrlResult


def _format_price(value: float | None, symbol: str = "£") -> str:
    if value is None:
        return "-"
    return f"{symbol}{value:,.0f}"


def generate_result_table(results: Iterable[UrlResult]) -> str:
    """Return a markdown-style table with one row per processed URL."""

    headers = ["URL", "Status", "Record", "Detail"]
    rows: List[str] = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(["---"] * len(headers)) + " |",
    ]
    result_list = list(results)
    if not result_list:
        rows.append("| No URLs processed |" + " |" * (len(headers) - 1))
        return "\n".join(rows)

    for result in result_list:
        if result.success:
            status = "new" if result.created else "updated"
        else:
            status = "failed"
        record = str(result.record_id) if result.record_id is not None else "-"
        rows.append(
            "| " + " | ".join([result.url, status, record, result.error or ""]) + " |"
        )
    return "\n".join(rows)


def generate_listing_table(listings: Iterable[StoredListing]) -> str:
    headers = ["Hotel", "Destination", "Price", "Nights", "Board"]
    rows: List[str] = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(["---"] * len(headers)) + " |",
    ]
    for stored in listings:
        listing = stored.listing
        rows.append(
            "| "
            + " | ".join(
                [
                    listing.title or "-",
                    listing.destination_label,
                    _format_price(listing.total_price),
                    str(listing.duration_nights) if listing.duration_nights else "-",
                    listing.board_basis_label or "-",
                ]
            )
            + " |"
        )
    return "\n".join(rows)


def build_batch_report(
    batch: BatchResult, listings: Optional[List[StoredListing]] = None
) -> str:
    """Create a text report summarising a scrape batch."""

    summary = batch.summary
    lines: List[str] = [
        f"Scrape run {batch.run_id}",
        "=" * len(f"Scrape run {batch.run_id}"),
        "",
        f"- {summary['total']} URLs processed",
        f"- {summary['successful']} succeeded, {summary['failed']} failed",
        f"- {summary['newRecords']} new listings",
        "",
        "Results:",
        generate_result_table(batch.results),
    ]
    if listings:
        lines.append("")
        lines.append("Listings:")
        lines.append(generate_listing_table(listings))
    return "\n".join(lines)
