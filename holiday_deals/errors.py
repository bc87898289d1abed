"""Exception types raised by the listing ingestion pipeline."""
from __future__ import annotations


class ExtractionError(Exception):
    """Raised when a listing page could not be rendered for extraction."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to render {url}: {reason}")
        self.url = url
        self.reason = reason


class InvalidBatchError(ValueError):
    """Raised when a batch request does not contain 1-50 absolute URLs."""


class BatchSetupError(RuntimeError):
    """Raised when a batch cannot start at all, e.g. no browser is available."""
