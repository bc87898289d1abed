"""Runtime settings for the listing scraper."""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Dict, Mapping, Optional, Tuple

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_BROWSER_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class ScraperSettings:
    """Canonical configuration shared by the renderer, extractor and store."""

    database_path: str = "deals.db"
    base_url: str = "https://www.jet2holidays.com"
    provider_name: str = "Jet2holidays"
    provider_slug: str = "jet2"
    provider_logo_url: Optional[str] = (
        "https://www.jet2holidays.com/images/logos/jet2holidays-logo.svg"
    )
    provider_departure_airport: Optional[str] = "BFS"
    currency: str = "GBP"
    currency_symbol: str = "£"
    media_host_tokens: Tuple[str, ...] = ("jet2", "/media/")
    headless: bool = True
    browser_args: Tuple[str, ...] = DEFAULT_BROWSER_ARGS
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout_ms: int = 45000
    heading_timeout_ms: int = 15000
    settle_delay: float = 3.0
    request_delay: float = 1.0

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serialisable version of the settings."""

        return {
            "database_path": self.database_path,
            "base_url": self.base_url,
            "provider_name": self.provider_name,
            "currency": self.currency,
            "headless": self.headless,
            "navigation_timeout_ms": self.navigation_timeout_ms,
            "heading_timeout_ms": self.heading_timeout_ms,
            "settle_delay": self.settle_delay,
            "request_delay": self.request_delay,
        }


def _parse_float(value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _parse_int(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def load_settings(environ: Mapping[str, str] | None = None) -> ScraperSettings:
    """Create settings from environment variables, ignoring unusable values."""

    env = os.environ if environ is None else environ
    defaults = ScraperSettings()
    return ScraperSettings(
        database_path=env.get("DEALS_DB_PATH") or os.path.join(os.getcwd(), "deals.db"),
        base_url=(env.get("SCRAPER_BASE_URL") or defaults.base_url).rstrip("/"),
        provider_name=env.get("SCRAPER_PROVIDER_NAME") or defaults.provider_name,
        currency=env.get("SCRAPER_CURRENCY") or defaults.currency,
        headless=_parse_bool(env.get("SCRAPER_HEADLESS"), defaults.headless),
        user_agent=env.get("SCRAPER_USER_AGENT") or defaults.user_agent,
        navigation_timeout_ms=_parse_int(
            env.get("SCRAPER_NAVIGATION_TIMEOUT_MS"), defaults.navigation_timeout_ms
        ),
        heading_timeout_ms=_parse_int(
            env.get("SCRAPER_HEADING_TIMEOUT_MS"), defaults.heading_timeout_ms
        ),
        settle_delay=_parse_float(env.get("SCRAPER_SETTLE_DELAY"), defaults.settle_delay),
        request_delay=_parse_float(env.get("SCRAPER_REQUEST_DELAY"), defaults.request_delay),
    )
