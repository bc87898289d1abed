"""Run a scrape batch from the command line."""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from typing import List, Optional, Sequence

from .config import load_settings
from .errors import BatchSetupError, InvalidBatchError
from .reporter import build_batch_report
from .workflow import create_scrape_service, run_batch_sync

LOGGER = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Scrape holiday listing pages into the deals database.")
    parser.add_argument("urls", nargs="+", help="Listing page URLs to scrape (at most 50).")
    parser.add_argument(
        "--db",
        dest="database_path",
        default=None,
        help="SQLite database path, overrides DEALS_DB_PATH.",
    )
    parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the batch result as JSON instead of a report.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    settings = load_settings()
    if args.database_path:
        settings = dataclasses.replace(settings, database_path=args.database_path)

    service = create_scrape_service(settings)
    try:
        batch = run_batch_sync(service, args.urls)
    except InvalidBatchError as exc:
        parser.error(str(exc))
    except BatchSetupError as exc:
        LOGGER.error("%s", exc)
        return 2

    if args.as_json:
        print(json.dumps({"success": True, **batch.to_dict()}, indent=2))
    else:
        listings: List = []
        for result in batch.results:
            if result.record_id is not None:
                stored = service.repository.get_listing(result.record_id)
                if stored is not None:
                    listings.append(stored)
        print(build_batch_report(batch, listings))
    return 0 if batch.summary["failed"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
