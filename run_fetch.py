"""CLI entry point.

This script fetches jobs from every configured source, stores them in the
SQLite database and prints a per-source report.

Examples:
    python run_fetch.py
    python run_fetch.py --query "rust" --location remote --limit 25
    python run_fetch.py --source remotive --source arbeitnow --out jobs.json

Settings not exposed as flags come from JOB_AGGREGATOR_* environment
variables or a .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from job_aggregator.config import Settings, get_settings
from job_aggregator.errors import AggregationError, PersistenceError
from job_aggregator.models import FetchFilter
from job_aggregator.report import format_report
from job_aggregator.service import JobService
from job_aggregator.sources import SOURCE_TYPES
from job_aggregator.utils import configure_logging

logger = logging.getLogger("job_aggregator.cli")


def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Fetch, normalize and store jobs from multiple sources.")
    p.add_argument("--query", type=str, default=None, help="Keyword filter passed to every source.")
    p.add_argument("--location", type=str, default=None, help="Location filter (substring, or 'remote').")
    p.add_argument("--limit", type=non_negative_int, default=None, help="Max jobs per source.")
    p.add_argument(
        "--source",
        action="append",
        choices=sorted(SOURCE_TYPES),
        dest="sources",
        help="Source to use; repeat for several (default: all enabled).",
    )
    p.add_argument("--db", type=str, default=None, help="SQLite database path (overrides settings).")
    p.add_argument("--out", type=str, default=None, help="Also write the fetched jobs to this JSON file.")
    p.add_argument("--log-level", type=str, default=None, help="Logging level (default from settings).")
    return p.parse_args(argv)


def write_json(path: str, jobs) -> Path:
    out_path = Path(path).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    # json mode serializes datetimes to ISO strings for json.dumps
    data = [j.model_dump(mode="json") for j in jobs]
    out_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return out_path


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings: Settings = get_settings()
    if args.db:
        settings = settings.model_copy(update={"database_path": args.db})
    configure_logging(args.log_level or settings.log_level)

    service = JobService.from_settings(settings)
    filters = FetchFilter(keywords=args.query, location=args.location, limit=args.limit)

    try:
        result, jobs = asyncio.run(service.fetch_and_store(filters, args.sources))
    except AggregationError as exc:
        logger.error("%s", exc)
        return 1
    except PersistenceError as exc:
        logger.error("Jobs were fetched but not saved: %s", exc)
        if args.out:
            write_json(args.out, exc.jobs)
        return 1

    print(format_report(result))
    if args.out:
        out_path = write_json(args.out, jobs)
        print(f"Wrote {len(jobs)} jobs to: {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
