"""Command-line entry point.

Usage:
    python -m swap_event_ingestor ingest
    python -m swap_event_ingestor backfill --start-signature SIG
    python -m swap_event_ingestor rollup --start 2022-05-01 --end 2022-06-01
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date

from pydantic import ValidationError

from swap_event_ingestor.config import get_settings
from swap_event_ingestor.ingestor.models import Direction
from swap_event_ingestor.runner import run_ingest, run_rollup

logger = logging.getLogger("swap_event_ingestor")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swap_event_ingestor",
        description="Ingest swap events emitted by a Solana program into Postgres.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("ingest", help="Run ingestion in INGEST_DIRECTION (forward by default)")

    backfill = sub.add_parser("backfill", help="Walk history backwards from a signature")
    backfill.add_argument(
        "--start-signature",
        default=None,
        help="Signature to start from (defaults to INGEST_START_SIGNATURE)",
    )

    rollup = sub.add_parser("rollup", help="Populate daily pool and token volume tables")
    rollup.add_argument("--start", type=_parse_date, required=True, help="First day (YYYY-MM-DD)")
    rollup.add_argument("--end", type=_parse_date, required=True, help="Day after the last (YYYY-MM-DD)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting with settings: %s", settings.redacted_summary())

    try:
        if args.command == "ingest":
            stats = asyncio.run(
                run_ingest(
                    settings=settings,
                    direction=Direction(settings.ingest.direction),
                    start_signature=settings.ingest.start_signature,
                )
            )
            logger.info("Final stats: %s", stats)
        elif args.command == "backfill":
            start_signature = args.start_signature or settings.ingest.start_signature
            if start_signature:
                settings.ingest.start_signature = start_signature
            stats = asyncio.run(
                run_ingest(
                    settings=settings,
                    direction=Direction.BACKWARD,
                    start_signature=start_signature,
                )
            )
            logger.info("Final stats: %s", stats)
        else:
            result = asyncio.run(run_rollup(settings=settings, start=args.start, end=args.end))
            logger.info(
                "Rollup done: %d days, %d pool rows, %d token rows",
                result.days_processed,
                result.pool_rows_inserted,
                result.token_rows_inserted,
            )
    except ValueError as e:
        logger.error("%s", e)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
