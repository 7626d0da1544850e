"""Main entry point with CLI."""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from catalog_sync.config import config, Config
from catalog_sync.logging_conf import setup_logging
from catalog_sync.jobs.runner import SyncRunner
from catalog_sync.parse.redact import redact_string

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _non_negative_float(value: str) -> float:
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {value}")
    return number


def _or_default(value, default):
    return value if value is not None else default


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Vendor catalog sync")

    # Range arguments
    parser.add_argument(
        "--start-offset",
        type=int,
        default=None,
        help=f"First record offset (default: {config.START_OFFSET})",
    )
    parser.add_argument(
        "--total",
        type=int,
        default=None,
        help="Stop at this record offset (default: ProductsCount reported by the API)",
    )

    # Mode flags
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode (verbose logs, small bursts, no writes)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry run: fetch and plan, no Supabase writes",
    )
    parser.add_argument(
        "--replay",
        type=Path,
        default=None,
        metavar="FILE",
        help="Merge and write records from a spool file instead of fetching",
    )

    # Performance arguments
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=None,
        help=f"Parallel comparison workers (default: {config.COMPARE_WORKERS})",
    )
    parser.add_argument(
        "--burst-limit",
        type=_positive_int,
        default=None,
        help=f"Page requests per burst (default: {config.BURST_LIMIT})",
    )
    parser.add_argument(
        "--burst-reset",
        type=_non_negative_float,
        default=None,
        help=f"Cool-down between bursts in seconds (default: {config.BURST_RESET})",
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        help=f"Max in-flight requests (default: {config.CONCURRENCY})",
    )

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    setup_logging()
    args = parse_args(argv)

    is_dry_run = args.dry_run
    if args.dev:
        if args.burst_limit is None:
            args.burst_limit = 5
        if args.burst_reset is None:
            args.burst_reset = 2.0
        if args.workers is None:
            args.workers = 1
        is_dry_run = True
        logging.getLogger().setLevel(logging.DEBUG)
        logger.warning("DEV mode: Supabase writes disabled")

    # Validate config (skip Supabase validation in dry-run, credentials not needed for replay)
    try:
        if args.replay is None:
            Config.validate(require_store=not is_dry_run)
        elif not is_dry_run:
            Config.validate(require_store=True, require_credentials=False)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Catalog Sync Starting")
    logger.info(f"Mode: {'DEV' if args.dev else 'PROD'}")
    logger.info(f"Start offset: {args.start_offset if args.start_offset is not None else config.START_OFFSET}")
    logger.info(f"Total: {args.total if args.total is not None else 'from API'}")
    burst_limit = _or_default(args.burst_limit, config.BURST_LIMIT)
    burst_reset = _or_default(args.burst_reset, config.BURST_RESET)
    logger.info(f"Burst: {burst_limit} pages / {burst_reset}s")
    logger.info(f"Concurrency: {_or_default(args.concurrency, config.CONCURRENCY)}")
    logger.info(f"Dry-run: {is_dry_run}")
    if args.replay:
        logger.info(f"Replay: {args.replay}")
    logger.info("=" * 60)

    runner = SyncRunner(
        start_offset=args.start_offset,
        total=args.total,
        dry_run=is_dry_run,
        workers=args.workers,
        burst_limit=args.burst_limit,
        burst_reset=args.burst_reset,
        concurrency=args.concurrency,
    )
    try:
        if args.replay:
            asyncio.run(runner.replay(args.replay))
        else:
            asyncio.run(runner.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {type(e).__name__}: {redact_string(str(e))}")
        sys.exit(1)


if __name__ == "__main__":
    main()
