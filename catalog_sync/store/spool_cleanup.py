"""Delete old record and plan spool files."""
import argparse
import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from catalog_sync.logging_conf import setup_logging
from catalog_sync.store.spool import SpoolManager

logger = logging.getLogger(__name__)

# Spool file name prefix per kind
SPOOL_KINDS = {"records": "run_", "plans": "plan_"}


def _matches_kind(path: Path, kind: str) -> bool:
    if kind == "all":
        return True
    return path.name.startswith(SPOOL_KINDS[kind])


async def cleanup_spool(
    dry_run: bool = False,
    older_than_days: int = 7,
    spool_dir: Optional[Path] = None,
    kind: str = "all",
) -> int:
    """Delete spool files last modified before the cutoff.

    Returns the number of files deleted (or that would be, in a dry run).
    """
    if kind != "all" and kind not in SPOOL_KINDS:
        raise ValueError(f"Unknown spool kind '{kind}'")

    spool = SpoolManager(spool_dir) if spool_dir else SpoolManager()
    cutoff = time.time() - older_than_days * 86400
    expired = [
        path
        for path in sorted(spool.list_spool_files())
        if _matches_kind(path, kind) and path.stat().st_mtime < cutoff
    ]

    freed = 0
    for path in expired:
        size = path.stat().st_size
        freed += size
        if dry_run:
            logger.info(f"[SPOOL] Would delete {path.name} ({size} bytes)")
            continue
        await spool.delete(path)
        logger.info(f"[SPOOL] Deleted {path.name} ({size} bytes)")

    verb = "would free" if dry_run else "freed"
    logger.info(f"[SPOOL] {len(expired)} expired files, {verb} {freed / 1024 / 1024:.2f} MB")
    return len(expired)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Delete old spool files")
    parser.add_argument("--dry-run", action="store_true", help="List files without deleting them")
    parser.add_argument(
        "--older-than-days",
        type=int,
        default=7,
        help="Age threshold in days (default: 7)",
    )
    parser.add_argument(
        "--kind",
        choices=["all", *SPOOL_KINDS],
        default="all",
        help="Only record spools or only unwritten plans (default: all)",
    )
    parser.add_argument("--spool-dir", type=Path, default=None, help="Spool directory override")
    args = parser.parse_args(argv)

    setup_logging()
    asyncio.run(cleanup_spool(args.dry_run, args.older_than_days, args.spool_dir, args.kind))


if __name__ == "__main__":
    main()
