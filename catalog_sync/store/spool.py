"""Disk spool for normalized records and unwritten merge plans."""
import logging
from pathlib import Path
from typing import Iterator, Sequence
import aiofiles
import orjson

from catalog_sync.config import SPOOL_DIR
from catalog_sync.parse.models import CatalogRecord, MergePlan

logger = logging.getLogger(__name__)


class SpoolManager:
    """Manages JSONL spool files, one per run and kind."""

    def __init__(self, spool_dir: Path = SPOOL_DIR):
        self.spool_dir = spool_dir
        self.spool_dir.mkdir(parents=True, exist_ok=True)

    def records_path(self, run_id: str) -> Path:
        return self.spool_dir / f"run_{run_id}.jsonl"

    def plan_path(self, run_id: str) -> Path:
        return self.spool_dir / f"plan_{run_id}.jsonl"

    async def write_records(self, run_id: str, records: Sequence[CatalogRecord]) -> Path:
        """Write all records of a run, one JSON document per line."""
        spool_file = self.records_path(run_id)
        async with aiofiles.open(spool_file, "wb") as f:
            for record in records:
                await f.write(orjson.dumps(record.model_dump(mode="json")) + b"\n")
        logger.info(f"Spooled {len(records)} records to {spool_file.name}")
        return spool_file

    async def read_records(self, spool_file: Path) -> list[CatalogRecord]:
        """Read records back; unreadable lines are skipped with a warning."""
        if not spool_file.exists():
            raise FileNotFoundError(f"Spool file not found: {spool_file}")

        records = []
        async with aiofiles.open(spool_file, "rb") as f:
            async for line in f:
                if not line.strip():
                    continue
                try:
                    records.append(CatalogRecord.model_validate(orjson.loads(line)))
                except (orjson.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Error reading spool line: {e}")
                    continue

        return records

    async def write_plan(self, run_id: str, plan: MergePlan) -> Path:
        """Spool a merge plan that could not be written to the store."""
        spool_file = self.plan_path(run_id)
        async with aiofiles.open(spool_file, "wb") as f:
            for action in plan.inserts:
                line = {"op": "insert", "row": action.record.to_document()}
                await f.write(orjson.dumps(line) + b"\n")
            for action in plan.updates:
                line = {"op": "update", "row": action.to_row()}
                await f.write(orjson.dumps(line) + b"\n")
        logger.info(
            f"Spooled plan ({len(plan.inserts)} inserts, {len(plan.updates)} updates) to {spool_file.name}"
        )
        return spool_file

    async def delete(self, spool_file: Path) -> None:
        """Delete a spool file after a successful write."""
        if spool_file.exists():
            spool_file.unlink()

    def list_spool_files(self) -> Iterator[Path]:
        """List all spool files."""
        return self.spool_dir.glob("*.jsonl")
