"""SQLite ledger of sync runs."""
import aiosqlite
import logging
import uuid
from pathlib import Path
from typing import Optional

from catalog_sync.config import STATE_DB

logger = logging.getLogger(__name__)

RUN_COLUMNS = (
    "run_id",
    "status",
    "started_at",
    "finished_at",
    "start_offset",
    "total",
    "records",
    "inserted",
    "updated",
    "error",
)


class StateDB:
    """SQLite database recording one row per sync run."""

    def __init__(self, db_path: Path = STATE_DB):
        self.db_path = db_path

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_runs (
                    run_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    started_at TIMESTAMP,
                    finished_at TIMESTAMP,
                    start_offset INTEGER,
                    total INTEGER,
                    records INTEGER DEFAULT 0,
                    inserted INTEGER DEFAULT 0,
                    updated INTEGER DEFAULT 0,
                    error TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_started ON sync_runs(started_at)
                """
            )
            await db.commit()
            logger.info(f"State database initialized at {self.db_path}")

    async def start_run(self, start_offset: int, run_id: Optional[str] = None) -> str:
        """Insert a running row and return its id."""
        run_id = run_id or uuid.uuid4().hex[:12]
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO sync_runs (run_id, status, started_at, start_offset)
                VALUES (?, 'running', datetime('now'), ?)
                """,
                (run_id, start_offset),
            )
            await db.commit()
        return run_id

    async def set_total(self, run_id: str, total: int) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("UPDATE sync_runs SET total = ? WHERE run_id = ?", (total, run_id))
            await db.commit()

    async def finish_run(self, run_id: str, records: int, inserted: int, updated: int) -> None:
        """Mark run as successfully completed."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                UPDATE sync_runs
                SET status = 'ok', finished_at = datetime('now'),
                    records = ?, inserted = ?, updated = ?
                WHERE run_id = ?
                """,
                (records, inserted, updated, run_id),
            )
            await db.commit()

    async def fail_run(self, run_id: str, error: str) -> None:
        """Mark run as failed."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                UPDATE sync_runs
                SET status = 'failed', finished_at = datetime('now'), error = ?
                WHERE run_id = ?
                """,
                (error[:500], run_id),  # Limit error length
            )
            await db.commit()

    async def get_run(self, run_id: str) -> Optional[dict]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"SELECT {', '.join(RUN_COLUMNS)} FROM sync_runs WHERE run_id = ?",
                (run_id,),
            )
            row = await cursor.fetchone()
            return dict(zip(RUN_COLUMNS, row)) if row else None

    async def latest_run(self) -> Optional[dict]:
        """Most recently started run."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"SELECT {', '.join(RUN_COLUMNS)} FROM sync_runs "
                "ORDER BY started_at DESC, rowid DESC LIMIT 1"
            )
            row = await cursor.fetchone()
            return dict(zip(RUN_COLUMNS, row)) if row else None

    async def get_stats(self) -> dict:
        """Run count per status."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                SELECT status, COUNT(*) FROM sync_runs
                GROUP BY status
                """
            )
            return {row[0]: row[1] for row in await cursor.fetchall()}
