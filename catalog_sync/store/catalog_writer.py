"""Supabase catalog store: batched lookup, insert and history update."""
import asyncio
import logging
from typing import Any, Iterable, Optional

from supabase import create_client, Client
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from catalog_sync.config import config
from catalog_sync.errors import StoreWriteError
from catalog_sync.parse.models import MergePlan, WriteSummary
from catalog_sync.parse.redact import redact_string

logger = logging.getLogger(__name__)


def chunked(items: list, size: int) -> Iterable[list]:
    """Consecutive slices of at most `size` items."""
    for i in range(0, len(items), size):
        yield items[i : i + size]


class CatalogStore:
    """Document store addressed by part_number.

    The Supabase client is synchronous, so every call runs in the default
    thread pool. Lookups are retried; writes are not.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        table: Optional[str] = None,
        batch_size: Optional[int] = None,
        lookup_chunk: Optional[int] = None,
    ):
        if client is None:
            if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE:
                raise ValueError("Supabase configuration missing")
            client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE)
        self.client = client
        self.table = table or config.SUPABASE_TABLE
        self.batch_size = batch_size or config.BATCH_SIZE
        self.lookup_chunk = lookup_chunk or config.LOOKUP_CHUNK

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((Exception,)),
        reraise=True,
    )
    def _select_sync(self, part_numbers: list[str]) -> list[dict[str, Any]]:
        """Synchronous lookup (called from thread pool)."""
        response = (
            self.client.table(self.table)
            .select("*")
            .in_("part_number", part_numbers)
            .execute()
        )
        return response.data or []

    async def fetch_existing(self, part_numbers: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Stored rows keyed by part_number, looked up in batches."""
        keys = list(dict.fromkeys(part_numbers))
        if not keys:
            return {}

        loop = asyncio.get_running_loop()
        existing: dict[str, dict[str, Any]] = {}
        for chunk in chunked(keys, self.lookup_chunk):
            rows = await loop.run_in_executor(None, self._select_sync, chunk)
            for row in rows:
                existing[row["part_number"]] = row

        logger.info(f"[STORE] Looked up {len(keys)} part numbers, {len(existing)} already stored")
        return existing

    def _insert_sync(self, rows: list[dict[str, Any]]) -> None:
        self.client.table(self.table).insert(rows).execute()

    def _update_sync(self, rows: list[dict[str, Any]]) -> None:
        # Rows are complete documents, so a part deleted since the lookup is
        # re-inserted whole and NOT NULL descriptive columns are satisfied
        self.client.table(self.table).upsert(rows, on_conflict="part_number").execute()

    async def apply(self, plan: MergePlan) -> WriteSummary:
        """Apply inserts then updates in bulk batches.

        Raises StoreWriteError on the first failed batch. Batches that already
        landed stay applied.
        """
        summary = WriteSummary()
        if plan.is_empty:
            logger.info("[STORE] Nothing to write")
            return summary

        insert_rows = [action.record.to_document() for action in plan.inserts]
        update_rows = [action.to_row() for action in plan.updates]
        loop = asyncio.get_running_loop()

        try:
            for batch in chunked(insert_rows, self.batch_size):
                await loop.run_in_executor(None, self._insert_sync, batch)
                summary.inserted += len(batch)
                logger.info(f"[STORE] Inserted {len(batch)} records ({summary.inserted}/{len(insert_rows)})")

            for batch in chunked(update_rows, self.batch_size):
                await loop.run_in_executor(None, self._update_sync, batch)
                summary.updated += len(batch)
                logger.info(f"[STORE] Updated {len(batch)} records ({summary.updated}/{len(update_rows)})")
        except Exception as e:
            message = redact_string(str(e))
            logger.error(
                f"[STORE] Write failed after {summary.inserted} inserts, {summary.updated} updates: {message}"
            )
            raise StoreWriteError(
                f"Bulk write failed: {message}",
                attempted_inserts=len(insert_rows),
                attempted_updates=len(update_rows),
            ) from e

        return summary

    async def close(self) -> None:
        """Release the PostgREST session held by the client."""
        postgrest = getattr(self.client, "postgrest", None)
        session = getattr(postgrest, "session", None)
        if session is not None and hasattr(session, "close"):
            session.close()
