"""Main job runner orchestrating the sync pipeline."""
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from catalog_sync.config import config
from catalog_sync.errors import CountRetrievalError, StoreWriteError
from catalog_sync.fetch.client import create_http_client
from catalog_sync.fetch.endpoints import build_search_body
from catalog_sync.jobs.metrics import Metrics
from catalog_sync.jobs.metrics_exporter import MetricsExporter
from catalog_sync.parse.models import CatalogRecord, WriteSummary
from catalog_sync.parse.redact import redact_string
from catalog_sync.store.catalog_writer import CatalogStore
from catalog_sync.store.spool import SpoolManager
from catalog_sync.store.state import StateDB
from catalog_sync.sync.balancer import LoadBalancer
from catalog_sync.sync.history import plan_merge

logger = logging.getLogger(__name__)


class SyncRunner:
    """Orchestrates one sync run.

    credentials -> probes -> total -> balanced retrieval -> spool ->
    batched lookup -> merge plan -> batched write -> ledger and metrics.
    Every collaborator can be injected; the ones created here are also
    closed here.
    """

    def __init__(
        self,
        start_offset: Optional[int] = None,
        total: Optional[int] = None,
        dry_run: bool = False,
        workers: Optional[int] = None,
        burst_limit: Optional[int] = None,
        burst_reset: Optional[float] = None,
        concurrency: Optional[int] = None,
        credentials: Optional[list[tuple[str, str]]] = None,
        http: Optional[httpx.AsyncClient] = None,
        store: Optional[CatalogStore] = None,
        state_db: Optional[StateDB] = None,
        spool: Optional[SpoolManager] = None,
        metrics_file: Optional[Path] = None,
        run_id: Optional[str] = None,
    ):
        self.start_offset = start_offset if start_offset is not None else config.START_OFFSET
        self.total = total
        self.dry_run = dry_run
        self.workers = workers or config.COMPARE_WORKERS
        self.burst_limit = burst_limit
        self.burst_reset = burst_reset
        self.concurrency = concurrency
        self.credentials = credentials
        self.http = http
        self.store = store
        self.state_db = state_db or StateDB()
        self.spool = spool or SpoolManager()
        self.metrics_file = metrics_file
        self.metrics = Metrics()
        self.run_id: Optional[str] = run_id

    def _exporter(self) -> MetricsExporter:
        if self.metrics_file is not None:
            return MetricsExporter(self.run_id or "", self.metrics_file)
        return MetricsExporter(self.run_id or "")

    def _open_store(self) -> Optional[CatalogStore]:
        if self.store is not None:
            return self.store
        if self.dry_run and not (config.SUPABASE_URL and config.SUPABASE_SERVICE_ROLE):
            logger.warning("[STORE] Dry run without Supabase config, every record counts as new")
            return None
        return CatalogStore()

    async def run(self) -> dict[str, Any]:
        """Run the full sync and return its summary."""
        await self.state_db.initialize()
        self.run_id = await self.state_db.start_run(self.start_offset, self.run_id)
        logger.info(f"Run ID: {self.run_id} (start offset {self.start_offset}, dry_run={self.dry_run})")

        owns_http = self.http is None
        http = self.http or create_http_client()
        try:
            credentials = self.credentials if self.credentials is not None else config.credentials()
            body = build_search_body(offset=self.start_offset)
            balancer = LoadBalancer(
                http,
                credentials,
                burst_limit=self.burst_limit,
                burst_reset=self.burst_reset,
                concurrency=self.concurrency,
                metrics=self.metrics,
            )
            await balancer.resolve_budgets(body)

            total = self.total if self.total is not None else balancer.total_count()
            if total is None:
                raise CountRetrievalError("No credential probe reported a ProductsCount")
            await self.state_db.set_total(self.run_id, total)
            logger.info(f"Syncing offsets [{self.start_offset}, {total})")

            records = await balancer.run(body, total)
            await self.spool.write_records(self.run_id, records)

            summary = await self._merge_and_write(records)
        except Exception as e:
            error = redact_string(str(e))
            logger.error(f"Sync run {self.run_id} failed: {error}")
            await self.state_db.fail_run(self.run_id, f"{type(e).__name__}: {error}")
            await self._exporter().export_metrics("failed", self.metrics.get_summary())
            raise
        finally:
            if owns_http:
                await http.aclose()

        await self.state_db.finish_run(
            self.run_id, len(records), summary["inserted"], summary["updated"]
        )
        await self._exporter().export_metrics("ok", self.metrics.get_summary())
        summary["total"] = total
        self._final_report(summary)
        return summary

    async def replay(self, spool_file: Path) -> dict[str, Any]:
        """Merge and write records from a spool file without fetching."""
        await self.state_db.initialize()
        self.run_id = await self.state_db.start_run(self.start_offset, self.run_id)
        logger.info(f"Run ID: {self.run_id} (replaying {spool_file})")

        try:
            records = await self.spool.read_records(Path(spool_file))
            self.metrics.increment("records", len(records))
            summary = await self._merge_and_write(records)
        except Exception as e:
            error = redact_string(str(e))
            logger.error(f"Replay {self.run_id} failed: {error}")
            await self.state_db.fail_run(self.run_id, f"{type(e).__name__}: {error}")
            await self._exporter().export_metrics("failed", self.metrics.get_summary())
            raise

        await self.state_db.finish_run(
            self.run_id, len(records), summary["inserted"], summary["updated"]
        )
        await self._exporter().export_metrics("ok", self.metrics.get_summary())
        self._final_report(summary)
        return summary

    async def _merge_and_write(self, records: list[CatalogRecord]) -> dict[str, Any]:
        """Lookup, plan and (unless dry run) write one batch of records."""
        owns_store = self.store is None
        store = self._open_store()
        try:
            stored = {}
            if store is not None:
                stored = await store.fetch_existing(record.part_number for record in records)

            plan = await plan_merge(records, stored, workers=self.workers)
            self.metrics.increment("unchanged", plan.unchanged)

            if self.dry_run or store is None:
                logger.info(
                    f"[STORE] Dry run: would insert {len(plan.inserts)} and update {len(plan.updates)} records"
                )
                written = WriteSummary()
            else:
                try:
                    written = await store.apply(plan)
                except StoreWriteError:
                    await self.spool.write_plan(self.run_id or "unknown", plan)
                    raise
        finally:
            if owns_store and store is not None:
                await store.close()

        self.metrics.increment("inserted", written.inserted)
        self.metrics.increment("updated", written.updated)
        return {
            "run_id": self.run_id,
            "status": "ok",
            "dry_run": self.dry_run,
            "records": len(records),
            "planned_inserts": len(plan.inserts),
            "planned_updates": len(plan.updates),
            "unchanged": plan.unchanged,
            "inserted": written.inserted,
            "updated": written.updated,
        }

    def _final_report(self, summary: dict[str, Any]) -> None:
        metrics = self.metrics.get_summary()
        logger.info("=" * 60)
        logger.info("FINAL REPORT")
        logger.info(f"Run ID: {self.run_id}")
        logger.info(f"Elapsed: {metrics['elapsed_seconds']:.1f}s")
        logger.info(f"Pages OK: {metrics['pages_ok']} | Failed: {metrics['pages_failed']}")
        logger.info(
            f"Remediated: {metrics['pages_remediated']} | Unresolved: {metrics['pages_unresolved']}"
        )
        logger.info(f"Records: {summary['records']}")
        logger.info(
            f"Inserted: {summary['inserted']} | Updated: {summary['updated']} | "
            f"Unchanged: {summary['unchanged']}"
        )
        logger.info("=" * 60)
