"""Split one record range across credentials by remaining quota."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from catalog_sync.auth.token import fetch_access_token
from catalog_sync.config import config
from catalog_sync.errors import (
    InsufficientQuotaError,
    NoActiveCredentialsError,
    SyncAbortedError,
)
from catalog_sync.fetch.client import VendorClient
from catalog_sync.fetch.endpoints import with_offset
from catalog_sync.fetch.rate_limit import InFlightLimiter, count_pages
from catalog_sync.jobs.metrics import Metrics
from catalog_sync.parse.models import CatalogRecord
from catalog_sync.parse.redact import redact_string
from catalog_sync.sync.remediation import RemediationEngine
from catalog_sync.sync.retrieval import RetrievalEngine

logger = logging.getLogger(__name__)


@dataclass
class CredentialBudget:
    """One credential's usable capacity for a run (never persisted)."""

    client_id: str
    client_secret: str = field(repr=False)
    access_token: Optional[str] = field(default=None, repr=False)
    remaining_quota: int = 0
    is_active: bool = False
    total_count: Optional[int] = None


@dataclass
class SliceAssignment:
    """Contiguous [start_offset, end_offset) handed to one credential."""

    budget: CredentialBudget
    start_offset: int
    end_offset: int

    @property
    def size(self) -> int:
        return self.end_offset - self.start_offset


def plan_assignments(
    budgets: list[CredentialBudget], start_offset: int, total: int, page_size: int
) -> list[SliceAssignment]:
    """Assign non-overlapping slices proportional to remaining quota.

    Credentials are walked smallest quota first; shortfall below the nominal
    share floats to later, larger credentials. Raises InsufficientQuotaError
    when the combined quota cannot cover the range.
    """
    active = [budget for budget in budgets if budget.is_active]
    if not active:
        raise NoActiveCredentialsError("No active credentials to assign")

    pending_pages = count_pages(start_offset, total, page_size)
    if pending_pages == 0:
        return []

    nominal = -(-pending_pages // len(active)) * page_size
    floating = 0
    cursor = start_offset
    assignments: list[SliceAssignment] = []

    for budget in sorted(active, key=lambda b: b.remaining_quota):
        quota = budget.remaining_quota - budget.remaining_quota % page_size
        if quota < nominal:
            assigned = quota
            floating += nominal - quota
        else:
            extra = quota - nominal
            if extra >= floating:
                assigned = nominal + floating
                floating = 0
            else:
                assigned = quota
                floating -= extra

        end = min(cursor + assigned, total)
        if end > cursor:
            assignments.append(SliceAssignment(budget, cursor, end))
            logger.info(
                f"[BALANCER] {budget.client_id[:6]}... quota={quota} "
                f"-> [{cursor}, {end}) ({end - cursor} records)"
            )
        cursor = max(cursor, end)

    if cursor < total:
        raise InsufficientQuotaError(
            f"Combined quota covers [{start_offset}, {cursor}) but range ends at {total} "
            f"(floating surplus {floating})"
        )
    return assignments


def pick_remediation_budget(assignments: list[SliceAssignment]) -> Optional[CredentialBudget]:
    """Credential with the most unassigned headroom."""
    if not assignments:
        return None
    best = max(assignments, key=lambda a: a.budget.remaining_quota - a.size)
    return best.budget


class LoadBalancer:
    """Probe credentials, partition the range and run one engine per slice."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: list[tuple[str, str]],
        page_size: Optional[int] = None,
        burst_limit: Optional[int] = None,
        burst_reset: Optional[float] = None,
        concurrency: Optional[int] = None,
        metrics: Optional[Metrics] = None,
    ):
        self.http = http
        self.budgets = [CredentialBudget(client_id, secret) for client_id, secret in credentials]
        self.page_size = page_size or config.PAGE_SIZE
        self.burst_limit = burst_limit
        self.burst_reset = burst_reset
        self.limiter = InFlightLimiter(concurrency or config.CONCURRENCY)
        self.metrics = metrics or Metrics()

    def _client(self, budget: CredentialBudget) -> VendorClient:
        return VendorClient(self.http, budget.client_id, budget.access_token or "", self.limiter)

    async def _probe(self, budget: CredentialBudget, body: dict[str, Any]) -> CredentialBudget:
        try:
            budget.access_token = await fetch_access_token(self.http, budget.client_id, budget.client_secret)
            result = await self._client(budget).probe(body)
        except Exception as e:
            budget.is_active = False
            logger.warning(
                f"[BALANCER] Credential {budget.client_id[:6]}... inactive: {redact_string(str(e))}"
            )
            return budget

        budget.remaining_quota = result.remaining_requests * self.page_size
        budget.total_count = result.total_count
        budget.is_active = budget.remaining_quota > 0
        if not budget.is_active:
            logger.warning(f"[BALANCER] Credential {budget.client_id[:6]}... has no remaining quota")
        return budget

    async def resolve_budgets(self, body: dict[str, Any]) -> list[CredentialBudget]:
        """Probe all credentials; fatal when none is usable."""
        await asyncio.gather(*(self._probe(budget, body) for budget in self.budgets))
        active = [budget for budget in self.budgets if budget.is_active]
        logger.info(f"[BALANCER] {len(active)}/{len(self.budgets)} credentials active")
        if not active:
            raise NoActiveCredentialsError("Every credential probe failed")
        return active

    def total_count(self) -> Optional[int]:
        """Total reported by the first active probe."""
        for budget in self.budgets:
            if budget.is_active and budget.total_count is not None:
                return budget.total_count
        return None

    async def run(self, body: dict[str, Any], total: int) -> list[CatalogRecord]:
        """Fetch [body.Offset, total) across all active credentials concurrently."""
        start = int(body.get("Offset", 0))
        assignments = plan_assignments(self.budgets, start, total, self.page_size)
        spare = pick_remediation_budget(assignments)

        engines = []
        for index, assignment in enumerate(assignments):
            client = self._client(assignment.budget)
            remediation_client = self._client(spare) if spare is not None else client
            label = str(index)
            engine = RetrievalEngine(
                client,
                burst_limit=self.burst_limit,
                burst_reset=self.burst_reset,
                remediation=RemediationEngine(remediation_client, metrics=self.metrics, label=label),
                metrics=self.metrics,
                label=label,
            )
            engines.append((assignment, engine))

        self.metrics.total_pages = count_pages(start, total, self.page_size)
        results = await asyncio.gather(
            *(
                engine.retrieve(with_offset(body, a.start_offset, self.page_size), a.end_offset)
                for a, engine in engines
            ),
            return_exceptions=True,
        )

        records: list[CatalogRecord] = []
        errors = []
        for (assignment, _), result in zip(engines, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"[BALANCER] Slice [{assignment.start_offset}, {assignment.end_offset}) failed: {result}"
                )
                errors.append(result)
            else:
                records.extend(result)

        if errors:
            raise SyncAbortedError(f"{len(errors)} credential slice(s) failed: {errors[0]}") from errors[0]

        self.metrics.report()
        return records
