"""Re-fetch page offsets the retrieval pass could not confirm."""
import asyncio
import logging
from functools import partial
from typing import Any, NamedTuple, Optional

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from catalog_sync.config import config
from catalog_sync.errors import RemediationExhaustedError
from catalog_sync.fetch.client import VendorClient
from catalog_sync.fetch.endpoints import with_offset
from catalog_sync.jobs.metrics import Metrics
from catalog_sync.parse.models import CatalogRecord

logger = logging.getLogger(__name__)


class RemediationResult(NamedTuple):
    records: list[CatalogRecord]
    recovered: list[int]
    unresolved: list[int]


class RemediationEngine:
    """Two-phase recovery: concurrent bulk pass, then serial retries.

    The bulk pass fires one request per offset (bounded only by the client's
    in-flight limiter, no burst sleeps). Offsets still failing are retried one
    by one; once more than max_failures offsets exhaust their attempts the
    whole remediation aborts.
    """

    def __init__(
        self,
        client: VendorClient,
        attempts: Optional[int] = None,
        max_failures: Optional[int] = None,
        metrics: Optional[Metrics] = None,
        label: str = "",
    ):
        self.client = client
        self.attempts = attempts if attempts is not None else config.REMEDIATION_ATTEMPTS
        self.max_failures = max_failures if max_failures is not None else config.REMEDIATION_MAX_FAILURES
        self.metrics = metrics or Metrics()
        self.label = label

    async def remediate(self, body: dict[str, Any], offsets: list[int]) -> RemediationResult:
        """Recover as many offsets as possible; records are best-effort complete."""
        offsets = list(dict.fromkeys(offsets))
        if not offsets:
            return RemediationResult([], [], [])

        logger.info(f"[REMEDIATION {self.label}] Bulk pass over {len(offsets)} offsets")
        records, recovered, retry_offsets = await self._bulk_pass(body, offsets)

        unresolved: list[int] = []
        if retry_offsets:
            logger.warning(
                f"[REMEDIATION {self.label}] Bulk pass left {len(retry_offsets)} offsets, "
                f"retrying individually"
            )
            serial_records, serial_recovered, unresolved = await self._serial_pass(body, retry_offsets)
            records.extend(serial_records)
            recovered.extend(serial_recovered)

        self.metrics.increment("pages_remediated", len(recovered))
        self.metrics.increment("pages_unresolved", len(unresolved))
        logger.info(
            f"[REMEDIATION {self.label}] Recovered {len(recovered)}/{len(offsets)} pages "
            f"({len(records)} records), unresolved: {unresolved}"
        )
        return RemediationResult(records, recovered, unresolved)

    async def _try_page(self, body: dict[str, Any], offset: int) -> tuple[int, Optional[list[CatalogRecord]]]:
        try:
            return offset, await self.client.fetch_page(with_offset(body, offset))
        except Exception as e:
            logger.warning(f"[REMEDIATION {self.label}] Bulk retry failed at offset {offset}: {e}")
            return offset, None

    async def _bulk_pass(
        self, body: dict[str, Any], offsets: list[int]
    ) -> tuple[list[CatalogRecord], list[int], list[int]]:
        results = await asyncio.gather(*(self._try_page(body, offset) for offset in offsets))

        records: list[CatalogRecord] = []
        recovered: list[int] = []
        failed: list[int] = []
        for offset, page in results:
            if page is None:
                failed.append(offset)
            else:
                records.extend(page)
                recovered.append(offset)
        return records, recovered, list(dict.fromkeys(failed))

    def _log_attempt(self, offset: int, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"[REMEDIATION {self.label}] Attempt {retry_state.attempt_number}/{self.attempts} "
            f"failed at offset {offset}: {error}"
        )

    async def _fetch_with_retries(self, body: dict[str, Any], offset: int) -> list[CatalogRecord]:
        page: list[CatalogRecord] = []
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            after=partial(self._log_attempt, offset),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                page = await self.client.fetch_page(with_offset(body, offset))
        return page

    async def _serial_pass(
        self, body: dict[str, Any], offsets: list[int]
    ) -> tuple[list[CatalogRecord], list[int], list[int]]:
        records: list[CatalogRecord] = []
        recovered: list[int] = []
        unresolved: list[int] = []
        failures = 0

        for offset in offsets:
            try:
                page = await self._fetch_with_retries(body, offset)
            except Exception as e:
                failures += 1
                unresolved.append(offset)
                logger.error(
                    f"[REMEDIATION {self.label}] Offset {offset} exhausted {self.attempts} attempts "
                    f"(total failures: {failures}): {e}"
                )
                if failures > self.max_failures:
                    raise RemediationExhaustedError(
                        f"{failures} offsets failed remediation (limit {self.max_failures})"
                    ) from e
                continue
            records.extend(page)
            recovered.append(offset)
            logger.info(f"[REMEDIATION {self.label}] Offset {offset} recovered ({len(page)} records)")

        return records, recovered, unresolved
