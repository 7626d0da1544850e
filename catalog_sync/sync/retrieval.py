"""Burst-limited paginated retrieval of one offset range."""
import asyncio
import logging
from typing import Any, Iterator, Optional

from catalog_sync.config import config
from catalog_sync.fetch.client import VendorClient
from catalog_sync.fetch.endpoints import with_offset
from catalog_sync.fetch.rate_limit import BurstPacer, count_pages, iter_page_bursts, iter_page_offsets
from catalog_sync.jobs.metrics import Metrics
from catalog_sync.parse.models import CatalogRecord
from catalog_sync.sync.remediation import RemediationEngine

logger = logging.getLogger(__name__)


class OffsetMarkers:
    """Per-run page bookkeeping: None pending, True fetched, False failed."""

    def __init__(self):
        self._markers: dict[int, Optional[bool]] = {}

    def schedule(self, offset: int) -> None:
        self._markers.setdefault(offset, None)

    def mark(self, offset: int, succeeded: bool) -> None:
        self._markers[offset] = succeeded

    def get(self, offset: int) -> Optional[bool]:
        return self._markers.get(offset)

    def has_failures(self) -> bool:
        return any(value is False for value in self._markers.values())

    def missing(self, start: int, total: int, page_size: int) -> list[int]:
        """Offsets in the range that are failed, pending or were never scheduled."""
        return [
            offset
            for offset in iter_page_offsets(start, total, page_size)
            if self._markers.get(offset) is not True
        ]

    def items(self) -> Iterator[tuple[int, Optional[bool]]]:
        return iter(sorted(self._markers.items()))

    def __len__(self) -> int:
        return len(self._markers)


class RetrievalEngine:
    """Fetch every page of [body.Offset, total) for one credential.

    Pages are requested in bursts of at most burst_limit concurrent requests
    with a cool-down between bursts. Page failures never abort the run: they
    are recorded as markers and handed to remediation once all bursts finish.
    Records come back in completion order, not offset order.
    """

    def __init__(
        self,
        client: VendorClient,
        burst_limit: Optional[int] = None,
        burst_reset: Optional[float] = None,
        burst_margin: Optional[float] = None,
        remediation: Optional[RemediationEngine] = None,
        metrics: Optional[Metrics] = None,
        label: str = "0",
    ):
        self.client = client
        self.burst_limit = burst_limit or config.BURST_LIMIT
        self.burst_reset = burst_reset if burst_reset is not None else config.BURST_RESET
        self.burst_margin = burst_margin if burst_margin is not None else config.BURST_MARGIN
        self.metrics = metrics or Metrics()
        self.label = label
        self.remediation = remediation or RemediationEngine(client, metrics=self.metrics, label=label)
        self.markers = OffsetMarkers()

    async def _fetch_page(self, body: dict[str, Any], offset: int) -> list[CatalogRecord]:
        """Fetch one page; any failure only flips its marker."""
        try:
            records = await self.client.fetch_page(with_offset(body, offset))
        except Exception as e:
            self.markers.mark(offset, False)
            self.metrics.increment("pages_failed")
            logger.warning(f"[RETRIEVAL {self.label}] Page at offset {offset} failed: {e}")
            return []
        self.markers.mark(offset, True)
        self.metrics.increment("pages_ok")
        return records

    async def retrieve(self, body: dict[str, Any], total: int) -> list[CatalogRecord]:
        """Retrieve, remediate and return all normalized records of the range."""
        start = int(body.get("Offset", 0))
        page_size = int(body.get("Limit") or config.PAGE_SIZE)
        self.markers = OffsetMarkers()

        pending = count_pages(start, total, page_size)
        if pending == 0:
            logger.info(f"[RETRIEVAL {self.label}] Nothing to fetch in [{start}, {total})")
            return []

        burst_limit = min(self.burst_limit, pending)
        burst_count = -(-pending // burst_limit)
        logger.info(
            f"[RETRIEVAL {self.label}] Range [{start}, {total}): "
            f"{pending} pages in {burst_count} bursts of <= {burst_limit}"
        )

        pacer = BurstPacer(self.burst_reset, self.burst_margin)
        records: list[CatalogRecord] = []
        for index, burst in enumerate(iter_page_bursts(start, total, page_size, burst_limit)):
            pacer.start_burst()
            for offset in burst:
                self.markers.schedule(offset)
            logger.info(
                f"[RETRIEVAL {self.label}] Burst {index + 1}/{burst_count}: "
                f"offsets {burst[0]}..{burst[-1]}"
            )
            pages = await asyncio.gather(*(self._fetch_page(body, offset) for offset in burst))
            for page in pages:
                records.extend(page)

            if index < burst_count - 1:
                await pacer.wait()

        missing = self.markers.missing(start, total, page_size)
        if missing:
            logger.warning(f"[RETRIEVAL {self.label}] {len(missing)} pages need remediation")
            result = await self.remediation.remediate(with_offset(body, start), missing)
            for offset in result.recovered:
                self.markers.mark(offset, True)
            records.extend(result.records)

        self.metrics.increment("records", len(records))
        logger.info(f"[RETRIEVAL {self.label}] Retrieved {len(records)} records from {pending} pages")
        return records
