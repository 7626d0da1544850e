"""Vendor search API client."""
import logging
from typing import Any, NamedTuple, Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from catalog_sync.config import config
from catalog_sync.errors import MalformedPageError, VendorAPIError
from catalog_sync.fetch.endpoints import search_url, with_offset
from catalog_sync.fetch.rate_limit import InFlightLimiter
from catalog_sync.parse.models import CatalogRecord
from catalog_sync.sync.normalizer import normalize_products

logger = logging.getLogger(__name__)


def create_http_client() -> httpx.AsyncClient:
    """Shared connection pool for one sync run."""
    limits = httpx.Limits(
        max_connections=100,
        max_keepalive_connections=20,
    )
    return httpx.AsyncClient(
        http2=True,
        timeout=config.TIMEOUT,
        follow_redirects=False,
        limits=limits,
    )


class ProbeResult(NamedTuple):
    remaining_requests: int
    total_count: Optional[int]


class VendorClient:
    """Search API calls on behalf of one credential."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: str,
        access_token: str,
        limiter: Optional[InFlightLimiter] = None,
    ):
        self.http = http
        self.client_id = client_id
        self.access_token = access_token
        self.limiter = limiter or InFlightLimiter(config.CONCURRENCY)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "X-DIGIKEY-Client-Id": self.client_id,
            "Content-Type": "application/json",
        }

    async def search(self, body: dict[str, Any]) -> httpx.Response:
        """POST one search request under the in-flight limiter."""
        async with self.limiter:
            return await self.http.post(
                search_url(),
                json=body,
                headers=self._headers(),
                timeout=config.TIMEOUT,
            )

    async def fetch_page(self, body: dict[str, Any]) -> list[CatalogRecord]:
        """Fetch and normalize one page.

        Raises VendorAPIError on non-2xx and MalformedPageError when the body
        is not a search result. Transport errors propagate from httpx.
        """
        offset = body.get("Offset")
        response = await self.search(body)
        if not response.is_success:
            raise VendorAPIError(response.status_code, offset, response.reason_phrase)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedPageError(f"Invalid JSON at offset {offset}: {e}") from e

        products = data.get("Products") if isinstance(data, dict) else None
        if not isinstance(products, list):
            raise MalformedPageError(f"No Products list at offset {offset}")

        try:
            return normalize_products(products)
        except MalformedPageError:
            raise
        except (ValueError, TypeError, AttributeError) as e:
            raise MalformedPageError(f"Unparseable product at offset {offset}: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def probe(self, body: dict[str, Any]) -> ProbeResult:
        """Minimal request reading the remaining request budget and total count."""
        response = await self.search(with_offset(body, body.get("Offset", 0), limit=1))
        if not response.is_success:
            raise VendorAPIError(response.status_code, body.get("Offset"), "probe failed")

        remaining_header = response.headers.get(config.RATE_LIMIT_HEADER)
        try:
            remaining = int(remaining_header) if remaining_header is not None else 0
        except ValueError:
            logger.warning(f"Unparseable {config.RATE_LIMIT_HEADER} header: {remaining_header!r}")
            remaining = 0

        total = None
        try:
            data = response.json()
            if isinstance(data, dict) and data.get("ProductsCount") is not None:
                total = int(data["ProductsCount"])
        except ValueError:
            logger.warning("Probe response body is not valid JSON")

        return ProbeResult(remaining_requests=remaining, total_count=total)

