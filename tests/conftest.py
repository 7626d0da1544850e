"""Shared fixtures: raw vendor products and an in-memory vendor API."""
import json
from collections import defaultdict
from typing import Optional
from urllib.parse import parse_qs

import httpx
import pytest

from catalog_sync.config import config
from catalog_sync.errors import StoreWriteError
from catalog_sync.parse.models import MergePlan, WriteSummary


def make_raw_product(
    part_number: str,
    price: float = 0.1,
    quantity: int = 100,
    resistance: str = "10 kOhms",
    features: Optional[list[str]] = None,
) -> dict:
    """Raw product shaped like a keyword search result entry."""
    parameters = [
        {"ParameterText": "Resistance", "ValueText": resistance},
        {"ParameterText": "Tolerance", "ValueText": "±1%"},
        {"ParameterText": "Power (Watts)", "ValueText": "0.1W, 1/10W"},
        {"ParameterText": "Number of Terminations", "ValueText": "2"},
        {"ParameterText": "Package / Case", "ValueText": "0603 (1608 Metric)"},
    ]
    for feature in features or []:
        parameters.append({"ParameterText": "Features", "ValueText": feature})

    return {
        "ManufacturerProductNumber": part_number,
        "Description": {
            "ProductDescription": f"RES {resistance} 1% 1/10W 0603",
            "DetailedDescription": f"{resistance} ±1% 0.1W Chip Resistor",
        },
        "ProductUrl": f"https://www.digikey.com/en/products/detail/{part_number}",
        "DatasheetUrl": "https://example.com/datasheet.pdf",
        "PhotoUrl": "https://example.com/photo.jpg",
        "ProductStatus": {"Id": 0, "Status": "Active"},
        "Parameters": parameters,
        "Category": {
            "Name": "Resistors",
            "ChildCategories": [{"Name": "Chip Resistor - Surface Mount"}],
        },
        "Series": {"Name": "RC"},
        "Classifications": {"RohsStatus": "ROHS3 Compliant"},
        "ProductVariations": [
            {
                "PackageType": {"Id": 1, "Name": "Tape & Reel (TR)"},
                "StandardPricing": [{"BreakQuantity": 5000, "UnitPrice": price}],
                "QuantityAvailableforPackageType": quantity,
            },
            {
                "PackageType": {"Id": 2, "Name": "Cut Tape (CT)"},
                "StandardPricing": [
                    {"BreakQuantity": 1, "UnitPrice": price * 10},
                    {"BreakQuantity": 10, "UnitPrice": price * 5},
                ],
                "QuantityAvailableforPackageType": quantity // 2,
            },
        ],
    }


def part_number_at(index: int) -> str:
    return f"PN-{index:05d}"


class FakeVendor:
    """In-memory vendor API served through httpx.MockTransport.

    failures maps an offset to how many times its page answers HTTP 500
    before succeeding; malformed and disconnects do the same with a 200
    that has no Products list and with a dropped connection. remaining maps
    a client id to the request budget reported by probes; bad_clients are
    refused a token. total_count=False leaves ProductsCount out of probes.
    """

    def __init__(
        self,
        total: int,
        failures: Optional[dict[int, int]] = None,
        remaining: Optional[dict[str, int]] = None,
        bad_clients: Optional[set[str]] = None,
        malformed: Optional[dict[int, int]] = None,
        disconnects: Optional[dict[int, int]] = None,
        total_count: bool = True,
    ):
        self.total = total
        self.failures = dict(failures or {})
        self.malformed = dict(malformed or {})
        self.disconnects = dict(disconnects or {})
        self.total_count = total_count
        self.remaining = remaining or {}
        self.bad_clients = bad_clients or set()
        self.page_requests: list[tuple[str, int, int]] = []
        self.probe_requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == config.TOKEN_PATH:
            form = parse_qs(request.content.decode())
            client_id = form["client_id"][0]
            if client_id in self.bad_clients:
                return httpx.Response(401, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": f"token-{client_id}"})

        if request.url.path == config.SEARCH_PATH:
            client_id = request.headers["X-DIGIKEY-Client-Id"]
            assert request.headers["Authorization"] == f"Bearer token-{client_id}"
            body = json.loads(request.content)
            offset, limit = body["Offset"], body["Limit"]

            if limit == 1:
                self.probe_requests.append(client_id)
                return httpx.Response(
                    200,
                    headers={config.RATE_LIMIT_HEADER: str(self.remaining.get(client_id, 1000))},
                    json=self._probe_body(),
                )

            self.page_requests.append((client_id, offset, limit))
            if self.failures.get(offset, 0) > 0:
                self.failures[offset] -= 1
                return httpx.Response(500, json={"error": "upstream"})
            if self.malformed.get(offset, 0) > 0:
                self.malformed[offset] -= 1
                return httpx.Response(200, json={"oops": 1})
            if self.disconnects.get(offset, 0) > 0:
                self.disconnects[offset] -= 1
                raise httpx.ConnectError("connection reset by peer", request=request)

            products = [
                make_raw_product(part_number_at(i)) for i in range(offset, min(offset + limit, self.total))
            ]
            return httpx.Response(200, json={"ProductsCount": self.total, "Products": products})

        return httpx.Response(404)

    def _probe_body(self) -> dict:
        body = {"Products": [make_raw_product(part_number_at(0))]}
        if self.total_count:
            body["ProductsCount"] = self.total
        return body

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def offsets_by_client(self) -> dict[str, list[int]]:
        by_client: dict[str, list[int]] = defaultdict(list)
        for client_id, offset, _ in self.page_requests:
            by_client[client_id].append(offset)
        return {client_id: sorted(offsets) for client_id, offsets in by_client.items()}


class FakeStore:
    """In-memory stand-in for CatalogStore keyed by part_number."""

    def __init__(self, fail_writes: bool = False):
        self.rows: dict[str, dict] = {}
        self.fail_writes = fail_writes
        self.lookups: list[list[str]] = []
        self.applied: list[MergePlan] = []
        self.closed = False

    async def fetch_existing(self, part_numbers):
        keys = list(part_numbers)
        self.lookups.append(keys)
        return {key: self.rows[key] for key in keys if key in self.rows}

    async def apply(self, plan: MergePlan) -> WriteSummary:
        if self.fail_writes:
            raise StoreWriteError("store unavailable", len(plan.inserts), len(plan.updates))
        self.applied.append(plan)
        for action in plan.inserts:
            self.rows[action.record.part_number] = action.record.to_document()
        for action in plan.updates:
            self.rows[action.part_number].update(action.to_row())
        return WriteSummary(inserted=len(plan.inserts), updated=len(plan.updates))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def raw_product():
    return make_raw_product("RC0603FR-0710KL")


@pytest.fixture
def fake_store():
    return FakeStore()
