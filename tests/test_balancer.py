"""Tests for the multi-credential load balancer."""
import asyncio
from collections import Counter

import pytest

from catalog_sync.errors import (
    InsufficientQuotaError,
    NoActiveCredentialsError,
    SyncAbortedError,
)
from catalog_sync.fetch.endpoints import build_search_body
from catalog_sync.fetch.rate_limit import iter_page_offsets
from catalog_sync.sync.balancer import (
    CredentialBudget,
    LoadBalancer,
    pick_remediation_budget,
    plan_assignments,
)
from conftest import FakeVendor


def _budget(client_id: str, quota: int, active: bool = True) -> CredentialBudget:
    return CredentialBudget(client_id, "secret", remaining_quota=quota, is_active=active)


def test_floating_surplus_moves_to_larger_credential():
    """Quotas 1000 and 3000 over 4000 records, nominal 2000 each."""
    small, large = _budget("small", 1000), _budget("large", 3000)
    assignments = plan_assignments([large, small], 0, 4000, 50)

    assert [(a.budget.client_id, a.start_offset, a.end_offset) for a in assignments] == [
        ("small", 0, 1000),
        ("large", 1000, 4000),
    ]


@pytest.mark.parametrize(
    "total,page_size,quotas",
    [
        (4000, 50, [1000, 3000]),
        (1234, 50, [600, 600, 600]),
        (1000, 10, [130, 500, 900]),
        (95, 10, [50, 50]),
        (50, 50, [5000]),
        (777, 25, [100, 200, 300, 400]),
    ],
)
def test_slices_cover_every_page_exactly_once(total, page_size, quotas):
    """Union of per-slice page offsets equals the full page grid, no overlap."""
    budgets = [_budget(f"c{i}", quota) for i, quota in enumerate(quotas)]
    assignments = plan_assignments(budgets, 0, total, page_size)

    seen = Counter()
    for assignment in assignments:
        assert assignment.start_offset % page_size == 0
        seen.update(iter_page_offsets(assignment.start_offset, assignment.end_offset, page_size))

    assert set(seen) == set(iter_page_offsets(0, total, page_size))
    assert all(count == 1 for count in seen.values())
    for a, b in zip(assignments, assignments[1:]):
        assert a.end_offset == b.start_offset


def test_slices_respect_quota():
    budgets = [_budget("a", 300), _budget("b", 2000), _budget("c", 700)]
    for assignment in plan_assignments(budgets, 0, 2500, 50):
        assert assignment.size <= assignment.budget.remaining_quota


def test_starting_offset_is_honoured():
    assignments = plan_assignments([_budget("a", 1000)], 500, 1200, 50)
    assert [(a.start_offset, a.end_offset) for a in assignments] == [(500, 1200)]


def test_insufficient_quota_is_fatal():
    with pytest.raises(InsufficientQuotaError):
        plan_assignments([_budget("a", 500), _budget("b", 500)], 0, 2000, 50)


def test_no_active_budget_is_fatal():
    with pytest.raises(NoActiveCredentialsError):
        plan_assignments([_budget("a", 1000, active=False)], 0, 100, 50)


def test_remediation_budget_has_most_headroom():
    assignments = plan_assignments([_budget("a", 1000), _budget("b", 5000)], 0, 2000, 50)
    assert pick_remediation_budget(assignments).client_id == "b"
    assert pick_remediation_budget([]) is None


def _run_balancer(vendor: FakeVendor, credentials, total=None, page_size=10):
    async def run():
        async with vendor.client() as http:
            balancer = LoadBalancer(http, credentials, page_size=page_size, burst_limit=4, burst_reset=0)
            body = build_search_body(offset=0, limit=page_size)
            await balancer.resolve_budgets(body)
            records = await balancer.run(body, total if total is not None else balancer.total_count())
            return records, balancer

    return asyncio.run(run())


def test_each_credential_fetches_its_own_slice():
    """Quotas 30 and 100 records over 100: [0, 30) and [30, 100)."""
    vendor = FakeVendor(total=100, remaining={"client-a": 3, "client-b": 10})
    records, balancer = _run_balancer(vendor, [("client-a", "sa"), ("client-b", "sb")])

    assert len({record.part_number for record in records}) == 100
    assert vendor.offsets_by_client() == {
        "client-a": [0, 10, 20],
        "client-b": [30, 40, 50, 60, 70, 80, 90],
    }
    assert sorted(vendor.probe_requests) == ["client-a", "client-b"]
    assert balancer.metrics.get("pages_ok") == 10


def test_inactive_credential_is_skipped():
    """A credential refused a token is excluded, the other one covers the range."""
    vendor = FakeVendor(total=50, bad_clients={"client-bad"})
    records, balancer = _run_balancer(vendor, [("client-bad", "x"), ("client-a", "sa")])

    assert len(records) == 50
    assert [b.is_active for b in balancer.budgets] == [False, True]
    assert set(vendor.offsets_by_client()) == {"client-a"}


def test_credential_without_quota_is_inactive():
    vendor = FakeVendor(total=50, remaining={"client-a": 0, "client-b": 10})
    records, balancer = _run_balancer(vendor, [("client-a", "sa"), ("client-b", "sb")])

    assert len(records) == 50
    assert [b.is_active for b in balancer.budgets] == [False, True]


def test_all_credentials_failing_is_fatal():
    vendor = FakeVendor(total=50, bad_clients={"client-a", "client-b"})
    with pytest.raises(NoActiveCredentialsError):
        _run_balancer(vendor, [("client-a", "sa"), ("client-b", "sb")])
    assert vendor.page_requests == []


def test_slice_failure_aborts_the_run():
    """Remediation exhaustion in one slice aborts the whole sync."""
    failures = {offset: 100 for offset in range(0, 60, 10)}
    vendor = FakeVendor(total=100, failures=failures, remaining={"client-a": 6, "client-b": 10})
    with pytest.raises(SyncAbortedError):
        _run_balancer(vendor, [("client-a", "sa"), ("client-b", "sb")])


def test_remediation_uses_spare_credential():
    """Failed pages are re-fetched with the credential holding most headroom."""
    vendor = FakeVendor(total=40, failures={10: 1}, remaining={"client-a": 2, "client-b": 50})
    records, _ = _run_balancer(vendor, [("client-a", "sa"), ("client-b", "sb")])

    assert len({record.part_number for record in records}) == 40
    requests_for_10 = [client_id for client_id, offset, _ in vendor.page_requests if offset == 10]
    assert requests_for_10 == ["client-a", "client-b"]
