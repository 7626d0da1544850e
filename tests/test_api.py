"""Tests for the HTTP surface."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from catalog_sync.api import main as api
from catalog_sync.api.main import app, get_portal, get_runner_factory, get_state_db
from catalog_sync.config import config
from catalog_sync.store.state import StateDB

AUTH = {"Authorization": "Bearer secret-key"}


class FakeRunner:
    """Records construction arguments and returns a canned summary."""

    instances: list["FakeRunner"] = []

    def __init__(self, fail: bool = False, **kwargs):
        self.kwargs = kwargs
        self.run_id = kwargs.get("run_id") or "fake-run"
        self.fail = fail
        self.ran = False
        FakeRunner.instances.append(self)

    async def run(self):
        self.ran = True
        if self.fail:
            raise RuntimeError("vendor down access_token=abc123")
        return {"run_id": self.run_id, "status": "ok", "inserted": 3, "updated": 1}


@pytest.fixture
def state_db(tmp_path):
    db = StateDB(tmp_path / "state.db")
    asyncio.run(db.initialize())
    return db


@pytest.fixture
def client(monkeypatch, state_db):
    monkeypatch.setattr(config, "API_KEY", "secret-key")
    FakeRunner.instances = []
    app.dependency_overrides[get_state_db] = lambda: state_db
    app.dependency_overrides[get_runner_factory] = lambda: FakeRunner
    app.dependency_overrides[get_portal] = lambda: object()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_needs_no_auth(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_token_is_401(client):
    assert client.get("/runs/latest").status_code == 401


def test_wrong_token_is_403(client):
    response = client.get("/runs/latest", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 403


def test_unset_api_key_refuses_everyone(client, monkeypatch):
    monkeypatch.setattr(config, "API_KEY", None)
    assert client.get("/runs/latest", headers=AUTH).status_code == 403


def test_latest_run_404_when_ledger_empty(client):
    assert client.get("/runs/latest", headers=AUTH).status_code == 404


def test_latest_run_returns_most_recent(client, state_db):
    async def seed():
        await state_db.start_run(0, "older")
        await state_db.fail_run("older", "boom")
        await state_db.start_run(0, "newer")
        await state_db.finish_run("newer", 10, 4, 2)

    asyncio.run(seed())
    response = client.get("/runs/latest", headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert body["run_id"] == "newer"
    assert body["status"] == "ok"
    assert body["inserted"] == 4


def test_sync_is_accepted_and_runs_in_background(client):
    response = client.post("/sync", json={"dry_run": True, "total": 100}, headers=AUTH)

    assert response.status_code == 202
    run_id = response.json()["run_id"]
    assert response.json()["status"] == "started"
    [runner] = FakeRunner.instances
    assert runner.run_id == run_id
    assert runner.kwargs["dry_run"] is True
    assert runner.kwargs["total"] == 100
    assert runner.ran


def test_sync_without_body_uses_defaults(client):
    response = client.post("/sync", headers=AUTH)
    assert response.status_code == 202
    assert FakeRunner.instances[0].kwargs["dry_run"] is False


def test_sync_wait_returns_summary(client):
    response = client.post("/sync/wait", json={}, headers=AUTH)
    assert response.status_code == 200
    assert response.json()["inserted"] == 3


def test_sync_wait_failure_is_500_and_redacted(client):
    app.dependency_overrides[get_runner_factory] = lambda: (lambda **kw: FakeRunner(fail=True, **kw))
    response = client.post("/sync/wait", json={}, headers=AUTH)

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["error"] == "RuntimeError"
    assert "access_token=[REDACTED]" in detail["message"]
    assert "abc123" not in detail["message"]


def test_unknown_csv_document_is_400(client):
    response = client.get("/csv/payroll", headers=AUTH)
    assert response.status_code == 400
    assert "inventory" in response.json()["detail"]


def test_csv_download(client, monkeypatch):
    requested = []

    async def fake_download(http, portal, document):
        requested.append(document)
        return b"part,qty\nPN-1,5\n"

    monkeypatch.setattr(api, "download_report", fake_download)
    response = client.get("/csv/inventory", headers=AUTH)

    assert response.status_code == 200
    assert requested == ["inventory"]
    assert response.content == b"part,qty\nPN-1,5\n"
    assert response.headers["content-type"].startswith("text/csv")
    assert "digikey_inventory_report.csv" in response.headers["content-disposition"]


def test_csv_download_failure_is_500(client, monkeypatch):
    async def failing_download(http, portal, document):
        raise RuntimeError("portal unreachable")

    monkeypatch.setattr(api, "download_report", failing_download)
    response = client.get("/csv/sales", headers=AUTH)
    assert response.status_code == 500


def test_run_stats_counts_by_status(client, state_db):
    async def seed():
        await state_db.start_run(0, "a")
        await state_db.finish_run("a", 1, 1, 0)
        await state_db.start_run(0, "b")
        await state_db.fail_run("b", "boom")
        await state_db.start_run(0, "c")

    asyncio.run(seed())
    response = client.get("/runs/stats", headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {"ok": 1, "failed": 1, "running": 1}
