"""Tests for the CLI entry point and configuration parsing."""
import logging

import pytest

from catalog_sync import main as cli
from catalog_sync.config import Config


class RecordingRunner:
    calls: list[tuple[str, dict]] = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs

    async def run(self):
        RecordingRunner.calls.append(("run", self.kwargs))
        return {}

    async def replay(self, spool_file):
        RecordingRunner.calls.append(("replay", {**self.kwargs, "spool_file": spool_file}))
        return {}


@pytest.fixture
def recording_runner(monkeypatch):
    RecordingRunner.calls = []
    monkeypatch.setattr(cli, "SyncRunner", RecordingRunner)
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    return RecordingRunner


@pytest.fixture
def credentials_env(monkeypatch):
    monkeypatch.setattr(Config, "VENDOR_CREDENTIALS", "client-a:secret-a")
    monkeypatch.setattr(Config, "SUPABASE_URL", "https://db.example")
    monkeypatch.setattr(Config, "SUPABASE_SERVICE_ROLE", "service-role")


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.start_offset is None
    assert args.total is None
    assert args.dry_run is False
    assert args.replay is None


def test_parse_args_values():
    args = cli.parse_args(
        ["--start-offset", "100", "--total", "500", "--burst-limit", "10", "--burst-reset", "2.5", "--workers", "2"]
    )
    assert (args.start_offset, args.total) == (100, 500)
    assert args.burst_limit == 10
    assert args.burst_reset == 2.5
    assert args.workers == 2


def test_dev_mode_forces_dry_run_and_small_bursts(recording_runner, credentials_env, monkeypatch):
    monkeypatch.setattr(Config, "SUPABASE_URL", None)
    cli.main(["--dev"])

    [(kind, kwargs)] = recording_runner.calls
    assert kind == "run"
    assert kwargs["dry_run"] is True
    assert kwargs["burst_limit"] == 5
    assert kwargs["burst_reset"] == 2.0
    assert kwargs["workers"] == 1


def test_replay_skips_credentials(recording_runner, credentials_env, monkeypatch, tmp_path):
    monkeypatch.setattr(Config, "VENDOR_CREDENTIALS", None)
    monkeypatch.setattr(Config, "CLIENT_ID", None)
    spool_file = tmp_path / "run_x.jsonl"
    cli.main(["--replay", str(spool_file)])

    [(kind, kwargs)] = recording_runner.calls
    assert kind == "replay"
    assert kwargs["spool_file"] == spool_file


def test_missing_config_exits_with_error(recording_runner, monkeypatch):
    monkeypatch.setattr(Config, "VENDOR_CREDENTIALS", None)
    monkeypatch.setattr(Config, "CLIENT_ID", None)
    monkeypatch.setattr(Config, "CLIENT_SECRET", None)
    with pytest.raises(SystemExit) as exc:
        cli.main(["--dry-run"])
    assert exc.value.code == 1
    assert recording_runner.calls == []


def test_fatal_error_exits_with_error(recording_runner, credentials_env, monkeypatch):
    async def boom(self):
        raise RuntimeError("Bearer abc.def")

    monkeypatch.setattr(RecordingRunner, "run", boom)
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 1


def test_credentials_list_parsing(monkeypatch):
    monkeypatch.setattr(Config, "VENDOR_CREDENTIALS", "a:1, b:2,")
    assert Config.credentials() == [("a", "1"), ("b", "2")]


def test_credentials_fall_back_to_single_pair(monkeypatch):
    monkeypatch.setattr(Config, "VENDOR_CREDENTIALS", None)
    monkeypatch.setattr(Config, "CLIENT_ID", "solo")
    monkeypatch.setattr(Config, "CLIENT_SECRET", "s3cret")
    assert Config.credentials() == [("solo", "s3cret")]


def test_malformed_credentials_do_not_leak_secret(monkeypatch):
    monkeypatch.setattr(Config, "VENDOR_CREDENTIALS", "no-separator-here")
    with pytest.raises(ValueError) as exc:
        Config.credentials()
    assert "no-separator-here" not in str(exc.value)


def test_zero_burst_reset_is_kept_and_logged(recording_runner, credentials_env, caplog):
    caplog.set_level(logging.INFO, logger="catalog_sync.main")
    cli.main(["--burst-reset", "0", "--concurrency", "2"])

    [(_, kwargs)] = recording_runner.calls
    assert kwargs["burst_reset"] == 0.0
    assert "/ 0.0s" in caplog.text
    assert "Concurrency: 2" in caplog.text


@pytest.mark.parametrize(
    "argv", [["--concurrency", "0"], ["--burst-limit", "-1"], ["--workers", "0"], ["--burst-reset", "-2"]]
)
def test_invalid_pacing_values_are_rejected(argv):
    with pytest.raises(SystemExit) as exc:
        cli.parse_args(argv)
    assert exc.value.code == 2
