import json

import pytest
from typer.testing import CliRunner

import app.cli as cli

runner = CliRunner()


class StubService:
    def __init__(self, success=True):
        self.success = success
        self.since = []

    async def sync_stations(self):
        return {"success": self.success, "syncId": 1, "stationsProcessed": 3}

    async def sync_prices(self, since=None):
        self.since.append(since)
        return {"success": self.success, "syncId": 2, "pricesProcessed": 2}


@pytest.fixture()
def stub(monkeypatch):
    svc = StubService()

    async def _prepare():
        return None

    monkeypatch.setattr(cli, "_service", lambda: svc)
    monkeypatch.setattr(cli, "_prepare", _prepare)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return svc


def test_stations_command_prints_summary(stub):
    result = runner.invoke(cli.app, ["stations"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["stationsProcessed"] == 3


def test_prices_command_passes_since(stub):
    result = runner.invoke(cli.app, ["prices", "--since", "2026-10-19T00:00:00Z"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["pricesProcessed"] == 2
    assert stub.since == ["2026-10-19T00:00:00Z"]


def test_failed_sync_exits_non_zero(stub):
    stub.success = False

    result = runner.invoke(cli.app, ["prices"])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["success"] is False


def test_daemon_command_reports_runs(stub, monkeypatch):
    import app.ingestion.scheduler as scheduler

    seen = {}

    async def fake_daemon(svc, interval_minutes=None, stop_event=None, *, sync_stations_on_start=None, max_runs=None):
        seen.update(svc=svc, interval=interval_minutes, stations_first=sync_stations_on_start)
        return 4

    monkeypatch.setattr(scheduler, "run_daemon", fake_daemon)

    result = runner.invoke(cli.app, ["daemon", "--interval-minutes", "5", "--stations-first"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"success": True, "runs": 4}
    assert seen == {"svc": stub, "interval": 5.0, "stations_first": True}
