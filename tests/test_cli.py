from __future__ import annotations

from pathlib import Path

from conftest import local_time, make_event
from typer.testing import CliRunner

from timecode.cli import app
from timecode.db import database_connection, fetch_daily_stat
from timecode.ingest import ingest_batch
from timecode.store import JsonFileStore, save_pending

runner = CliRunner()


def _seed(db_path: Path) -> None:
    events = [
        make_event(start=local_time(2024, 1, 1, 9), seconds=3600, project="alpha"),
        make_event(start=local_time(2024, 1, 2, 9), seconds=1800, project="beta", language="python"),
    ]
    with database_connection(db_path) as conn:
        ingest_batch(conn, {"events": [event.to_payload() for event in events]})


def test_summary_prints_totals(db_path: Path):
    _seed(db_path)
    result = runner.invoke(app, ["summary", "--from", "2024-01-01", "--to", "2024-01-02", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert "Total coding time: 01:30:00" in result.output
    assert "alpha" in result.output
    assert "Mon" in result.output


def test_summary_rejects_bad_range(db_path: Path):
    result = runner.invoke(app, ["summary", "--from", "2024-01-05", "--to", "2024-01-01", "--db", str(db_path)])
    assert result.exit_code != 0


def test_rebuild_restores_aggregate(db_path: Path):
    _seed(db_path)
    with database_connection(db_path) as conn:
        conn.execute("DELETE FROM daily_stats")

    result = runner.invoke(app, ["rebuild", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert "Rebuilt 2" in result.output
    with database_connection(db_path) as conn:
        row = fetch_daily_stat(conn, local_time(2024, 1, 1).date(), "alpha", "go")
    assert row["total_seconds"] == 3600


def test_status_reports_pending_events(tmp_path: Path):
    state = tmp_path / "client-state.json"
    save_pending(JsonFileStore(state), [make_event(seconds=60)])
    result = runner.invoke(app, ["status", "--state", str(state)])
    assert result.exit_code == 0, result.output
    assert "Pending events: 1" in result.output


def test_flush_reports_failure_when_server_unreachable(tmp_path: Path):
    state = tmp_path / "client-state.json"
    save_pending(JsonFileStore(state), [make_event(seconds=60)])
    result = runner.invoke(app, ["flush", "--url", "http://127.0.0.1:9", "--state", str(state)])
    assert result.exit_code == 1
    assert "1 events still pending" in result.output
