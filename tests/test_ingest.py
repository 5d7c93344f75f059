from __future__ import annotations

import random
from datetime import date, timedelta
from pathlib import Path

import pytest
from conftest import local_time, make_event

from timecode.db import database_connection, fetch_daily_stat, get_schema_version, rebuild_daily_stats
from timecode.errors import StorageError, ValidationError
from timecode.ingest import BatchTooLarge, ingest_batch, validate_batch

DAY = date(2024, 1, 1)


def _body(*events):
    return {"events": [event.to_payload() for event in events]}


def test_duplicate_delivery_counts_once(db_path: Path):
    event = make_event(seconds=600)
    with database_connection(db_path) as conn:
        first = ingest_batch(conn, _body(event))
        second = ingest_batch(conn, _body(event))
        row = fetch_daily_stat(conn, DAY, "x", "go")

    assert (first.accepted, first.duplicates, first.rejected) == (1, 0, 0)
    assert (second.accepted, second.duplicates, second.rejected) == (0, 1, 0)
    assert row["total_seconds"] == 600
    assert row["active_seconds"] == 600
    assert row["events_count"] == 1


def test_duplicates_inside_one_batch(db_path: Path):
    event = make_event(seconds=60)
    with database_connection(db_path) as conn:
        result = ingest_batch(conn, _body(event, event, event))
        row = fetch_daily_stat(conn, DAY, "x", "go")
    assert (result.accepted, result.duplicates) == (1, 2)
    assert row["total_seconds"] == 60


def test_aggregate_is_independent_of_order_and_batching(tmp_path: Path):
    start = local_time(2024, 1, 1, 8)
    events = [
        make_event(start=start + timedelta(minutes=10 * i), seconds=30 + i, language=lang)
        for i, lang in enumerate(["go", "go", "python", "go", "python", "go"])
    ]
    expected_go = sum(e.duration_seconds for e in events if e.language == "go")
    expected_py = sum(e.duration_seconds for e in events if e.language == "python")

    rng = random.Random(7)
    for attempt in range(3):
        shuffled = events + events[:2]
        rng.shuffle(shuffled)
        with database_connection(tmp_path / f"run-{attempt}.sqlite3") as conn:
            for i in range(0, len(shuffled), attempt + 1):
                ingest_batch(conn, _body(*shuffled[i : i + attempt + 1]))
            go = fetch_daily_stat(conn, DAY, "x", "go")
            py = fetch_daily_stat(conn, DAY, "x", "python")
        assert go["total_seconds"] == expected_go
        assert py["total_seconds"] == expected_py
        assert go["events_count"] == 4


def test_day_is_local_calendar_date(db_path: Path):
    late = make_event(start=local_time(2024, 1, 1, 23, 59, 30), seconds=120)
    with database_connection(db_path) as conn:
        ingest_batch(conn, _body(late))
        assert fetch_daily_stat(conn, date(2024, 1, 1), "x", "go")["total_seconds"] == 120
        assert fetch_daily_stat(conn, date(2024, 1, 2), "x", "go") is None


@pytest.mark.parametrize(
    "field, value",
    [
        ("projectName", ""),
        ("language", None),
        ("machineId", 42),
        ("startedAt", "yesterday"),
        ("durationSeconds", 0),
        ("durationSeconds", 1.5),
        ("durationSeconds", "60"),
        ("isWrite", "true"),
        ("projectPath", 7),
    ],
)
def test_invalid_event_rejects_whole_batch(db_path: Path, field, value):
    good = make_event(seconds=60)
    bad = make_event(start=local_time(2024, 1, 1, 14), seconds=60).to_payload()
    bad[field] = value
    body = {"events": [good.to_payload(), bad]}

    with database_connection(db_path) as conn:
        with pytest.raises(ValidationError):
            ingest_batch(conn, body)
        count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        stats = conn.execute("SELECT COUNT(*) FROM daily_stats").fetchone()[0]
    assert (count, stats) == (0, 0)


def test_end_must_follow_start():
    payload = make_event(seconds=60).to_payload()
    payload["endedAt"] = payload["startedAt"]
    with pytest.raises(ValidationError):
        validate_batch({"events": [payload]})


@pytest.mark.parametrize("body", [None, [], {}, {"events": "nope"}, {"events": [None]}])
def test_malformed_bodies_are_rejected(body):
    with pytest.raises(ValidationError):
        validate_batch(body)


def test_missing_field_is_rejected():
    payload = make_event(seconds=60).to_payload()
    del payload["isWrite"]
    with pytest.raises(ValidationError):
        validate_batch({"events": [payload]})


def test_batch_limit():
    events = [make_event(seconds=10 + i).to_payload() for i in range(3)]
    assert len(validate_batch({"events": events}, max_events=3)) == 3
    with pytest.raises(BatchTooLarge):
        validate_batch({"events": events}, max_events=2)


def test_null_paths_are_accepted(db_path: Path):
    payload = make_event(seconds=60).to_payload()
    assert payload["projectPath"] is None and payload["filePath"] is None
    with database_connection(db_path) as conn:
        assert ingest_batch(conn, {"events": [payload]}).accepted == 1
        row = conn.execute("SELECT * FROM events").fetchone()
    assert row["id"] == payload["id"]
    assert row["started_at"] == payload["startedAt"]
    assert row["day"] == "2024-01-01"


def test_storage_failure_raises_and_keeps_ledger_consistent(db_path: Path):
    first = make_event(seconds=60)
    second = make_event(start=local_time(2024, 1, 1, 15), seconds=90, project="y")
    with database_connection(db_path) as conn:
        conn.execute(
            """
            CREATE TRIGGER fail_second BEFORE INSERT ON daily_stats
            WHEN (SELECT COUNT(*) FROM events) > 1
            BEGIN SELECT RAISE(ABORT, 'disk full'); END
            """
        )
        with pytest.raises(StorageError):
            ingest_batch(conn, _body(first, second))

        ids = [row["id"] for row in conn.execute("SELECT id FROM events")]
        assert ids == [first.id]
        assert fetch_daily_stat(conn, DAY, "x", "go")["total_seconds"] == 60

        conn.execute("DROP TRIGGER fail_second")
        retry = ingest_batch(conn, _body(first, second))
        assert (retry.accepted, retry.duplicates) == (1, 1)
        assert fetch_daily_stat(conn, DAY, "x", "go")["total_seconds"] == 60
        assert fetch_daily_stat(conn, DAY, "y", "go")["total_seconds"] == 90


def test_rebuild_matches_incremental_aggregate(db_path: Path):
    events = [
        make_event(start=local_time(2024, 1, d, 10), seconds=100 * d, project=p)
        for d in (1, 2, 3)
        for p in ("x", "y")
    ]
    with database_connection(db_path) as conn:
        ingest_batch(conn, _body(*events))
        before = [tuple(r) for r in conn.execute(
            "SELECT day, project_name, language, total_seconds, events_count FROM daily_stats ORDER BY 1, 2"
        )]
        conn.execute("UPDATE daily_stats SET total_seconds = 0")
        assert rebuild_daily_stats(conn) == 6
        after = [tuple(r) for r in conn.execute(
            "SELECT day, project_name, language, total_seconds, events_count FROM daily_stats ORDER BY 1, 2"
        )]
    assert before == after


def test_schema_version_is_recorded(db_path: Path):
    with database_connection(db_path) as conn:
        version = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()[0]
    assert version == "1"


def test_existing_schema_version_is_left_alone(db_path: Path):
    with database_connection(db_path) as conn:
        conn.execute("UPDATE meta SET value = '2' WHERE key = 'schema_version'")
    with database_connection(db_path) as conn:
        assert get_schema_version(conn) == 2
