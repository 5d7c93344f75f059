"""SQLite event ledger and daily aggregate."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import SCHEMA_VERSION
from .errors import StorageError
from .models import IngestResult, TimecodeEvent

logger = logging.getLogger(__name__)


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
        timeout=30,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute("PRAGMA foreign_keys = ON;")
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE``; roll back on any error."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS events (
            id TEXT PRIMARY KEY,
            machine_id TEXT NOT NULL,
            editor TEXT NOT NULL,
            os TEXT NOT NULL,
            project_name TEXT NOT NULL,
            project_path TEXT,
            file_path TEXT,
            language TEXT NOT NULL,
            started_at TEXT NOT NULL,
            ended_at TEXT NOT NULL,
            duration_seconds INTEGER NOT NULL,
            is_write INTEGER NOT NULL,
            day TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        );

        CREATE INDEX IF NOT EXISTS idx_events_started_at ON events(started_at);
        CREATE INDEX IF NOT EXISTS idx_events_day ON events(day);

        CREATE TABLE IF NOT EXISTS daily_stats (
            day TEXT NOT NULL,
            project_name TEXT NOT NULL,
            language TEXT NOT NULL,
            total_seconds INTEGER NOT NULL,
            active_seconds INTEGER NOT NULL,
            events_count INTEGER NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
            PRIMARY KEY (day, project_name, language)
        );

        CREATE INDEX IF NOT EXISTS idx_daily_day ON daily_stats(day);

        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )
    # Only a fresh database gets stamped; reads must not take a write lock.
    if get_schema_version(conn) is None:
        conn.execute(
            """
            INSERT INTO meta (key, value) VALUES ('schema_version', ?)
            ON CONFLICT(key) DO NOTHING
            """,
            (str(SCHEMA_VERSION),),
        )


def get_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
    return int(row["value"]) if row else None


def insert_event(conn: sqlite3.Connection, event: TimecodeEvent, day: date) -> bool:
    """Append ``event`` to the ledger. Returns False if the id already exists."""
    cur = conn.execute(
        """
        INSERT INTO events (
            id,
            machine_id,
            editor,
            os,
            project_name,
            project_path,
            file_path,
            language,
            started_at,
            ended_at,
            duration_seconds,
            is_write,
            day
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO NOTHING
        """,
        (
            event.id,
            event.machine_id,
            event.editor,
            event.os,
            event.project_name,
            event.project_path,
            event.file_path,
            event.language,
            event.started_at,
            event.ended_at,
            event.duration_seconds,
            1 if event.is_write else 0,
            day.isoformat(),
        ),
    )
    return cur.rowcount > 0


def increment_daily_stats(
    conn: sqlite3.Connection,
    day: date,
    project_name: str,
    language: str,
    seconds: int,
    events: int = 1,
) -> None:
    conn.execute(
        """
        INSERT INTO daily_stats (
            day, project_name, language, total_seconds, active_seconds, events_count
        ) VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(day, project_name, language) DO UPDATE SET
            total_seconds = total_seconds + excluded.total_seconds,
            active_seconds = active_seconds + excluded.active_seconds,
            events_count = events_count + excluded.events_count,
            updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
        """,
        (day.isoformat(), project_name, language, seconds, seconds, events),
    )


def record_events(
    conn: sqlite3.Connection, events: Iterable[tuple[TimecodeEvent, date]]
) -> IngestResult:
    """Persist already-validated events, one transaction per event.

    Only a first insert of an id touches the aggregate, so replays of the
    same batch leave the totals unchanged.
    """
    result = IngestResult()
    for event, day in events:
        try:
            with transaction(conn):
                if not insert_event(conn, event, day):
                    result.duplicates += 1
                    continue
                increment_daily_stats(
                    conn, day, event.project_name, event.language, event.duration_seconds
                )
        except sqlite3.Error as exc:
            logger.exception("Failed to persist event %s.", event.id)
            raise StorageError("Failed to ingest events") from exc
        result.accepted += 1
    return result


def rebuild_daily_stats(conn: sqlite3.Connection) -> int:
    """Recompute ``daily_stats`` from the ledger. Returns the number of rows written."""
    try:
        with transaction(conn):
            conn.execute("DELETE FROM daily_stats")
            cur = conn.execute(
                """
                INSERT INTO daily_stats (
                    day, project_name, language, total_seconds, active_seconds, events_count
                )
                SELECT
                    day,
                    project_name,
                    language,
                    SUM(duration_seconds),
                    SUM(duration_seconds),
                    COUNT(*)
                FROM events
                GROUP BY day, project_name, language
                """
            )
            written = cur.rowcount
    except sqlite3.Error as exc:
        raise StorageError("Failed to rebuild daily stats") from exc
    logger.info("Rebuilt daily stats: %d rows.", written)
    return written


def fetch_daily_stat(
    conn: sqlite3.Connection, day: date, project_name: str, language: str
) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT day, project_name, language, total_seconds, active_seconds, events_count, updated_at
        FROM daily_stats
        WHERE day = ? AND project_name = ? AND language = ?
        """,
        (day.isoformat(), project_name, language),
    ).fetchone()


def fetch_project_daily(conn: sqlite3.Connection, start: date, end: date) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT day, project_name, SUM(total_seconds) AS seconds
            FROM daily_stats
            WHERE day BETWEEN ? AND ?
            GROUP BY day, project_name
            ORDER BY day ASC, seconds DESC, project_name ASC
            """,
            (start.isoformat(), end.isoformat()),
        )
    )


def fetch_weekday_totals(conn: sqlite3.Connection, start: date, end: date) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT CAST(strftime('%w', day) AS INTEGER) AS day_of_week,
                   SUM(total_seconds) AS seconds
            FROM daily_stats
            WHERE day BETWEEN ? AND ?
            GROUP BY day_of_week
            ORDER BY day_of_week ASC
            """,
            (start.isoformat(), end.isoformat()),
        )
    )


def fetch_language_totals(conn: sqlite3.Connection, start: date, end: date) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT language, SUM(total_seconds) AS seconds
            FROM daily_stats
            WHERE day BETWEEN ? AND ?
            GROUP BY language
            ORDER BY seconds DESC, language ASC
            """,
            (start.isoformat(), end.isoformat()),
        )
    )


def fetch_daily_totals(conn: sqlite3.Connection, start: date, end: date) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT day, SUM(total_seconds) AS seconds
            FROM daily_stats
            WHERE day BETWEEN ? AND ?
            GROUP BY day
            ORDER BY day ASC
            """,
            (start.isoformat(), end.isoformat()),
        )
    )
