from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Sequence

import pytest

from timecode.encoder import ClientIdentity, encode_segment
from timecode.errors import TransientDeliveryError
from timecode.models import ActivityContext, IngestResult, Segment, TimecodeEvent
from timecode.scheduler import ManualScheduler


class FakeTransport:
    """Records delivered batches; fails while ``failures`` is positive."""

    def __init__(self, failures: int = 0, daily_total: int = 0) -> None:
        self.failures = failures
        self.daily_total = daily_total
        self.batches: list[list[TimecodeEvent]] = []
        self.attempts = 0
        self.timeouts: list[Optional[timedelta]] = []
        self.on_send = None

    @property
    def delivered(self) -> list[TimecodeEvent]:
        return [event for batch in self.batches for event in batch]

    def send(
        self, events: Sequence[TimecodeEvent], timeout: Optional[timedelta] = None
    ) -> IngestResult:
        self.attempts += 1
        self.timeouts.append(timeout)
        if self.on_send:
            self.on_send()
        if self.failures > 0:
            self.failures -= 1
            raise TransientDeliveryError("HTTP 503", status_code=503)
        self.batches.append(list(events))
        return IngestResult(accepted=len(events))

    def fetch_daily_total(self, day: date) -> int:
        return self.daily_total


def local_time(year: int, month: int, day: int, hour: int = 12, minute: int = 0, second: int = 0) -> datetime:
    """An aware datetime for a wall-clock time in the local zone."""
    return datetime(year, month, day, hour, minute, second).astimezone()


def make_event(
    *,
    start: Optional[datetime] = None,
    seconds: int = 600,
    project: str = "x",
    language: str = "go",
    file_path: Optional[str] = None,
    machine_id: str = "machine-1",
    is_write: bool = False,
) -> TimecodeEvent:
    start = start or local_time(2024, 1, 1)
    segment = Segment(
        context=ActivityContext(project_name=project, file_path=file_path, language=language),
        started_at=start,
        ended_at=start + timedelta(seconds=seconds),
        had_write=is_write,
    )
    event = encode_segment(segment, ClientIdentity(machine_id=machine_id, os="linux"))
    assert event is not None
    return event


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "timecode.sqlite3"
