from __future__ import annotations

from datetime import datetime, timedelta, timezone

from timecode.models import ActivityContext
from timecode.segments import SegmentBuilder

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
IDLE = timedelta(seconds=120)
A = ActivityContext(project_name="alpha", file_path="/a/main.go", language="go")
B = ActivityContext(project_name="alpha", file_path="/a/util.py", language="python")


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def test_context_switch_then_shutdown_emits_two_segments():
    builder = SegmentBuilder()
    assert builder.activity(A, at(0)) == []

    closed = builder.activity(B, at(40))
    assert len(closed) == 1
    assert (closed[0].context, closed[0].started_at, closed[0].ended_at) == (A, at(0), at(40))

    closed += builder.shutdown(at(100))
    assert len(closed) == 2
    assert (closed[1].context, closed[1].started_at, closed[1].ended_at) == (B, at(40), at(100))
    assert not builder.is_tracking


def test_idle_tick_closes_at_last_activity():
    builder = SegmentBuilder()
    builder.activity(A, at(0))
    builder.activity(A, at(10))

    closed = builder.tick(at(140), IDLE)
    assert len(closed) == 1
    assert closed[0].started_at == at(0)
    assert closed[0].ended_at == at(10)
    assert not builder.is_tracking


def test_active_tick_rolls_segment_over():
    builder = SegmentBuilder()
    builder.activity(A, at(0), is_write=True)

    first = builder.tick(at(30), IDLE)
    assert [(s.started_at, s.ended_at, s.had_write) for s in first] == [(at(0), at(30), True)]
    assert builder.context == A

    second = builder.tick(at(60), IDLE)
    assert [(s.started_at, s.ended_at, s.had_write) for s in second] == [(at(30), at(60), False)]


def test_idle_after_rollover_yields_empty_tail():
    builder = SegmentBuilder()
    builder.activity(A, at(0))
    builder.tick(at(30), IDLE)

    closed = builder.tick(at(200), IDLE)
    assert len(closed) == 1
    # The reopened segment started after the last activity, so it has no length.
    assert closed[0].duration_seconds < 0
    assert not builder.is_tracking


def test_focus_lost_closes_at_blur_time():
    builder = SegmentBuilder()
    builder.activity(A, at(0))
    closed = builder.focus_lost(at(25))
    assert [(s.started_at, s.ended_at) for s in closed] == [(at(0), at(25))]
    assert builder.focus_lost(at(30)) == []


def test_same_context_activity_extends_and_marks_write():
    builder = SegmentBuilder()
    builder.activity(A, at(0))
    assert builder.activity(A, at(5), is_write=True) == []
    assert builder.last_activity_at == at(5)

    closed = builder.shutdown(at(20))
    assert closed[0].had_write is True


def test_activity_while_idle_starts_new_segment():
    builder = SegmentBuilder()
    builder.activity(A, at(0))
    builder.tick(at(200), IDLE)

    assert builder.activity(A, at(300)) == []
    closed = builder.shutdown(at(310))
    assert (closed[0].started_at, closed[0].ended_at) == (at(300), at(310))


def test_tick_while_idle_does_nothing():
    assert SegmentBuilder().tick(at(10), IDLE) == []


def test_current_seconds():
    builder = SegmentBuilder()
    assert builder.current_seconds(at(0), IDLE) == 0
    builder.activity(A, at(0))
    assert builder.current_seconds(at(45.5), IDLE) == 45
    assert builder.current_seconds(at(500), IDLE) == 0
