from __future__ import annotations

import threading
from datetime import timedelta

from timecode.scheduler import ManualScheduler, ThreadingScheduler


def test_call_later_runs_when_due(scheduler: ManualScheduler):
    calls = []
    scheduler.call_later(5, lambda: calls.append(scheduler.now()))
    start = scheduler.now()

    scheduler.advance(4)
    assert calls == []
    scheduler.advance(1)
    assert calls == [start + timedelta(seconds=5)]


def test_call_every_repeats_until_cancelled(scheduler: ManualScheduler):
    calls = []
    handle = scheduler.call_every(timedelta(seconds=10), lambda: calls.append(len(calls)))

    scheduler.advance(35)
    assert calls == [0, 1, 2]

    handle.cancel()
    scheduler.advance(100)
    assert calls == [0, 1, 2]
    assert scheduler.pending() == 0


def test_callbacks_run_in_time_order(scheduler: ManualScheduler):
    order = []
    scheduler.call_later(3, lambda: order.append("b"))
    scheduler.call_later(1, lambda: order.append("a"))
    scheduler.call_later(3, lambda: order.append("c"))
    scheduler.advance(10)
    assert order == ["a", "b", "c"]


def test_callbacks_scheduled_during_advance_run_in_same_advance(scheduler: ManualScheduler):
    order = []

    def first():
        order.append("first")
        scheduler.call_later(0, lambda: order.append("second"))

    scheduler.call_later(1, first)
    scheduler.advance(1)
    assert order == ["first", "second"]


def test_threading_scheduler_fires_and_cancels():
    scheduler = ThreadingScheduler()
    fired = threading.Event()
    scheduler.call_later(0.01, fired.set)
    assert fired.wait(2)

    ticks = threading.Event()
    handle = scheduler.call_every(0.01, ticks.set)
    assert ticks.wait(2)
    handle.cancel()
    assert handle.cancelled
