"""Timer abstraction used by the tracker and the outbound queue.

Production code runs on :class:`ThreadingScheduler`. Tests drive
:class:`ManualScheduler`, whose clock only moves when ``advance`` is called.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], object]
Interval = Union[timedelta, float]


def _as_seconds(value: Interval) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class Handle:
    """Cancellation token for a scheduled callback."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None) -> None:
        self._cancelled = threading.Event()
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        if self._on_cancel:
            self._on_cancel()


class Scheduler(Protocol):
    def now(self) -> datetime: ...

    def call_later(self, delay: Interval, callback: Callback) -> Handle: ...

    def call_every(self, interval: Interval, callback: Callback) -> Handle: ...


def _run_callback(callback: Callback) -> None:
    try:
        callback()
    except Exception:  # pragma: no cover - keeps timer threads alive
        logger.exception("Scheduled callback %r failed.", callback)


class ThreadingScheduler:
    """Wall-clock scheduler backed by daemon threads."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: Interval, callback: Callback) -> Handle:
        timer = threading.Timer(max(0.0, _as_seconds(delay)), _run_callback, args=(callback,))
        timer.daemon = True
        handle = Handle(on_cancel=timer.cancel)
        timer.start()
        return handle

    def call_every(self, interval: Interval, callback: Callback) -> Handle:
        seconds = _as_seconds(interval)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        handle = Handle()

        def loop() -> None:
            # Sleep in an interruptible manner.
            while not handle._cancelled.wait(seconds):
                _run_callback(callback)

        threading.Thread(target=loop, daemon=True).start()
        return handle


class ManualScheduler:
    """Virtual-time scheduler; nothing runs until :meth:`advance` is called."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._queue: list[tuple[datetime, int, Callback, Handle]] = []
        self._counter = itertools.count()

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: Interval, callback: Callback) -> Handle:
        handle = Handle()
        due = self._now + timedelta(seconds=max(0.0, _as_seconds(delay)))
        heapq.heappush(self._queue, (due, next(self._counter), callback, handle))
        return handle

    def call_every(self, interval: Interval, callback: Callback) -> Handle:
        seconds = _as_seconds(interval)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        handle = Handle()

        def fire() -> None:
            callback()
            if not handle.cancelled:
                self._push(seconds, fire, handle)

        self._push(seconds, fire, handle)
        return handle

    def pending(self) -> int:
        return sum(1 for *_, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: Interval) -> None:
        """Move the clock forward, running every callback that falls due."""
        target = self._now + timedelta(seconds=_as_seconds(seconds))
        while self._queue and self._queue[0][0] <= target:
            due, _, callback, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            callback()
        self._now = target

    def run_pending(self) -> None:
        """Run callbacks that are due right now (zero-delay flushes)."""
        self.advance(0)

    def _push(self, seconds: float, callback: Callback, handle: Handle) -> None:
        due = self._now + timedelta(seconds=seconds)
        heapq.heappush(self._queue, (due, next(self._counter), callback, handle))
