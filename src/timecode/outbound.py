"""Durable outbound queue with batching and exponential backoff."""

from __future__ import annotations

import logging
import threading
from datetime import date, timedelta
from typing import Optional

from .config import QueueSettings
from .encoder import local_day, parse_timestamp
from .errors import ConfigurationError, TransientDeliveryError
from .models import IngestResult, TimecodeEvent
from .scheduler import Handle, Scheduler
from .store import DAILY_TOTAL_KEY, MemoryStore, StateStore, load_pending, save_pending
from .transport import Transport

logger = logging.getLogger(__name__)


class EventQueue:
    """Buffers encoded events and delivers them in order, at least once.

    Events stay in the pending list until the server acknowledges the batch
    that carries them, so a failed or interrupted flush never loses data.
    The pending list is mirrored into the host store after every change.
    """

    def __init__(
        self,
        transport: Transport,
        scheduler: Scheduler,
        settings: Optional[QueueSettings] = None,
        store: Optional[StateStore] = None,
    ) -> None:
        self._transport = transport
        self._scheduler = scheduler
        self.settings = settings or QueueSettings()
        self._store = store if store is not None else MemoryStore()
        self._pending: list[TimecodeEvent] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._last_error: Optional[str] = None
        self._backoff = self.settings.initial_retry
        self._timer: Optional[Handle] = None
        self._scheduled: Optional[Handle] = None
        self._retry_scheduled = False
        self._today_day: Optional[date] = None
        self._today_seconds = 0

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def backoff(self) -> timedelta:
        return self._backoff

    @property
    def flush_in_flight(self) -> bool:
        return self._flush_lock.locked()

    def pending(self) -> list[TimecodeEvent]:
        with self._lock:
            return list(self._pending)

    def restore(self) -> int:
        """Reload events persisted by a previous process; returns how many."""
        stored_total = self._store.get(DAILY_TOTAL_KEY) or {}
        with self._lock:
            known = {event.id for event in self._pending}
            restored = [event for event in load_pending(self._store) if event.id not in known]
            self._pending[0:0] = restored
            if stored_total.get("day") == self._today().isoformat():
                self._today_day = self._today()
                self._today_seconds = int(stored_total.get("seconds", 0))
        if restored:
            logger.info("Restored %d pending events.", len(restored))
        return len(restored)

    def start(self) -> None:
        """(Re)start the periodic flush timer with the current interval."""
        if self._timer:
            self._timer.cancel()
        self._timer = self._scheduler.call_every(self.settings.flush_interval, self._on_timer)

    def stop(self) -> None:
        if self._timer:
            self._timer.cancel()
            self._timer = None
        if self._scheduled:
            self._scheduled.cancel()
            self._scheduled = None
        self._retry_scheduled = False

    def enqueue(self, event: TimecodeEvent) -> None:
        with self._lock:
            self._pending.append(event)
            self._add_today_locked(event)
            self._persist_locked()
            reached_cap = len(self._pending) >= self.settings.batch_size
        if reached_cap:
            self.request_flush()

    def request_flush(self, delay: timedelta = timedelta(0)) -> None:
        """Schedule a flush; an earlier pending request is replaced."""
        if self._scheduled:
            self._scheduled.cancel()
        self._scheduled = self._scheduler.call_later(delay, self._run_scheduled)

    def reset_backoff(self) -> None:
        self._backoff = self.settings.initial_retry

    def flush(self, timeout: Optional[timedelta] = None) -> Optional[IngestResult]:
        """Send the oldest batch. Returns ``None`` if nothing was delivered.

        A call made while another flush is in flight returns immediately.
        """
        if not self._flush_lock.acquire(blocking=False):
            logger.debug("Flush already in flight; skipping.")
            return None
        try:
            with self._lock:
                batch = self._pending[: self.settings.batch_size]
            if not batch:
                return None

            try:
                result = self._transport.send(batch, timeout=timeout)
            except (TransientDeliveryError, ConfigurationError) as exc:
                self._record_failure(exc)
                return None

            with self._lock:
                self._drop_sent_locked(batch)
                self._persist_locked()
                remaining = len(self._pending)
            self._last_error = None
            self._backoff = self.settings.initial_retry
            logger.debug(
                "Delivered %d events (accepted=%d duplicates=%d).",
                len(batch),
                result.accepted,
                result.duplicates,
            )
        finally:
            self._flush_lock.release()

        if remaining:
            self.request_flush()
        return result

    def shutdown(self, timeout: Optional[timedelta] = None) -> Optional[IngestResult]:
        """Stop timers and make one bounded delivery attempt."""
        self.stop()
        result = self.flush(timeout=timeout or self.settings.shutdown_timeout)
        self.stop()
        with self._lock:
            self._persist_locked()
            left = len(self._pending)
        if left:
            logger.info("%d events left pending at shutdown.", left)
        return result

    def today_seconds(self) -> int:
        """Best-effort local running total for today; for display only."""
        today = self._today()
        with self._lock:
            return self._today_seconds if self._today_day == today else 0

    def sync_today(self) -> None:
        """Seed the local counter from the server's total for today."""
        today = self._today()
        try:
            seconds = self._transport.fetch_daily_total(today)
        except (TransientDeliveryError, ConfigurationError) as exc:
            logger.debug("Could not read today's total: %s", exc)
            return
        with self._lock:
            self._today_day = today
            self._today_seconds = seconds
            self._persist_today_locked()

    def _on_timer(self) -> None:
        if self._retry_scheduled:
            return
        self.flush()

    def _run_scheduled(self) -> None:
        self._scheduled = None
        self._retry_scheduled = False
        self.flush()

    def _record_failure(self, exc: Exception) -> None:
        self._last_error = str(exc)
        delay = self._backoff
        self._backoff = min(self._backoff * 2, self.settings.max_retry)
        logger.warning(
            "Event delivery failed (%s); %d pending, retrying in %.0fs.",
            exc,
            self.pending_count,
            delay.total_seconds(),
        )
        self.request_flush(delay)
        self._retry_scheduled = True

    def _today(self) -> date:
        return local_day(self._scheduler.now())

    def _add_today_locked(self, event: TimecodeEvent) -> None:
        today = self._today()
        if self._today_day != today:
            self._today_day = today
            self._today_seconds = 0
        if local_day(parse_timestamp(event.started_at)) == today:
            self._today_seconds += event.duration_seconds
        self._persist_today_locked()

    def _persist_today_locked(self) -> None:
        if self._today_day is None:
            return
        self._store.set(
            DAILY_TOTAL_KEY,
            {"day": self._today_day.isoformat(), "seconds": self._today_seconds},
        )

    def _drop_sent_locked(self, batch: list[TimecodeEvent]) -> None:
        # Events may have been restored ahead of the batch while it was in
        # flight, so match the sent objects rather than a leading slice.
        unsent: list[TimecodeEvent] = []
        position = 0
        for event in self._pending:
            if position < len(batch) and event is batch[position]:
                position += 1
            else:
                unsent.append(event)
        self._pending = unsent

    def _persist_locked(self) -> None:
        save_pending(self._store, self._pending)
