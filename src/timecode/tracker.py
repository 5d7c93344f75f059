"""Host-owned tracker tying signals, segmentation and delivery together."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .config import TrackerSettings
from .context import resolve_context
from .encoder import ClientIdentity, PrivacySettings, encode_segment
from .models import ActivityContext, Segment, TrackerStatus
from .outbound import EventQueue
from .scheduler import Handle, Scheduler, ThreadingScheduler
from .segments import SegmentBuilder
from .store import MemoryStore, StateStore, get_or_create_machine_id
from .transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    CONTEXT_CHANGED = "context-changed"
    EDIT = "edit"
    SAVE = "save"
    FOCUS_CHANGED = "focus-changed"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True, slots=True)
class Signal:
    """A typed activity signal from the editor integration."""

    kind: SignalKind
    context: Optional[ActivityContext] = None
    focused: Optional[bool] = None
    at: Optional[datetime] = None

    @classmethod
    def for_document(
        cls,
        kind: SignalKind,
        file_path: Optional[str],
        project_path: Optional[str] = None,
        language_id: Optional[str] = None,
        *,
        at: Optional[datetime] = None,
    ) -> "Signal":
        return cls(kind, context=resolve_context(file_path, project_path, language_id), at=at)


class Tracker:
    """Turns editor signals into delivered time events.

    The host constructs one tracker at startup, feeds it signals through
    :meth:`handle` and tears it down with :meth:`close`. Builder state is
    guarded by a lock because heartbeats and flushes arrive on scheduler
    threads.
    """

    def __init__(
        self,
        settings: Optional[TrackerSettings] = None,
        *,
        store: Optional[StateStore] = None,
        scheduler: Optional[Scheduler] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self._store = store if store is not None else MemoryStore()
        self._scheduler = scheduler or ThreadingScheduler()
        self._transport = transport or HttpTransport(
            self.settings.api_base_url,
            flush_timeout=self.settings.queue.flush_timeout,
            read_timeout=self.settings.queue.read_timeout,
        )
        self.queue = EventQueue(
            self._transport, self._scheduler, self.settings.queue, store=self._store
        )
        self._builder = SegmentBuilder()
        self._lock = threading.Lock()
        self._heartbeat: Optional[Handle] = None
        self._focused = True
        self._started = False
        self._identity = ClientIdentity(
            machine_id=get_or_create_machine_id(self._store),
            editor=self.settings.editor,
        )

    @property
    def machine_id(self) -> str:
        return self._identity.machine_id

    @property
    def context(self) -> Optional[ActivityContext]:
        return self._builder.context

    def start(self, context: Optional[ActivityContext] = None) -> None:
        self.queue.restore()
        self._started = True
        self._restart_heartbeat()
        if self.settings.enabled:
            self.queue.start()
            self.queue.request_flush()
            self.queue.sync_today()
            if context is not None:
                self.activity(context)
        logger.info("Tracker started for machine %s.", self.machine_id)

    def close(self) -> None:
        """Close the open segment and make one bounded flush attempt."""
        self.handle(Signal(SignalKind.SHUTDOWN))
        if self._heartbeat:
            self._heartbeat.cancel()
            self._heartbeat = None
        self.queue.shutdown()
        self._started = False
        logger.info("Tracker stopped.")

    def handle(self, signal: Signal) -> None:
        at = signal.at or self._scheduler.now()
        if signal.kind is SignalKind.SHUTDOWN:
            with self._lock:
                self._emit(self._builder.shutdown(at))
        elif signal.kind is SignalKind.FOCUS_CHANGED:
            self.focus_changed(bool(signal.focused), signal.context, at=at)
        elif signal.context is None:
            logger.debug("Ignoring %s signal without a context.", signal.kind.value)
        else:
            is_write = signal.kind in (SignalKind.EDIT, SignalKind.SAVE)
            self.activity(signal.context, is_write=is_write, at=at)

    def activity(
        self,
        context: ActivityContext,
        *,
        is_write: bool = False,
        at: Optional[datetime] = None,
    ) -> None:
        if not self.settings.enabled:
            return
        at = at or self._scheduler.now()
        with self._lock:
            self._focused = True
            self._emit(self._builder.activity(context, at, is_write=is_write))

    def focus_changed(
        self,
        focused: bool,
        context: Optional[ActivityContext] = None,
        *,
        at: Optional[datetime] = None,
    ) -> None:
        at = at or self._scheduler.now()
        if focused:
            context = context or self._builder.context
            with self._lock:
                self._focused = True
            if context is not None:
                self.activity(context, at=at)
            return
        with self._lock:
            self._focused = False
            self._emit(self._builder.focus_lost(at))

    def heartbeat(self) -> None:
        if not self.settings.enabled:
            return
        now = self._scheduler.now()
        with self._lock:
            self._emit(self._builder.tick(now, self.settings.idle_threshold))

    def configure(self, settings: TrackerSettings) -> None:
        """Apply new settings; timers restart only when their inputs change."""
        previous = self.settings
        self.settings = settings
        self.queue.settings = settings.queue
        if previous.editor != settings.editor:
            self._identity = replace(self._identity, editor=settings.editor)

        if previous.enabled and not settings.enabled:
            with self._lock:
                self._emit(self._builder.shutdown(self._scheduler.now()))
            self.queue.stop()
        if not self._started:
            return

        if previous.heartbeat_interval != settings.heartbeat_interval:
            self._restart_heartbeat()
        endpoint_changed = previous.api_base_url != settings.api_base_url
        if endpoint_changed and isinstance(self._transport, HttpTransport):
            self._transport.base_url = settings.api_base_url
        if settings.enabled and (endpoint_changed or not previous.enabled):
            self.queue.reset_backoff()
            self.queue.start()
            self.queue.request_flush()
            self.queue.sync_today()
        elif settings.enabled and previous.queue.flush_interval != settings.queue.flush_interval:
            self.queue.start()

    def restart_connection(self) -> None:
        """Forget the backoff and try to deliver right away."""
        self.queue.reset_backoff()
        self.queue.request_flush()

    def status(self) -> TrackerStatus:
        if not self.settings.enabled:
            return TrackerStatus.DISABLED
        if self.queue.last_error:
            return TrackerStatus.ERROR
        last_activity = self._builder.last_activity_at
        if (
            not self._focused
            or last_activity is None
            or self._scheduler.now() - last_activity > self.settings.idle_threshold
        ):
            return TrackerStatus.IDLE
        return TrackerStatus.TRACKING

    def today_seconds(self) -> int:
        """Local "spent today" figure for display; not authoritative."""
        open_seconds = 0
        if self.settings.enabled and self._focused:
            open_seconds = self._builder.current_seconds(
                self._scheduler.now(), self.settings.idle_threshold
            )
        return self.queue.today_seconds() + open_seconds

    def _restart_heartbeat(self) -> None:
        if self._heartbeat:
            self._heartbeat.cancel()
        self._heartbeat = self._scheduler.call_every(
            self.settings.heartbeat_interval, self.heartbeat
        )
        logger.debug(
            "Heartbeat every %.0fs.", self.settings.heartbeat_interval.total_seconds()
        )

    def _emit(self, segments: list[Segment]) -> None:
        privacy = PrivacySettings(
            include_project_paths=self.settings.include_project_paths,
            include_file_paths=self.settings.include_file_paths,
        )
        for segment in segments:
            event = encode_segment(segment, self._identity, privacy)
            if event is None:
                continue
            self.queue.enqueue(event)
        if segments:
            self.queue.request_flush()

