"""Activity segmentation state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .models import ActivityContext, Segment

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _OpenSegment:
    context: ActivityContext
    started_at: datetime
    last_activity_at: datetime
    had_write: bool = False

    def close(self, ended_at: datetime) -> Segment:
        return Segment(
            context=self.context,
            started_at=self.started_at,
            ended_at=ended_at,
            had_write=self.had_write,
        )


class SegmentBuilder:
    """Converts activity signals into non-overlapping segments.

    The builder is either idle or tracking a single context. Every method
    returns the segments it closed, oldest first; the caller decides what to
    do with them. Segments of zero length are returned as well and are
    dropped by the encoder.
    """

    def __init__(self) -> None:
        self._open: Optional[_OpenSegment] = None

    @property
    def is_tracking(self) -> bool:
        return self._open is not None

    @property
    def context(self) -> Optional[ActivityContext]:
        return self._open.context if self._open else None

    @property
    def last_activity_at(self) -> Optional[datetime]:
        return self._open.last_activity_at if self._open else None

    def activity(
        self, context: ActivityContext, at: datetime, *, is_write: bool = False
    ) -> list[Segment]:
        """Record an edit, save, editor switch or focus gain."""
        current = self._open
        if current and current.context == context:
            current.last_activity_at = max(current.last_activity_at, at)
            current.had_write = current.had_write or is_write
            return []

        closed = self._close(at)
        self._open = _OpenSegment(
            context=context, started_at=at, last_activity_at=at, had_write=is_write
        )
        logger.debug("Tracking %s/%s", context.project_name, context.language)
        return closed

    def tick(self, now: datetime, idle_threshold: timedelta) -> list[Segment]:
        """Heartbeat: end idle segments or roll active ones over."""
        current = self._open
        if current is None:
            return []

        if now - current.last_activity_at > idle_threshold:
            logger.debug("Idle since %s; closing segment.", current.last_activity_at)
            return self._close(current.last_activity_at)

        closed = current.close(now)
        self._open = _OpenSegment(
            context=current.context,
            started_at=now,
            last_activity_at=current.last_activity_at,
        )
        return [closed]

    def focus_lost(self, at: datetime) -> list[Segment]:
        return self._close(at)

    def shutdown(self, at: datetime) -> list[Segment]:
        return self._close(at)

    def current_seconds(self, now: datetime, idle_threshold: timedelta) -> int:
        """Whole seconds of the open segment, or 0 while idle."""
        current = self._open
        if current is None or now - current.last_activity_at > idle_threshold:
            return 0
        return max(0, int((now - current.started_at).total_seconds()))

    def _close(self, ended_at: datetime) -> list[Segment]:
        current = self._open
        self._open = None
        if current is None:
            return []
        return [current.close(ended_at)]
