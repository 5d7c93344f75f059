"""Domain models for tracked coding time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


NO_PROJECT = "no-project"
DEFAULT_LANGUAGE = "plaintext"


@dataclass(frozen=True, slots=True)
class ActivityContext:
    """Identifies where work happened."""

    project_name: str = NO_PROJECT
    project_path: Optional[str] = None
    file_path: Optional[str] = None
    language: str = DEFAULT_LANGUAGE


@dataclass(slots=True)
class Segment:
    """A contiguous span of activity in one context.

    Segments only live on the client while tracking; a closed segment is
    turned into a :class:`TimecodeEvent` and then discarded.
    """

    context: ActivityContext
    started_at: datetime
    ended_at: datetime
    had_write: bool = False

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


@dataclass(frozen=True, slots=True)
class TimecodeEvent:
    """Immutable, content-addressed record of a finalized segment."""

    id: str
    machine_id: str
    os: str
    editor: str
    project_name: str
    project_path: Optional[str]
    file_path: Optional[str]
    language: str
    started_at: str
    ended_at: str
    duration_seconds: int
    is_write: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "machineId": self.machine_id,
            "os": self.os,
            "editor": self.editor,
            "projectName": self.project_name,
            "projectPath": self.project_path,
            "filePath": self.file_path,
            "language": self.language,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "durationSeconds": self.duration_seconds,
            "isWrite": self.is_write,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TimecodeEvent":
        return cls(
            id=payload["id"],
            machine_id=payload["machineId"],
            os=payload["os"],
            editor=payload["editor"],
            project_name=payload["projectName"],
            project_path=payload.get("projectPath"),
            file_path=payload.get("filePath"),
            language=payload["language"],
            started_at=payload["startedAt"],
            ended_at=payload["endedAt"],
            duration_seconds=int(payload["durationSeconds"]),
            is_write=bool(payload["isWrite"]),
        )


@dataclass(slots=True)
class IngestResult:
    accepted: int = 0
    duplicates: int = 0
    rejected: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "accepted": self.accepted,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
        }


class TrackerStatus(str, Enum):
    """User-visible tracker state."""

    DISABLED = "Disabled"
    IDLE = "Idle"
    TRACKING = "Tracking"
    ERROR = "Error"
