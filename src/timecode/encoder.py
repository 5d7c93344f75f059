"""Turn closed segments into content-addressed events.

The event id is the SHA-256 of a canonical serialization of every other
field. The serialization is a JSON array in a fixed field order, prefixed
with ``HASH_VERSION``. Bump the version whenever the field list changes so
that new ids can never collide with ids produced by the old layout.
"""

from __future__ import annotations

import hashlib
import json
import math
import platform
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from .models import Segment, TimecodeEvent


HASH_VERSION = 1

HASHED_FIELDS: tuple[str, ...] = (
    "machineId",
    "os",
    "editor",
    "projectName",
    "projectPath",
    "filePath",
    "language",
    "startedAt",
    "endedAt",
    "durationSeconds",
    "isWrite",
)


@dataclass(frozen=True, slots=True)
class ClientIdentity:
    machine_id: str
    editor: str = "vscode"
    os: str = platform.system().lower() or "unknown"


@dataclass(frozen=True, slots=True)
class PrivacySettings:
    include_project_paths: bool = False
    include_file_paths: bool = False


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.astimezone()
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def canonical_payload(fields: Mapping[str, Any]) -> bytes:
    ordered = [HASH_VERSION, *(fields[name] for name in HASHED_FIELDS)]
    return json.dumps(ordered, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def compute_event_id(fields: Mapping[str, Any]) -> str:
    return hashlib.sha256(canonical_payload(fields)).hexdigest()


def whole_seconds(started_at: datetime, ended_at: datetime) -> int:
    return math.floor((ended_at - started_at).total_seconds())


def encode_segment(
    segment: Segment,
    identity: ClientIdentity,
    privacy: PrivacySettings = PrivacySettings(),
) -> Optional[TimecodeEvent]:
    """Return the event for ``segment``, or ``None`` if it lasted under a second."""
    duration = whole_seconds(segment.started_at, segment.ended_at)
    if duration <= 0:
        return None

    context = segment.context
    fields: dict[str, Any] = {
        "machineId": identity.machine_id,
        "os": identity.os,
        "editor": identity.editor,
        "projectName": context.project_name,
        "projectPath": context.project_path if privacy.include_project_paths else None,
        "filePath": context.file_path if privacy.include_file_paths else None,
        "language": context.language,
        "startedAt": format_timestamp(segment.started_at),
        "endedAt": format_timestamp(segment.ended_at),
        "durationSeconds": duration,
        "isWrite": segment.had_write,
    }
    return TimecodeEvent.from_payload({"id": compute_event_id(fields), **fields})


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as local time."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def local_day(value: datetime) -> date:
    """Calendar date of ``value`` in the local time zone of this process."""
    if value.tzinfo is None:
        return value.date()
    return value.astimezone().date()
