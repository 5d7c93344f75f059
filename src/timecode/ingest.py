"""Validation and persistence of incoming event batches."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .db import record_events
from .encoder import local_day, parse_timestamp
from .errors import ValidationError
from .models import IngestResult, TimecodeEvent

logger = logging.getLogger(__name__)

MAX_BATCH_EVENTS = 500

NonEmptyStr = Annotated[str, Field(min_length=1)]


class TimecodeEventPayload(BaseModel):
    """Wire form of a single event."""

    model_config = ConfigDict(extra="forbid", strict=True)

    id: NonEmptyStr
    machineId: NonEmptyStr
    os: NonEmptyStr
    editor: NonEmptyStr
    projectName: NonEmptyStr
    projectPath: Optional[str] = None
    filePath: Optional[str] = None
    language: NonEmptyStr
    startedAt: str
    endedAt: str
    durationSeconds: StrictInt = Field(gt=0)
    isWrite: StrictBool

    @field_validator("startedAt", "endedAt")
    @classmethod
    def _parseable(cls, value: str) -> str:
        try:
            parse_timestamp(value)
        except ValueError as exc:
            raise ValueError(f"not an ISO-8601 timestamp: {value!r}") from exc
        return value

    @model_validator(mode="after")
    def _monotonic(self) -> "TimecodeEventPayload":
        if parse_timestamp(self.endedAt) <= parse_timestamp(self.startedAt):
            raise ValueError("endedAt must be after startedAt")
        return self

    @property
    def started(self) -> datetime:
        return parse_timestamp(self.startedAt)

    def to_event(self) -> TimecodeEvent:
        return TimecodeEvent(
            id=self.id,
            machine_id=self.machineId,
            os=self.os,
            editor=self.editor,
            project_name=self.projectName,
            project_path=self.projectPath,
            file_path=self.filePath,
            language=self.language,
            started_at=self.startedAt,
            ended_at=self.endedAt,
            duration_seconds=self.durationSeconds,
            is_write=self.isWrite,
        )


class BatchTooLarge(ValidationError):
    """Batch exceeds the per-request event limit."""


class IngestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    events: list[TimecodeEventPayload]


def validate_batch(body: Any, *, max_events: int = MAX_BATCH_EVENTS) -> list[TimecodeEventPayload]:
    """Validate a whole request body.

    Raises :class:`ValidationError` for a malformed body or any invalid
    event, and :class:`BatchTooLarge` when the batch exceeds ``max_events``.
    Nothing is persisted before the whole batch passes.
    """
    if not isinstance(body, dict) or not isinstance(body.get("events"), list):
        raise ValidationError("Invalid /events payload")
    if len(body["events"]) > max_events:
        raise BatchTooLarge(f"Too many events. Max {max_events} per request.")
    try:
        request = IngestRequest.model_validate(body)
    except PydanticValidationError as exc:
        logger.info("Rejected batch of %d events: %s", len(body["events"]), exc.errors()[:3])
        raise ValidationError("Invalid /events payload") from exc
    return request.events


def ingest_batch(
    conn: sqlite3.Connection, body: Any, *, max_events: int = MAX_BATCH_EVENTS
) -> IngestResult:
    """Validate ``body`` and persist its events idempotently."""
    payloads = validate_batch(body, max_events=max_events)
    result = record_events(conn, ((p.to_event(), event_day(p.started)) for p in payloads))
    logger.info(
        "Ingested batch: accepted=%d duplicates=%d", result.accepted, result.duplicates
    )
    return result


def event_day(started_at: datetime) -> date:
    """The aggregate day is the local calendar date the event started on."""
    return local_day(started_at)
