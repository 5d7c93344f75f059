"""Range-bounded rollups over the daily aggregate."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from .db import (
    fetch_daily_totals,
    fetch_language_totals,
    fetch_project_daily,
    fetch_weekday_totals,
)
from .errors import ValidationError

MAX_RANGE_DAYS = 366
DEFAULT_RANGE_DAYS = 7

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True, slots=True)
class DateRange:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def to_payload(self) -> dict[str, str]:
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}


def parse_day(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` date."""
    if not _DATE_PATTERN.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.") from exc


def resolve_range(
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
    max_days: int = MAX_RANGE_DAYS,
    default_days: int = DEFAULT_RANGE_DAYS,
) -> DateRange:
    """Validate a ``from``/``to`` pair, defaulting to the trailing week."""
    today = today or date.today()
    start_day = parse_day(start) if start is not None else today - timedelta(days=default_days - 1)
    end_day = parse_day(end) if end is not None else today
    if start_day > end_day:
        raise ValidationError("`from` must be <= `to`.")
    resolved = DateRange(start_day, end_day)
    if resolved.days > max_days:
        raise ValidationError(f"Date range too large. Max {max_days} days.")
    return resolved


def project_daily(conn: sqlite3.Connection, span: DateRange) -> list[dict[str, Any]]:
    return [
        {"day": row["day"], "projectName": row["project_name"], "seconds": int(row["seconds"])}
        for row in fetch_project_daily(conn, span.start, span.end)
    ]


def weekday(conn: sqlite3.Connection, span: DateRange) -> list[dict[str, Any]]:
    return [
        {"dayOfWeek": int(row["day_of_week"]), "seconds": int(row["seconds"])}
        for row in fetch_weekday_totals(conn, span.start, span.end)
    ]


def languages(conn: sqlite3.Connection, span: DateRange) -> list[dict[str, Any]]:
    return [
        {"language": row["language"], "seconds": int(row["seconds"])}
        for row in fetch_language_totals(conn, span.start, span.end)
    ]


def daily_totals(conn: sqlite3.Connection, span: DateRange) -> list[dict[str, Any]]:
    return [
        {"day": row["day"], "seconds": int(row["seconds"])}
        for row in fetch_daily_totals(conn, span.start, span.end)
    ]
