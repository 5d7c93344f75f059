"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

from . import stats
from .db import database_connection

WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_range_summary(self, span: stats.DateRange) -> None:
        with database_connection(self.db_path) as conn:
            totals = stats.daily_totals(conn, span)
            projects = stats.project_daily(conn, span)
            languages = stats.languages(conn, span)
            weekdays = stats.weekday(conn, span)
        if not totals:
            print("No coding time recorded for the selected range.")
            return

        total = sum(item["seconds"] for item in totals)
        print(f"Summary for {span.start.isoformat()} to {span.end.isoformat()}")
        print("-" * 40)
        print(f"Total coding time: {format_duration(total)}")
        print()

        print("Daily totals:")
        for item in totals:
            print(f"  {item['day']}  {format_duration(item['seconds'])}")

        top_projects = aggregate_by_project(projects)
        if top_projects:
            print()
            print("Top projects:")
            for project, seconds in top_projects[:5]:
                print(f"  {project:<30} {format_duration(seconds)}")

        if languages:
            print()
            print("Top languages:")
            for item in languages[:5]:
                print(f"  {item['language']:<30} {format_duration(item['seconds'])}")

        if weekdays:
            print()
            print("By weekday:")
            for item in weekdays:
                name = WEEKDAY_NAMES[item["dayOfWeek"]]
                print(f"  {name:<30} {format_duration(item['seconds'])}")


def aggregate_by_project(items: Iterable[dict[str, Any]]) -> list[tuple[str, int]]:
    totals: dict[str, int] = {}
    for item in items:
        totals[item["projectName"]] = totals.get(item["projectName"], 0) + item["seconds"]
    return sorted(totals.items(), key=lambda entry: entry[1], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
