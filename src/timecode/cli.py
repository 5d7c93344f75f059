"""Command-line interface for timecode."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_API_BASE_URL, QueueSettings
from .paths import get_client_state_path, get_db_path

app = typer.Typer(help="Coding-time telemetry: ingestion server and client tools.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind the server."),
    port: Optional[int] = typer.Option(
        None, "--port", min=1, max=65535, help="TCP port for the server."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the timecode SQLite database."
    ),
    log_level: str = typer.Option("info", "--log-level", help="Uvicorn log level."),
) -> None:
    """Run the ingestion and statistics server until interrupted."""
    from .server_runner import run_server

    run_server(host=host, port=port, db_path=db_path, log_level=log_level)


@app.command()
def summary(
    start: Optional[str] = typer.Option(
        None, "--from", help="First day (YYYY-MM-DD). Defaults to six days ago."
    ),
    end: Optional[str] = typer.Option(None, "--to", help="Last day (YYYY-MM-DD). Defaults to today."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the timecode SQLite database."
    ),
) -> None:
    """Print coding totals for a date range."""
    from .errors import ValidationError
    from .reporting import SummaryPrinter
    from .stats import resolve_range

    try:
        span = resolve_range(start, end)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    SummaryPrinter(db_path=db_path or get_db_path()).print_range_summary(span)


@app.command()
def rebuild(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the timecode SQLite database."
    ),
) -> None:
    """Recompute the daily aggregate from the event ledger."""
    from .db import database_connection, rebuild_daily_stats

    with database_connection(db_path or get_db_path()) as conn:
        rows = rebuild_daily_stats(conn)
    typer.echo(f"Rebuilt {rows} daily aggregate rows.")


@app.command()
def flush(
    url: str = typer.Option(DEFAULT_API_BASE_URL, "--url", help="Base URL of the timecode server."),
    state_path: Optional[Path] = typer.Option(
        None, "--state", path_type=Path, help="Location of the client state file."
    ),
) -> None:
    """Deliver events left pending in the local client state."""
    from .outbound import EventQueue
    from .scheduler import ManualScheduler
    from .store import JsonFileStore
    from .transport import HttpTransport

    settings = QueueSettings()
    queue = EventQueue(
        HttpTransport(url, flush_timeout=settings.flush_timeout),
        # Nothing is scheduled here: this command drives delivery itself.
        ManualScheduler(start=datetime.now(timezone.utc)),
        settings,
        store=JsonFileStore(state_path or get_client_state_path()),
    )
    queue.restore()
    delivered = 0
    while queue.pending_count:
        before = queue.pending_count
        result = queue.flush()
        if result is None:
            typer.echo(f"Delivery failed: {queue.last_error}. {queue.pending_count} events still pending.")
            raise typer.Exit(code=1)
        delivered += before - queue.pending_count
    typer.echo(f"Delivered {delivered} events.")


@app.command()
def status(
    state_path: Optional[Path] = typer.Option(
        None, "--state", path_type=Path, help="Location of the client state file."
    ),
) -> None:
    """Show the client's pending queue and local total for today."""
    from .reporting import format_duration
    from .store import DAILY_TOTAL_KEY, MACHINE_ID_KEY, JsonFileStore, load_pending

    store = JsonFileStore(state_path or get_client_state_path())
    daily = store.get(DAILY_TOTAL_KEY) or {}
    typer.echo(f"Machine id:     {store.get(MACHINE_ID_KEY) or '(not assigned)'}")
    typer.echo(f"Pending events: {len(load_pending(store))}")
    if daily:
        typer.echo(f"Local total:    {format_duration(daily.get('seconds', 0))} on {daily.get('day')}")


if __name__ == "__main__":
    app()
