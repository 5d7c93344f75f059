"""FastAPI application exposing ingestion and statistics endpoints."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from . import stats
from .config import APP_VERSION, SCHEMA_VERSION, ServerSettings
from .db import database_connection, get_schema_version, open_database
from .errors import StorageError, ValidationError
from .ingest import BatchTooLarge, ingest_batch
from .paths import get_db_path

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

StatsQuery = Callable[[Any, stats.DateRange], list[Dict[str, Any]]]


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[ServerSettings] = None,
    today: Optional[Callable[[], date]] = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    Routes are served at the root and again under ``/api/v1``, which is
    the prefix the client transport uses.
    """
    resolved_settings = settings or ServerSettings()
    resolved_db_path = Path(db_path or resolved_settings.db_path or get_db_path())
    resolve_today = today or date.today

    # Create the schema up front so the first request does not race on it.
    open_database(resolved_db_path).close()

    app = FastAPI(title="Timecode", version=APP_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["content-type"],
    )

    app.state.db_path = resolved_db_path
    app.state.settings = resolved_settings

    router = APIRouter()

    @router.get("/health")
    def health(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            schema_version = get_schema_version(conn) or SCHEMA_VERSION
        return {"status": "ok", "version": APP_VERSION, "schemaVersion": schema_version}

    @router.post("/events")
    async def ingest_events(request: Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        return await run_in_threadpool(
            _ingest, request.app.state.db_path, body, resolved_settings.max_batch_events
        )

    def stats_endpoint(query: StatsQuery) -> Callable[..., Dict[str, Any]]:
        def endpoint(
            request: Request,
            start: Optional[str] = Query(
                default=None,
                alias="from",
                description="Start date in YYYY-MM-DD format (inclusive).",
            ),
            end: Optional[str] = Query(
                default=None,
                alias="to",
                description="End date in YYYY-MM-DD format (inclusive).",
            ),
        ) -> Dict[str, Any]:
            try:
                span = stats.resolve_range(
                    start,
                    end,
                    today=resolve_today(),
                    max_days=resolved_settings.max_range_days,
                    default_days=resolved_settings.default_range_days,
                )
            except ValidationError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            with database_connection(request.app.state.db_path) as conn:
                items = query(conn, span)
            return {**span.to_payload(), "items": items}

        return endpoint

    router.add_api_route("/stats/project-daily", stats_endpoint(stats.project_daily), methods=["GET"])
    router.add_api_route("/stats/weekday", stats_endpoint(stats.weekday), methods=["GET"])
    router.add_api_route("/stats/languages", stats_endpoint(stats.languages), methods=["GET"])
    router.add_api_route("/stats/daily-totals", stats_endpoint(stats.daily_totals), methods=["GET"])

    app.include_router(router)
    app.include_router(router, prefix=API_PREFIX)
    return app


def _ingest(db_path: Path, body: Any, max_events: int) -> Dict[str, Any]:
    try:
        with database_connection(db_path) as conn:
            result = ingest_batch(conn, body, max_events=max_events)
    except BatchTooLarge as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        logger.error("Ingest request failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return result.to_payload()
