"""Helpers to launch the ingestion server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import uvicorn

from .config import ServerSettings
from .webapp import create_app


def run_server(
    *,
    host: Optional[str] = None,
    port: Optional[int] = None,
    db_path: Optional[Path] = None,
    settings: Optional[ServerSettings] = None,
    log_level: str = "info",
) -> None:
    """Start the FastAPI ingestion/statistics server."""
    settings = settings or ServerSettings.from_env()
    host = host or settings.host
    port = port or settings.port
    app = create_app(db_path=db_path or settings.db_path, settings=settings)

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    logging.getLogger(__name__).info("Serving timecode on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
