"""Configuration models and helpers for the tracker and the ingestion server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional


APP_VERSION = "0.1.0"
SCHEMA_VERSION = 1

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4821
DEFAULT_API_BASE_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"

MIN_HEARTBEAT = timedelta(seconds=5)
MIN_IDLE_THRESHOLD = timedelta(seconds=30)


@dataclass(slots=True)
class QueueSettings:
    """Delivery tuning for the outbound queue."""

    batch_size: int = 500
    flush_interval: timedelta = timedelta(seconds=30)
    initial_retry: timedelta = timedelta(seconds=1)
    max_retry: timedelta = timedelta(seconds=30)
    flush_timeout: timedelta = timedelta(seconds=10)
    read_timeout: timedelta = timedelta(seconds=5)
    shutdown_timeout: timedelta = timedelta(seconds=5)


@dataclass(slots=True)
class TrackerSettings:
    """Values the editor integration hands to the tracker."""

    enabled: bool = True
    api_base_url: str = DEFAULT_API_BASE_URL
    heartbeat_interval: timedelta = timedelta(seconds=30)
    idle_threshold: timedelta = timedelta(seconds=120)
    include_file_paths: bool = False
    include_project_paths: bool = False
    editor: str = "vscode"
    queue: QueueSettings = field(default_factory=QueueSettings)

    def __post_init__(self) -> None:
        self.heartbeat_interval = max(self.heartbeat_interval, MIN_HEARTBEAT)
        self.idle_threshold = max(self.idle_threshold, MIN_IDLE_THRESHOLD)

    @classmethod
    def from_intervals(
        cls,
        heartbeat_seconds: float = 30.0,
        idle_seconds: float = 120.0,
        **kwargs,
    ) -> "TrackerSettings":
        return cls(
            heartbeat_interval=timedelta(seconds=heartbeat_seconds),
            idle_threshold=timedelta(seconds=idle_seconds),
            **kwargs,
        )


@dataclass(slots=True)
class ServerSettings:
    """Runtime configuration for the ingestion and query server."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    db_path: Optional[Path] = None
    max_batch_events: int = 500
    max_range_days: int = 366
    default_range_days: int = 7

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerSettings":
        env = os.environ if environ is None else environ
        db_path = env.get("TIMECODE_DB_PATH")
        return cls(
            host=env.get("TIMECODE_HOST", DEFAULT_HOST),
            port=int(env.get("TIMECODE_PORT", DEFAULT_PORT)),
            db_path=Path(db_path) if db_path else None,
        )
