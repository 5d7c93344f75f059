"""Where the server database and the client state live on disk."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "Timecode"
DATA_DIR_ENV = "TIMECODE_DATA_DIR"


def get_data_dir() -> Path:
    """Per-user data directory, overridable with ``TIMECODE_DATA_DIR``."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        path = Path(override).expanduser()
    else:
        path = PlatformDirs(appname=APP_NAME, appauthor=False, roaming=True).user_data_path
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / "timecode.sqlite3"


def get_client_state_path() -> Path:
    """JSON file holding the client's pending events, machine id and today total."""
    return get_data_dir() / "client-state.json"
