"""Durable client-side state: pending events, machine id, today's total."""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Optional, Protocol

from .models import TimecodeEvent

logger = logging.getLogger(__name__)

PENDING_KEY = "pendingEvents"
MACHINE_ID_KEY = "machineId"
DAILY_TOTAL_KEY = "dailyTotal"


class StateStore(Protocol):
    """Key/value store provided by the host (editor global state, a file...)."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class JsonFileStore:
    """Stores state as a single JSON document, replaced atomically on write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._values = self._load()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
            self._write_locked()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Could not read client state from %s; starting empty.", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_locked(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values), encoding="utf-8")
        os.replace(tmp_path, self.path)


def load_pending(store: StateStore) -> list[TimecodeEvent]:
    events: list[TimecodeEvent] = []
    for payload in store.get(PENDING_KEY, []) or []:
        try:
            events.append(TimecodeEvent.from_payload(payload))
        except (KeyError, TypeError, ValueError):
            logger.warning("Dropping unreadable persisted event: %r", payload)
    return events


def save_pending(store: StateStore, events: list[TimecodeEvent]) -> None:
    store.set(PENDING_KEY, [event.to_payload() for event in events])


def get_or_create_machine_id(store: StateStore) -> str:
    existing: Optional[str] = store.get(MACHINE_ID_KEY)
    if existing:
        return existing
    machine_id = str(uuid.uuid4())
    store.set(MACHINE_ID_KEY, machine_id)
    return machine_id
