"""HTTP delivery of event batches to the ingestion server."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional, Protocol, Sequence

import requests

from .errors import ConfigurationError, TransientDeliveryError
from .models import IngestResult, TimecodeEvent

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class Transport(Protocol):
    def send(
        self, events: Sequence[TimecodeEvent], timeout: Optional[timedelta] = None
    ) -> IngestResult: ...

    def fetch_daily_total(self, day: date) -> int: ...


class HttpTransport:
    """Posts batches to ``{base_url}/api/v1/events``."""

    def __init__(
        self,
        base_url: str,
        *,
        flush_timeout: timedelta = timedelta(seconds=10),
        read_timeout: timedelta = timedelta(seconds=5),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url
        self.flush_timeout = flush_timeout
        self.read_timeout = read_timeout
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = (value or "").strip().rstrip("/")

    def _url(self, path: str) -> str:
        if not self._base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid server URL: {self._base_url!r}")
        return f"{self._base_url}{API_PREFIX}{path}"

    def send(
        self, events: Sequence[TimecodeEvent], timeout: Optional[timedelta] = None
    ) -> IngestResult:
        url = self._url("/events")
        seconds = (timeout or self.flush_timeout).total_seconds()
        try:
            response = self._session.post(
                url,
                json={"events": [event.to_payload() for event in events]},
                timeout=seconds,
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema) as exc:
            raise ConfigurationError(str(exc)) from exc
        except requests.RequestException as exc:
            raise TransientDeliveryError(f"Failed to send events: {exc}") from exc

        if not response.ok:
            raise TransientDeliveryError(
                f"Ingest failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError:
            logger.warning("Server accepted %d events but returned no JSON body.", len(events))
            return IngestResult(accepted=len(events))
        return IngestResult(
            accepted=int(data.get("accepted", 0)),
            duplicates=int(data.get("duplicates", 0)),
            rejected=int(data.get("rejected", 0)),
        )

    def fetch_daily_total(self, day: date) -> int:
        """Return the server's authoritative total for ``day``."""
        url = self._url("/stats/daily-totals")
        stamp = day.isoformat()
        try:
            response = self._session.get(
                url,
                params={"from": stamp, "to": stamp},
                timeout=self.read_timeout.total_seconds(),
            )
        except requests.RequestException as exc:
            raise TransientDeliveryError(f"Failed to read daily totals: {exc}") from exc
        if not response.ok:
            raise TransientDeliveryError(
                f"Daily totals failed with status {response.status_code}",
                status_code=response.status_code,
            )
        for item in response.json().get("items", []):
            if item.get("day") == stamp:
                return int(item.get("seconds", 0))
        return 0

    def close(self) -> None:
        self._session.close()
