"""Fixed-window request quota per client."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from fastapi import Request

from ..core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(slots=True)
class RateWindowEntry:
    count: int
    window_start: float


class RateLimiter:
    """Count requests per client key inside fixed windows.

    Stale entries are purged on every call instead of by a timer, which keeps
    the table small for modest key cardinality.
    """

    def __init__(
        self,
        window_seconds: float = 600,
        max_requests: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_requests = max_requests
        self._clock = clock
        self._entries: Dict[str, RateWindowEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, client_key: str) -> RateWindowEntry | None:
        return self._entries.get(client_key)

    def admit(self, client_key: str) -> None:
        """Record one request for ``client_key`` or raise ``RateLimitExceeded``."""

        with self._lock:
            now = self._clock()
            self._purge(now)

            entry = self._entries.get(client_key)
            if entry is None or now - entry.window_start > self._window:
                self._entries[client_key] = RateWindowEntry(count=1, window_start=now)
                return

            if entry.count >= self._max_requests:
                logger.warning("Rate limit exceeded for client %s", client_key)
                raise RateLimitExceeded()

            entry.count += 1

    def _purge(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now - entry.window_start > self._window]
        for key in expired:
            self._entries.pop(key, None)


def client_key_from_forwarded(header: str | None) -> str:
    """Return the originating address from an ``X-Forwarded-For`` value."""

    if not header:
        return UNKNOWN_CLIENT
    first = header.split(",")[0].strip()
    return first or UNKNOWN_CLIENT


def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency applying the application's limiter to the caller."""

    limiter: RateLimiter = request.app.state.rate_limiter
    limiter.admit(client_key_from_forwarded(request.headers.get("x-forwarded-for")))
