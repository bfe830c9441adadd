from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(slots=True)
class RateWindow:
    count: int
    window_start: float


class RateLimiter:
    """Per-client fixed window admission control for upstream calls.

    A window opens on the first request from a client and resets once more
    than ``window_seconds`` have elapsed since it opened. Rejection is
    immediate; callers decide whether to retry.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = Lock()

    def admit(self, client_id: str | None) -> bool:
        key = client_id or UNKNOWN_CLIENT
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)

            if window is None or now - window.window_start > self.window_seconds:
                self._windows[key] = RateWindow(count=1, window_start=now)
                return True

            if window.count >= self.max_requests:
                logger.warning("Rate limit exceeded for client %s", key)
                return False

            window.count += 1
            return True

    def window(self, client_id: str | None) -> RateWindow | None:
        with self._lock:
            window = self._windows.get(client_id or UNKNOWN_CLIENT)
            if window is None:
                return None
            return RateWindow(count=window.count, window_start=window.window_start)

    def sweep(self) -> int:
        """Drop windows that have already elapsed; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [
                key
                for key, window in self._windows.items()
                if now - window.window_start > self.window_seconds
            ]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
