from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Any, Awaitable, Callable, Iterable, Protocol

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    payload: Any
    stored_at: float
    ttl: float


class BackingStore(Protocol):
    # Returns (payload, remaining seconds), with None for an entry that never expires.
    async def get(self, key: str) -> tuple[Any, float | None] | None: ...

    async def set(self, key: str, payload: Any, ttl: float) -> None: ...

    async def close(self) -> None: ...


class Sweepable(Protocol):
    def sweep(self) -> int: ...


class ResponseCache:
    """TTL cache of upstream result pages keyed by filter fingerprint.

    Entries past their TTL are treated as absent even before a sweep removes
    them. A failed ``compute`` leaves the cache untouched. When a backing
    store is configured it is consulted on in-memory misses and written
    through on every fill. A payload promoted from the store keeps only the
    lifetime it has left there.
    """

    def __init__(
        self,
        ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
        store: BackingStore | None = None,
    ) -> None:
        self.ttl = ttl
        self.hits = 0
        self.misses = 0
        self._clock = clock
        self._store = store
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()

    @property
    def store(self) -> BackingStore | None:
        return self._store

    def get(self, fingerprint: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None or not self._is_live(entry, self._clock()):
                return None
            return entry.payload

    def set(self, fingerprint: str, payload: Any, ttl: float | None = None) -> None:
        entry = CacheEntry(
            payload=payload,
            stored_at=self._clock(),
            ttl=self.ttl if ttl is None else ttl,
        )
        with self._lock:
            self._entries[fingerprint] = entry

    async def get_or_compute(
        self,
        fingerprint: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        ttl = self.ttl if ttl is None else ttl

        payload = self.get(fingerprint)
        if payload is not None:
            self.hits += 1
            return payload

        if self._store is not None:
            found = await self._store.get(fingerprint)
            if found is not None:
                payload, remaining = found
                if remaining is None or remaining > 0:
                    self.hits += 1
                    if remaining is not None:
                        ttl = min(ttl, remaining)
                    self.set(fingerprint, payload, ttl)
                    return payload

        self.misses += 1
        payload = await compute()
        self.set(fingerprint, payload, ttl)
        if self._store is not None:
            await self._store.set(fingerprint, payload, ttl)
        return payload

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._entries.items() if not self._is_live(entry, now)
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired search result entries", len(expired))
        return len(expired)

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def _is_live(entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at < entry.ttl


class CacheSweeper:
    """Periodic maintenance over process-wide caches, run on a daemon thread."""

    def __init__(self, targets: Iterable[Sweepable], interval: float = 300.0) -> None:
        self.targets = list(targets)
        self.interval = interval
        self._stop = Event()
        self._thread: Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name="cache-sweeper", daemon=True)
        self._thread.start()
        logger.info("Cache sweeper started (interval=%ss)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Cache sweeper stopped")

    def run_once(self) -> int:
        return sum(target.sweep() for target in self.targets)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                removed = self.run_once()
            except Exception:
                logger.exception("Cache sweep failed")
                continue
            if removed:
                logger.info("Cache sweep removed %d entries", removed)
