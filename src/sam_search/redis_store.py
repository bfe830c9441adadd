from __future__ import annotations

import logging
import math
import pickle
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_UNPICKLE_ERRORS = (
    pickle.UnpicklingError,
    EOFError,
    AttributeError,
    ImportError,
    IndexError,
    TypeError,
    ValueError,
)


class RedisStore:
    """Shared backing store for ResponseCache.

    Redis applies the TTL itself via SETEX, and reads report what is left of
    it via PTTL. Connection problems degrade to a miss on read and a skipped
    write; the in-process cache keeps working. Entries that no longer
    unpickle are deleted and read as a miss.
    """

    def __init__(
        self,
        url: str | None = None,
        prefix: str = "sam-search",
        client: Any = None,
    ) -> None:
        if client is None:
            if not url:
                raise ValueError("RedisStore needs a url or a client")
            client = redis.from_url(
                url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        self.prefix = prefix
        self._client = client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> tuple[Any, float | None] | None:
        name = self._key(key)
        try:
            data = await self._client.get(name)
            millis = await self._client.pttl(name) if data is not None else None
        except RedisError as exc:
            logger.warning("Redis read failed for %s: %s", key, exc)
            return None
        # PTTL is -2 once the key is gone and -1 when it has no expiry.
        if data is None or millis == -2:
            return None
        try:
            payload = pickle.loads(data)
        except _UNPICKLE_ERRORS as exc:
            logger.warning("Discarding unreadable Redis entry %s: %s", key, exc)
            await self._discard(name)
            return None
        remaining = None if millis < 0 else millis / 1000
        return payload, remaining

    async def _discard(self, name: str) -> None:
        try:
            await self._client.delete(name)
        except RedisError as exc:
            logger.warning("Redis delete failed for %s: %s", name, exc)

    async def set(self, key: str, payload: Any, ttl: float) -> None:
        seconds = max(1, math.ceil(ttl))
        try:
            await self._client.setex(self._key(key), seconds, pickle.dumps(payload))
        except RedisError as exc:
            logger.warning("Redis write failed for %s: %s", key, exc)

    async def close(self) -> None:
        await self._client.aclose()
