from __future__ import annotations

import logging
from enum import Enum
from threading import Lock
from typing import Any, Awaitable, Callable

import httpx

from .config import EmbeddingConfig
from .errors import EmbeddingError, UnsupportedProviderError

logger = logging.getLogger(__name__)

Vector = tuple[float, ...]


class EmbeddingProvider(str, Enum):
    OPENAI = "openai"
    HUGGINGFACE = "huggingface"

    @classmethod
    def parse(cls, name: EmbeddingProvider | str | None) -> EmbeddingProvider:
        if isinstance(name, cls):
            return name
        try:
            return cls((name or "").strip().lower())
        except ValueError:
            raise UnsupportedProviderError(str(name)) from None


class EmbeddingGenerator:
    """Text embeddings memoized by (provider, text).

    The cache is fill-once-read-many. Past ``capacity`` entries the older half,
    by insertion order, is dropped.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self.capacity = self.config.cache_capacity
        self.calls = 0
        self._transport = transport
        self._cache: dict[tuple[str, str], Vector] = {}
        self._lock = Lock()
        self._providers: dict[
            EmbeddingProvider, Callable[[httpx.AsyncClient, str, str], Awaitable[Vector]]
        ] = {
            EmbeddingProvider.OPENAI: self._openai,
            EmbeddingProvider.HUGGINGFACE: self._huggingface,
        }

    async def embed(
        self, text: str, provider: EmbeddingProvider | str, api_key: str
    ) -> Vector:
        kind = EmbeddingProvider.parse(provider)
        key = (kind.value, text)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        vector = await self._request(kind, text, api_key)

        with self._lock:
            self._cache[key] = vector
            self._trim()
        return vector

    def sweep(self) -> int:
        with self._lock:
            return self._trim()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _trim(self) -> int:
        if len(self._cache) <= self.capacity:
            return 0
        keep = self.capacity // 2
        evict = len(self._cache) - keep
        for key in list(self._cache)[:evict]:
            del self._cache[key]
        logger.debug("Evicted %d cached embeddings", evict)
        return evict

    async def _request(self, kind: EmbeddingProvider, text: str, api_key: str) -> Vector:
        self.calls += 1
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds, transport=self._transport
            ) as client:
                return await self._providers[kind](client, text, api_key)
        except httpx.TimeoutException as exc:
            raise EmbeddingError(f"{kind.value} embedding request timed out") from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"{kind.value} embedding request failed: {exc}") from exc

    async def _openai(self, client: httpx.AsyncClient, text: str, api_key: str) -> Vector:
        resp = await client.post(
            self.config.openai_url,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": self.config.openai_model,
                "input": text,
                "encoding_format": "float",
            },
        )
        data = _json_or_none(resp)
        if resp.status_code >= 400:
            detail = None
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                detail = data["error"].get("message")
            raise EmbeddingError(
                f"OpenAI Embeddings API error: {detail or resp.reason_phrase}"
            )
        try:
            raw = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise EmbeddingError("OpenAI Embeddings API returned no embedding") from None
        return _to_vector(raw, "OpenAI")

    async def _huggingface(
        self, client: httpx.AsyncClient, text: str, api_key: str
    ) -> Vector:
        resp = await client.post(
            self.config.huggingface_url,
            headers={"Authorization": f"Bearer {api_key}"},
            json={"inputs": text, "options": {"wait_for_model": True}},
        )
        data = _json_or_none(resp)
        if resp.status_code >= 400:
            detail = data.get("error") if isinstance(data, dict) else None
            raise EmbeddingError(
                f"Hugging Face Embeddings API error: {detail or resp.reason_phrase}"
            )
        # Feature extraction answers with either [vector] or vector.
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        return _to_vector(data, "Hugging Face")


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _to_vector(raw: Any, provider: str) -> Vector:
    if not isinstance(raw, list) or not raw:
        raise EmbeddingError(f"{provider} returned a malformed embedding")
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in raw):
        raise EmbeddingError(f"{provider} returned a malformed embedding")
    return tuple(float(x) for x in raw)
