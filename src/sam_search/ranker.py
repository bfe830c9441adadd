from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Sequence

import numpy as np

from .embeddings import EmbeddingGenerator, EmbeddingProvider, Vector
from .errors import EmbeddingError
from .models import Opportunity

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors, 0.0 when either has no magnitude."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Embedding dimensions differ: {va.shape} vs {vb.shape}")

    magnitude = np.sqrt(np.dot(va, va) * np.dot(vb, vb))
    if magnitude == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / magnitude, -1.0, 1.0))


class RelevanceRanker:
    """Reorders a result page by semantic similarity to a free-text query.

    Ranking is best effort: if any embedding fails or times out the page comes
    back exactly as it went in, unscored and in upstream order.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        top_n: int = 25,
        timeout: float = 30.0,
    ) -> None:
        self.generator = generator
        self.top_n = top_n
        self.timeout = timeout

    async def rank(
        self,
        candidates: list[Opportunity],
        query: str | None,
        provider: EmbeddingProvider | str,
        api_key: str,
    ) -> list[Opportunity]:
        if not query or not query.strip() or not candidates:
            return candidates

        try:
            query_vector = await self._embed(query, provider, api_key)
        except (EmbeddingError, TimeoutError) as exc:
            logger.warning("Semantic ranking skipped, query embedding failed: %s", exc)
            return candidates

        # Each call carries its own timeout so one slow candidate cannot cancel the rest.
        results = await asyncio.gather(
            *(self._embed(opp.ranking_text(), provider, api_key) for opp in candidates),
            return_exceptions=True,
        )

        vectors: list[Vector] = []
        for result in results:
            if isinstance(result, (EmbeddingError, TimeoutError)):
                logger.warning("Semantic ranking skipped, candidate embedding failed: %s", result)
                return candidates
            if isinstance(result, BaseException):
                raise result
            vectors.append(result)

        scored = [
            replace(opp, relevance_score=cosine_similarity(query_vector, vector))
            for opp, vector in zip(candidates, vectors, strict=True)
        ]
        scored.sort(key=lambda opp: opp.relevance_score, reverse=True)
        return scored[: self.top_n]

    async def _embed(
        self, text: str, provider: EmbeddingProvider | str, api_key: str
    ) -> Vector:
        return await asyncio.wait_for(
            self.generator.embed(text, provider, api_key), self.timeout
        )
