from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Protocol

from .cache import ResponseCache
from .config import AppConfig
from .embeddings import EmbeddingGenerator, EmbeddingProvider
from .errors import InternalError, RateLimitedError, SearchError, ValidationError
from .limiter import UNKNOWN_CLIENT, RateLimiter
from .models import Opportunity, ResultPage
from .query import fingerprint, normalize
from .ranker import RelevanceRanker
from .sam import SamClient, SamPage

logger = logging.getLogger(__name__)


class Indexer(Protocol):
    async def add(self, opportunity: Opportunity) -> None: ...


class SearchService:
    """Rate-limited, cached SAM.gov search with optional semantic reranking."""

    def __init__(
        self,
        config: AppConfig | None = None,
        limiter: RateLimiter | None = None,
        cache: ResponseCache | None = None,
        sam_client: SamClient | None = None,
        generator: EmbeddingGenerator | None = None,
        ranker: RelevanceRanker | None = None,
        indexer: Indexer | None = None,
    ) -> None:
        self.config = config or AppConfig()
        # Caches and the limiter define __len__, so an empty one is falsy.
        if limiter is None:
            limiter = RateLimiter(
                max_requests=self.config.rate_limit.max_requests,
                window_seconds=self.config.rate_limit.window_seconds,
            )
        if cache is None:
            cache = ResponseCache(ttl=self.config.sam.cache_ttl_seconds)
        if sam_client is None:
            sam_client = SamClient(self.config.sam, user_agent=self.config.user_agent)
        if generator is None:
            generator = EmbeddingGenerator(self.config.embedding)
        if ranker is None:
            ranker = RelevanceRanker(
                generator,
                top_n=self.config.embedding.top_n,
                timeout=self.config.embedding.timeout_seconds,
            )
        self.limiter = limiter
        self.cache = cache
        self.sam_client = sam_client
        self.generator = generator
        self.ranker = ranker
        self.indexer = indexer

    async def search(
        self,
        raw_filters: Mapping[str, Any],
        sam_api_key: str | None,
        client_id: str | None = None,
        semantic_query: str | None = None,
        provider: EmbeddingProvider | str | None = None,
        embedding_api_key: str | None = None,
    ) -> ResultPage:
        if not self.limiter.admit(client_id):
            raise RateLimitedError(client_id or UNKNOWN_CLIENT)
        if not sam_api_key:
            raise ValidationError("SAM API key is required")

        try:
            return await self._search(
                raw_filters, sam_api_key, semantic_query, provider, embedding_api_key
            )
        except SearchError:
            raise
        except Exception as exc:
            logger.exception("SAM search failed unexpectedly")
            raise InternalError() from exc

    async def _search(
        self,
        raw_filters: Mapping[str, Any],
        sam_api_key: str,
        semantic_query: str | None,
        provider: EmbeddingProvider | str | None,
        embedding_api_key: str | None,
    ) -> ResultPage:
        sam = self.config.sam
        filters = normalize(
            raw_filters,
            default_limit=sam.default_limit,
            max_limit=sam.max_limit,
            posted_days=sam.posted_days,
        )
        fetched = False

        async def fetch() -> SamPage:
            nonlocal fetched
            fetched = True
            return await self.sam_client.fetch_page(filters, sam_api_key)

        page: SamPage = await self.cache.get_or_compute(
            fingerprint(filters), fetch, ttl=sam.cache_ttl_seconds
        )
        if fetched:
            await self._push_to_index(page.opportunities[: sam.index_push_limit])

        opportunities = list(page.opportunities)
        if semantic_query and semantic_query.strip():
            if embedding_api_key:
                opportunities = await self.ranker.rank(
                    opportunities,
                    semantic_query,
                    provider or self.config.embedding.default_provider,
                    embedding_api_key,
                )
            else:
                logger.info("Semantic ranking skipped: no embedding credentials")

        return ResultPage(
            opportunities=opportunities,
            total_records=page.total_records,
            limit=filters.limit,
            offset=filters.offset,
            cached=not fetched,
        )

    async def _push_to_index(self, opportunities: list[Opportunity]) -> None:
        if self.indexer is None or not opportunities:
            return
        results = await asyncio.gather(
            *(self.indexer.add(opp) for opp in opportunities), return_exceptions=True
        )
        # Indexing never fails the search; outcomes are only logged.
        for opp, result in zip(opportunities, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Failed to index opportunity %s: %s", opp.id, result)
