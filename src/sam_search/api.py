from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .cache import CacheSweeper, ResponseCache
from .config import AppConfig
from .errors import InternalError, SearchError
from .limiter import UNKNOWN_CLIENT
from .search import SearchService

logger = logging.getLogger(__name__)


def build_service(config: AppConfig) -> SearchService:
    store = None
    if config.cache.redis_url:
        from .redis_store import RedisStore

        store = RedisStore(config.cache.redis_url, prefix=config.cache.redis_prefix)
        logger.info("Using Redis backing store for search results")
    cache = ResponseCache(ttl=config.sam.cache_ttl_seconds, store=store)
    return SearchService(config, cache=cache)


def create_app(
    config: AppConfig | None = None, service: SearchService | None = None
) -> FastAPI:
    config = config or AppConfig()
    service = service or build_service(config)
    sweeper = CacheSweeper(
        [service.cache, service.generator, service.limiter],
        interval=config.cache.sweep_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        try:
            yield
        finally:
            sweeper.stop()
            await service.cache.close()

    app = FastAPI(title="SAM Search", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.sweeper = sweeper

    @app.exception_handler(SearchError)
    async def search_error_handler(request: Request, exc: SearchError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return _error_response(InternalError())

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "service": "sam-search"}

    @app.get("/api/sam-search")
    async def sam_search(request: Request) -> JSONResponse:
        params = request.query_params
        keyword = params.get("q")
        semantic = params.get("semantic") == "true"

        page = await service.search(
            params,
            params.get("samApiKey"),
            client_id=client_identity(request.headers),
            semantic_query=keyword if semantic else None,
            provider=params.get("provider") or config.embedding.default_provider,
            embedding_api_key=bearer_token(request.headers.get("authorization")),
        )
        return JSONResponse(
            {
                "success": True,
                "data": page.to_dict(),
                "cached": page.cached,
                "timestamp": _now_ms(),
            }
        )

    return app


def client_identity(headers: Mapping[str, str]) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    return real_ip or UNKNOWN_CLIENT


def bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _error_response(exc: SearchError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc), "timestamp": _now_ms()},
    )


def _now_ms() -> int:
    return int(time.time() * 1000)
