from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class SamConfig:
    api_key: str | None = None
    base_url: str = "https://api.sam.gov/opportunities/v2/search"
    default_limit: int = 50
    max_limit: int = 100
    posted_days: int = 30
    cache_ttl_seconds: float = 1800.0
    timeout_seconds: float = 30.0
    index_push_limit: int = 10


@dataclass(slots=True)
class RateLimitConfig:
    window_seconds: float = 60.0
    max_requests: int = 100


@dataclass(slots=True)
class CacheConfig:
    sweep_interval_seconds: float = 300.0
    redis_url: str | None = None
    redis_prefix: str = "sam-search"


@dataclass(slots=True)
class EmbeddingConfig:
    default_provider: str = "openai"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    cache_capacity: int = 1000
    top_n: int = 25
    openai_url: str = "https://api.openai.com/v1/embeddings"
    openai_model: str = "text-embedding-3-small"
    huggingface_url: str = (
        "https://api-inference.huggingface.co/pipeline/feature-extraction/"
        "sentence-transformers/all-MiniLM-L6-v2"
    )


@dataclass(slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    sam: SamConfig = field(default_factory=SamConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    user_agent: str = "sam-search/0.1"
    log_level: str = "INFO"


def _merge(default: Any, override: Any) -> Any:
    if isinstance(default, dict) and isinstance(override, dict):
        merged: dict[str, Any] = {**default}
        for key, value in override.items():
            merged[key] = _merge(default.get(key), value)
        return merged
    return override if override is not None else default


def load_config(path: Path) -> AppConfig:
    data: dict[str, Any] = {}
    if path.exists():
        data = _read_toml(path)

    merged = _merge(asdict(AppConfig()), data)

    config = AppConfig(
        sam=SamConfig(**merged.get("sam", {})),
        rate_limit=RateLimitConfig(**merged.get("rate_limit", {})),
        cache=CacheConfig(**merged.get("cache", {})),
        embedding=EmbeddingConfig(**merged.get("embedding", {})),
        server=ServerConfig(**merged.get("server", {})),
        user_agent=merged.get("user_agent", "sam-search/0.1"),
        log_level=merged.get("log_level", "INFO"),
    )

    if env_sam := os.getenv("SAM_API_KEY"):
        config.sam.api_key = env_sam
    if env_base := os.getenv("SAM_BASE_URL"):
        config.sam.base_url = env_base
    if env_redis := os.getenv("REDIS_URL"):
        config.cache.redis_url = env_redis
    if env_embedding := os.getenv("EMBEDDING_API_KEY"):
        config.embedding.api_key = env_embedding
    if env_level := os.getenv("LOG_LEVEL"):
        config.log_level = env_level

    config.log_level = config.log_level.upper()
    config.embedding.default_provider = config.embedding.default_provider.lower()
    return config


def config_path(cli_path: str | None) -> Path:
    if cli_path:
        return Path(cli_path).expanduser()
    if env_path := os.getenv("SAM_SEARCH_CONFIG"):
        return Path(env_path).expanduser()
    return Path("config.toml")


def _read_toml(path: Path) -> dict[str, Any]:
    import tomllib

    with path.open("rb") as handle:
        return tomllib.load(handle)
