from __future__ import annotations


class SearchError(Exception):
    """Base class for failures surfaced by the search service."""

    status_code = 500


class RateLimitedError(SearchError):
    status_code = 429

    def __init__(self, client_id: str) -> None:
        super().__init__("Rate limit exceeded. Please try again later.")
        self.client_id = client_id


class ValidationError(SearchError):
    status_code = 400


class UpstreamFetchError(SearchError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class EmbeddingError(SearchError):
    pass


class UnsupportedProviderError(EmbeddingError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"Embedding provider {provider} not supported")
        self.provider = provider


class InternalError(SearchError):
    def __init__(self) -> None:
        super().__init__("An unexpected error occurred")
