from __future__ import annotations

import json

import httpx
import pytest


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SharedStore:
    """In-memory stand-in for the Redis backing store, expiring against a clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.data: dict = {}
        self.writes: list[tuple[str, float]] = []
        self.reads: list[str] = []
        self.closed = False

    async def get(self, key):
        self.reads.append(key)
        found = self.data.get(key)
        if found is None:
            return None
        payload, expires_at = found
        remaining = expires_at - self.clock()
        if remaining <= 0:
            return None
        return payload, remaining

    async def set(self, key, payload, ttl):
        self.writes.append((key, ttl))
        self.data[key] = (payload, self.clock() + ttl)

    async def close(self):
        self.closed = True


def sam_record(notice_id: str, title: str, description: str = "", **extra) -> dict:
    record = {
        "noticeId": notice_id,
        "title": title,
        "description": description,
        "solicitationNumber": f"SOL-{notice_id}",
        "fullParentPathName": "DEPT OF DEFENSE",
        "postedDate": "2024-03-01",
        "type": "Solicitation",
        "naicsCode": "541512",
        "active": "Yes",
        "uiLink": f"https://sam.gov/opp/{notice_id}/view",
    }
    record.update(extra)
    return record


class SamUpstream:
    """Counts calls to a fake SAM.gov endpoint and replays a scripted response."""

    def __init__(self, records: list[dict] | None = None, status: int = 200, body=None):
        self.records = records if records is not None else []
        self.status = status
        self.body = body
        self.calls: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.body is not None:
            return httpx.Response(self.status, text=self.body)
        if self.status >= 400:
            return httpx.Response(
                self.status, json={"errorMessage": "upstream exploded"}
            )
        return httpx.Response(
            200,
            json={"totalRecords": len(self.records), "opportunitiesData": self.records},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class EmbeddingUpstream:
    """Fake embedding endpoint returning deterministic vectors keyed by text."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, status: int = 200):
        self.vectors = vectors or {}
        self.status = status
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        text = payload.get("input", payload.get("inputs"))
        self.calls.append(text)
        if self.status >= 400:
            return httpx.Response(self.status, json={"error": {"message": "quota exceeded"}})
        vector = self.vectors.get(text, [0.0, 1.0])
        if "inputs" in payload:
            return httpx.Response(200, json=[vector])
        return httpx.Response(200, json={"data": [{"embedding": vector}]})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
