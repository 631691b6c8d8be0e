"""
Ledger API — Rate Limiter Tests
================================

What we test:
    ✅ The (limit + 1)-th request in a window is rejected with retryAfter
    ✅ A request after the window has ended starts a fresh counter
    ✅ Headers report limit, remaining and an ISO reset time
    ✅ LRU eviction caps the number of tracked clients
    ✅ Clients without an address share one bucket
    ✅ 429 responses carry Retry-After and the error envelope
"""

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from starlette.requests import Request

from ledger.middleware.envelope import ResponseEnvelopeMiddleware
from ledger.middleware.rate_limit import (
    UNKNOWN_CLIENT,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    client_key,
)
from ledger.middleware.request_id import RequestIDMiddleware


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestFixedWindowRateLimiter:

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = FixedWindowRateLimiter(max_requests=3, window_ms=60_000, clock=self.clock)

    def test_allows_up_to_limit_then_rejects(self):
        decisions = [self.limiter.hit("1.2.3.4") for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert decisions[-1].retry_after == 60

    def test_retry_after_rounds_up(self):
        for _ in range(3):
            self.limiter.hit("c")
        self.clock.advance(10.2)
        decision = self.limiter.hit("c")
        assert not decision.allowed
        assert decision.retry_after == 50

    def test_new_window_after_reset(self):
        for _ in range(4):
            self.limiter.hit("c")
        self.clock.advance(60.001)
        decision = self.limiter.hit("c")
        assert decision.allowed
        assert decision.remaining == 2

    def test_request_exactly_at_reset_counts_in_old_window(self):
        for _ in range(3):
            self.limiter.hit("c")
        self.clock.advance(60)
        assert not self.limiter.hit("c").allowed

    def test_clients_are_independent(self):
        for _ in range(4):
            self.limiter.hit("a")
        assert self.limiter.hit("b").allowed

    def test_headers(self):
        headers = self.limiter.hit("c").headers()
        assert headers["X-RateLimit-Limit"] == "3"
        assert headers["X-RateLimit-Remaining"] == "2"
        assert headers["X-RateLimit-Reset"] == "2023-11-14T22:14:20.000Z"

    def test_lru_eviction(self):
        limiter = FixedWindowRateLimiter(max_requests=3, window_ms=60_000, max_clients=2, clock=self.clock)
        limiter.hit("a")
        limiter.hit("b")
        limiter.hit("a")  # b is now least recently seen
        limiter.hit("c")
        assert len(limiter) == 2
        assert "a" in limiter
        assert "c" in limiter
        assert "b" not in limiter


def _request(client):
    scope = {"type": "http", "method": "GET", "path": "/", "headers": [], "client": client}
    return Request(scope)


class TestClientKey:

    def test_uses_remote_address(self):
        assert client_key(_request(("10.0.0.1", 5000))) == "10.0.0.1"

    def test_missing_address_is_unknown(self):
        assert client_key(_request(None)) == UNKNOWN_CLIENT


# ── Over HTTP ────────────────────────────────────────────────────────────

def _build_app(limit: int) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    app.add_middleware(RateLimitMiddleware, max_requests=limit, window_ms=60_000)
    app.add_middleware(ResponseEnvelopeMiddleware)
    app.add_middleware(RequestIDMiddleware)
    return app


class TestRateLimitMiddleware:

    @pytest.mark.asyncio
    async def test_headers_on_allowed_response(self):
        transport = ASGITransport(app=_build_app(limit=2))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/ping")
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "1"
        assert response.json()["data"] == {"pong": True}

    @pytest.mark.asyncio
    async def test_rejects_with_envelope_and_retry_after(self):
        transport = ASGITransport(app=_build_app(limit=2))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(2):
                assert (await client.get("/ping")).status_code == 200
            response = await client.get("/ping")

        body = response.json()
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert body["error"] == "too many requests"
        assert body["message"] == "Limit of 2 requests per 1 minutes exceeded"
        assert body["retryAfter"] == int(response.headers["Retry-After"])
        assert body["meta"]["statusCode"] == 429
