"""
Ledger API — Rate Limiting Middleware
======================================

What:  Per-client fixed-window rate limiter.
How:   Counts requests per client address in memory; the counter is replaced
       the first time it is seen after its window has ended.
Who:   Runs just outside the request guard, before any route work.

Algorithm: Fixed Window Counter
    1. Counter exists but its reset time has passed → discard it
    2. No counter → create one with count=1, reset = now + window
    3. Otherwise → count += 1
    4. Always report X-RateLimit-Limit / -Remaining / -Reset headers
    5. count > limit → 429 with retryAfter (seconds, rounded up)

    A burst of up to 2× the limit is possible across a window boundary;
    that is inherent to fixed windows.

Memory:
    Counters live in an OrderedDict used as an LRU. When more than
    `max_clients` distinct clients are tracked, the least recently seen one
    is dropped (its next request starts a fresh window).

Concurrency:
    `hit()` never awaits, so on a single event loop one read-modify-write
    cannot interleave with another. Multiple worker processes each keep
    their own counters; there is no shared guarantee across them.

Client identity:
    The remote address as seen by the server. Requests with no address share
    the single "unknown" bucket, so such clients throttle each other.
"""

import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ledger.config import settings

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class WindowCounter:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> dict:
        reset = datetime.fromtimestamp(self.reset_at, tz=timezone.utc)
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }


class FixedWindowRateLimiter:
    """
    In-memory fixed-window counters keyed by client id.

    Args:
        max_requests: requests allowed per window
        window_ms:    window length in milliseconds
        max_clients:  LRU capacity for tracked clients
        clock:        returns epoch seconds; injectable for tests
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        max_clients: int = 10_000,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_clients = max_clients
        self._clock = clock
        self._counters: "OrderedDict[str, WindowCounter]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._counters)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._counters

    def hit(self, client_id: str) -> RateLimitDecision:
        now = self._clock()
        counter = self._counters.get(client_id)

        if counter is not None and now > counter.reset_at:
            del self._counters[client_id]
            counter = None

        if counter is None:
            counter = WindowCounter(count=1, reset_at=now + self.window_ms / 1000)
            self._counters[client_id] = counter
            self._evict()
        else:
            counter.count += 1
            self._counters.move_to_end(client_id)

        return RateLimitDecision(
            allowed=counter.count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - counter.count),
            reset_at=counter.reset_at,
            retry_after=max(0, math.ceil(counter.reset_at - now)),
        )

    def _evict(self) -> None:
        while len(self._counters) > self.max_clients:
            evicted, _ = self._counters.popitem(last=False)
            logger.debug("Evicted rate limit counter for %s", evicted)


def client_key(request: Request) -> str:
    return request.client.host if request.client and request.client.host else UNKNOWN_CLIENT


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies a FixedWindowRateLimiter to every request.

    Response on rate limit:
        HTTP 429, Retry-After header, and a body the envelope middleware
        turns into the standard error envelope (retryAfter preserved).
    """

    def __init__(
        self,
        app: ASGIApp,
        max_requests: Optional[int] = None,
        window_ms: Optional[int] = None,
        max_clients: Optional[int] = None,
        limiter: Optional[FixedWindowRateLimiter] = None,
    ):
        super().__init__(app)
        self.limiter = limiter or FixedWindowRateLimiter(
            max_requests=max_requests or settings.rate_limit_max_requests,
            window_ms=window_ms or settings.rate_limit_window_ms,
            max_clients=max_clients or settings.rate_limit_max_clients,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client_id = client_key(request)
        decision = self.limiter.hit(client_id)

        if not decision.allowed:
            window_minutes = self.limiter.window_ms / 60_000
            logger.warning(
                "Rate limit exceeded for %s: %d requests per %gmin",
                client_id,
                self.limiter.max_requests,
                window_minutes,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "too many requests",
                    "message": (
                        f"Limit of {self.limiter.max_requests} requests "
                        f"per {window_minutes:g} minutes exceeded"
                    ),
                    "retryAfter": decision.retry_after,
                },
                headers={**decision.headers(), "Retry-After": str(decision.retry_after)},
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
