"""
Ledger API — Request Logging Middleware
========================================

What:  Logs the start and completion of every HTTP request.
How:   One line on arrival, an optional redacted body dump, and one line when
       the response is ready, carrying status and elapsed time.
Who:   Runs inside the envelope middleware, outside the rate limiter, so
       throttled requests are logged too.

Log lines (timestamp comes from the logging format):
    req_1705320000000_k3j2h1g0f9e8d GET /api/operations?page=2 - Started
    req_1705320000000_k3j2h1g0f9e8d Body: {"email": "a@b.co", "password": "[HIDDEN]"}
    req_1705320000000_k3j2h1g0f9e8d GET /api/operations?page=2 - 200 - 12ms

Body logging happens only for POST/PUT/PATCH outside production, and only
for JSON object bodies. `password` and `confirmPassword` are replaced by a
fixed marker; matching is by exact top-level key.
"""

import json
import logging
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ledger.config import settings
from ledger.middleware.envelope import request_path
from ledger.middleware.guard import declared_body_size
from ledger.middleware.request_id import get_request_context

logger = logging.getLogger("ledger.access")

REDACTED = "[HIDDEN]"
SENSITIVE_FIELDS = frozenset({"password", "confirmPassword"})
BODY_LOGGED_METHODS = frozenset({"POST", "PUT", "PATCH"})


def redact_body(body: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of `body` with password-like fields masked."""
    return {
        key: (REDACTED if key in SENSITIVE_FIELDS else value)
        for key, value in body.items()
    }


def _status_level(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Structured start/completion logging with request-id correlation.

    Completion is logged for every outcome. Failures inside the router
    arrive here as already-mapped error responses; an exception raised by
    the inner middleware itself is logged as 500 and re-raised.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ctx = get_request_context(request)
        method = request.method
        path = request_path(request)

        logger.info("%s %s %s - Started", ctx.request_id, method, path)

        if not settings.is_production and method in BODY_LOGGED_METHODS:
            await self._log_body(request, ctx.request_id)

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "%s %s %s - %d - %dms", ctx.request_id, method, path, 500, ctx.elapsed_ms()
            )
            raise

        status = response.status_code
        logger.log(
            _status_level(status),
            "%s %s %s - %d - %dms",
            ctx.request_id,
            method,
            path,
            status,
            ctx.elapsed_ms(),
            extra={
                "request_id": ctx.request_id,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": ctx.elapsed_ms(),
            },
        )
        return response

    async def _log_body(self, request: Request, rid: str) -> None:
        size = declared_body_size(request)
        if size is not None and size > settings.max_body_size:
            return
        # Starlette caches the body, so the route handler can still read it.
        raw = await request.body()
        if not raw:
            return
        try:
            body = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            logger.debug("%s Body: <%d bytes, not JSON>", rid, len(raw))
            return
        if not isinstance(body, dict):
            return
        logger.info("%s Body: %s", rid, json.dumps(redact_body(body), indent=2, default=str))
