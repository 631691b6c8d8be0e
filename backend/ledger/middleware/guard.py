"""
Ledger API — Request Guard Middleware
======================================

What:  Innermost pipeline middleware, directly in front of the router.
How:   Before the router runs, rejects bodies whose declared Content-Length
       exceeds `max_body_size` (nothing has read the body yet, so a huge
       or malformed payload is answered 413, never parsed).
       After the router runs, turns any exception that no class-specific
       handler answered into the mapped error envelope.
Who:   Sits inside the rate limiter, so both outcomes carry the
       X-RateLimit-* headers and pass back through logging, the envelope,
       request id, GZip and CORS like any other response.
"""

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ledger.config import settings
from ledger.error_mapper import handle_exception
from ledger.exceptions import PayloadTooLargeError

logger = logging.getLogger(__name__)


def declared_body_size(request: Request) -> Optional[int]:
    declared = request.headers.get("content-length", "")
    return int(declared) if declared.isdigit() else None


class RequestGuardMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        size = declared_body_size(request)
        if size is not None and size > settings.max_body_size:
            return await handle_exception(
                request, PayloadTooLargeError(limit=settings.max_body_size, received=size)
            )

        try:
            return await call_next(request)
        except Exception as exc:
            return await handle_exception(request, exc)
