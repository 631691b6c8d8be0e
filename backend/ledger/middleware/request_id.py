"""
Ledger API — Request ID Middleware
===================================

What:  Stamps every request with a correlation identifier and a start time.
How:   Creates the per-request RequestContext, stores it on request.state and
       in a ContextVar, and echoes the identifier in the X-Request-ID header.
Who:   Outermost pipeline middleware (only CORS wraps it).

Identifier resolution (first match wins):
    1. A context already attached by an upstream component → reused as-is
    2. A well-formed X-Request-ID header from the client → adopted
    3. Otherwise a fresh `req_<epoch-ms>_<13 base36 chars>` token

The token is unique at practical collision odds for a process lifetime;
it is not meant to be unguessable.
"""

import random
import re
import string
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9\-_.:@]{1,128}$")
_ALPHABET = string.digits + string.ascii_lowercase

# Coroutine-local request id, read by loggers and the error mapper.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@dataclass
class Principal:
    """Authenticated caller, attached after token verification."""

    id: str
    email: str


@dataclass
class RequestContext:
    """State owned by the pipeline for the lifetime of one request."""

    request_id: str
    started_at: float = field(default_factory=time.perf_counter)
    principal: Optional[Principal] = None

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


def generate_request_id() -> str:
    suffix = "".join(random.choices(_ALPHABET, k=13))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def get_request_context(request: Request) -> RequestContext:
    """
    Returns the context for `request`, creating one if the pipeline did not.

    Exception handlers running outside the middleware stack still share
    `request.state` with it (Starlette keeps state on the ASGI scope), so they
    see the same identifier and start time.
    """
    ctx = getattr(request.state, "context", None)
    if ctx is None:
        ctx = RequestContext(request_id=request_id_var.get("") or generate_request_id())
        request.state.context = ctx
        request.state.request_id = ctx.request_id
    return ctx


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns the correlation identifier and always echoes it on the response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ctx = getattr(request.state, "context", None)
        if ctx is None:
            incoming = request.headers.get(REQUEST_ID_HEADER)
            rid = incoming if incoming and _SAFE_REQUEST_ID.match(incoming) else generate_request_id()
            ctx = RequestContext(request_id=rid)
            request.state.context = ctx

        # request.state for handlers, ContextVar for loggers
        request.state.request_id = ctx.request_id
        request_id_var.set(ctx.request_id)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = ctx.request_id
        return response
