"""
Ledger API — Error Mapper
==========================

What:  Turns any failure that escapes a route into one error envelope.
How:   `map_exception()` classifies the failure (first matching rule wins);
       `handle_exception()` logs it, maps it, and renders the envelope.
       main.py registers `handle_exception` for every exception type the
       application can raise, including the bare `Exception` fallback.
Who:   The last line of defense; it never re-raises into the client.

Classification (in order):
    ┌────────────────────────────────────┬─────┬────────────────────┬─────────────────────────────────────┐
    │ Condition                          │ HTTP│ error              │ message                             │
    ├────────────────────────────────────┼─────┼────────────────────┼─────────────────────────────────────┤
    │ ECONNREFUSED anywhere in the chain │ 503 │ service unavailable│ database connection error           │
    │ SQLSTATE 23505 (unique)            │ 409 │ data conflict      │ resource already exists             │
    │ SQLSTATE 23503 (foreign key)       │ 400 │ invalid data       │ reference to nonexistent resource   │
    │ SQLSTATE 23514 (check)             │ 400 │ invalid data       │ data fails required constraints     │
    │ SQLAlchemy DBAPIError              │ 400 │ query error        │ invalid data or malformed format    │
    │ JSON parse failure                 │ 400 │ malformed JSON     │ invalid payload format              │
    │ PayloadTooLargeError               │ 413 │ payload too large  │ exceeds allowed size                │
    │ RequestValidationError             │ 400 │ invalid input data │ — (details: field errors)           │
    │ RouteNotFoundError                 │ 404 │ route not found    │ — (details: request path)           │
    │ explicit status_code               │ any │ failure's message  │ —                                   │
    │ anything else                      │ 500 │ internal server err│ own message / generic (production)  │
    └────────────────────────────────────┴─────┴────────────────────┴─────────────────────────────────────┘

    Infrastructure codes outrank an explicit status code: a domain failure
    that also carries SQLSTATE 23505 is answered as a 409 data conflict.

Stack traces (first ten lines) are attached to 500s outside production only.
"""

import errno
import json
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from ledger.config import settings
from ledger.exceptions import PayloadTooLargeError, RouteNotFoundError
from ledger.middleware.envelope import build_error_envelope, build_meta, request_path
from ledger.middleware.request_id import REQUEST_ID_HEADER, get_request_context

logger = logging.getLogger(__name__)

CONNECTION_REFUSED = "ECONNREFUSED"
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"

ROUTE_NOT_FOUND = "route not found"
GENERIC_ERROR = "request failed"
INTERNAL_ERROR = "internal server error"
RETRY_LATER = "something went wrong, please try again later"

STACK_LINES = 10
_MAX_CHAIN = 8


@dataclass
class MappedError:
    status_code: int
    error: str
    message: Optional[str] = None
    details: Any = None
    stack: Optional[List[str]] = None
    headers: Optional[Dict[str, str]] = None

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        if self.details is not None:
            body["details"] = self.details
        if self.stack:
            body["stack"] = self.stack
        return body


# Infrastructure rules: code → (status, error, message)
_CODE_RULES = {
    CONNECTION_REFUSED: (503, "service unavailable", "database connection error"),
    UNIQUE_VIOLATION: (409, "data conflict", "resource already exists"),
    FOREIGN_KEY_VIOLATION: (400, "invalid data", "reference to nonexistent resource"),
    CHECK_VIOLATION: (400, "invalid data", "data fails required constraints"),
}


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """The failure, the DBAPI error it wraps, and its causes, without repeats."""
    seen = set()
    pending = [exc]
    while pending and len(seen) < _MAX_CHAIN:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.extend(
            [getattr(current, "orig", None), current.__cause__, current.__context__]
        )


def failure_code(exc: BaseException) -> Optional[str]:
    """
    First recognizable error code in the chain.

    Looks for connection refusal, a PostgreSQL SQLSTATE (`sqlstate` on
    asyncpg, `pgcode` on psycopg), or a plain string `code` attribute.
    SQLAlchemy's own `code` (documentation links such as "gkpj") is ignored.
    """
    for item in _exception_chain(exc):
        if isinstance(item, ConnectionRefusedError) or (
            isinstance(item, OSError) and item.errno == errno.ECONNREFUSED
        ):
            return CONNECTION_REFUSED
        for attr in ("sqlstate", "pgcode"):
            value = getattr(item, attr, None)
            if isinstance(value, str) and value:
                return value
        if not isinstance(item, SQLAlchemyError):
            value = getattr(item, "code", None)
            if isinstance(value, str) and value:
                return value
    return None


def _is_json_parse_failure(exc: BaseException) -> bool:
    if isinstance(exc, json.JSONDecodeError):
        return True
    if isinstance(exc, RequestValidationError):
        return any(err.get("type") == "json_invalid" for err in exc.errors())
    return False


def _validation_details(exc: RequestValidationError) -> List[Dict[str, Any]]:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({
            "field": ".".join(loc) or None,
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        })
    return details


def _stack_lines(exc: BaseException) -> List[str]:
    head = f"{type(exc).__name__}: {exc}"
    frames = "".join(traceback.format_tb(exc.__traceback__)).splitlines()
    return [head, *frames][:STACK_LINES]


def map_exception(exc: BaseException, production: Optional[bool] = None) -> MappedError:
    """Classifies `exc` into status, error and message."""
    if production is None:
        production = settings.is_production

    code = failure_code(exc)
    if code in _CODE_RULES:
        status, error, message = _CODE_RULES[code]
        return MappedError(status, error, message)

    if isinstance(exc, DBAPIError):
        return MappedError(400, "query error", "invalid data or malformed format")

    if _is_json_parse_failure(exc):
        return MappedError(400, "malformed JSON", "invalid payload format")

    if isinstance(exc, PayloadTooLargeError):
        return MappedError(413, "payload too large", "exceeds allowed size")

    if isinstance(exc, RequestValidationError):
        return MappedError(400, "invalid input data", details=_validation_details(exc))

    if isinstance(exc, RouteNotFoundError):
        return MappedError(404, ROUTE_NOT_FOUND)

    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status >= 400:
        if isinstance(exc, StarletteHTTPException):
            text = exc.detail if isinstance(exc.detail, str) else None
            return MappedError(status, text or GENERIC_ERROR, headers=exc.headers)
        text = getattr(exc, "message", None) or str(exc)
        return MappedError(status, text or GENERIC_ERROR)

    return MappedError(
        500,
        INTERNAL_ERROR,
        RETRY_LATER if production else (str(exc) or RETRY_LATER),
        stack=None if production else _stack_lines(exc),
    )


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Exception handler registered on the FastAPI app for every failure type.

    Also called by RequestGuardMiddleware for failures no class handler
    caught, so those responses still pass back through the whole chain.
    The envelope is built here in full either way; the envelope middleware
    only re-stamps `meta`.
    """
    ctx = get_request_context(request)
    mapped = map_exception(exc)

    level = logging.ERROR if mapped.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "[%s] %s %s failed: %s: %s",
        ctx.request_id,
        request.method,
        request_path(request),
        type(exc).__name__,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
    )

    if isinstance(exc, RouteNotFoundError):
        mapped.details = {"path": request_path(request)}

    body = build_error_envelope(mapped.payload(), build_meta(request, mapped.status_code))
    headers = dict(mapped.headers or {})
    headers[REQUEST_ID_HEADER] = ctx.request_id
    return JSONResponse(status_code=mapped.status_code, content=body, headers=headers)
