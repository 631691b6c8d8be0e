"""
Ledger API — Response Envelope Middleware
==========================================

What:  Wraps every JSON response body in a uniform envelope.
How:   Route handlers return plain payloads; this middleware reads the
       finished response, reshapes the JSON body according to the rules
       below, and re-emits it with the original status and headers.
       The final status code is read off the response object, so the order
       in which a handler set it does not matter.

Envelope shapes:
    Success: {"data": ..., "message"?: str, "meta": {...}, "pagination"?: {...}}
    Error:   {"error": str, "message"?: str, "details"?: ..., "retryAfter"?: int,
              "stack"?: [...], "meta": {...}}

Decision order (first match wins):
    1. status >= 400                         → error envelope (never skipped)
    2. path in the excluded list             → body returned byte-for-byte
    3. {"pagination", operations|items|data} → paginated list, meta.count
    4. JSON array                            → data=array, meta.count
    5. object with a non-null "message"      → message hoisted, rest into data
    6. any other object                      → data=object
    7. primitive / null                      → data=payload

Non-JSON responses (Swagger HTML, plain text) are passed through untouched.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ledger.config import settings
from ledger.middleware.request_id import get_request_context

UNKNOWN_ERROR = "unknown error"

PAGINATED_KEYS = ("operations", "items", "data")

# Optional error fields carried from the handler's payload into the envelope.
ERROR_PASSTHROUGH_KEYS = ("details", "retryAfter", "stack")

# Recomputed by JSONResponse when the body is re-rendered.
_STALE_HEADERS = {"content-length", "content-type"}


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-15T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def request_path(request: Request) -> str:
    """Path as the client sent it, including the query string."""
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def build_meta(request: Request, status_code: int) -> Dict[str, Any]:
    ctx = get_request_context(request)
    return {
        "timestamp": utc_timestamp(),
        "path": request_path(request),
        "method": request.method,
        "statusCode": status_code,
        "requestId": ctx.request_id,
        "processingTime": ctx.elapsed_ms(),
        "version": settings.api_version or "1.0.0",
    }


def build_error_envelope(payload: Any, meta: Dict[str, Any]) -> Dict[str, Any]:
    """
    Error shape for any status >= 400, whatever the payload looked like.

    `error` falls back to `message`, then to a generic string. A distinct
    `message` survives as a secondary field.
    """
    body = payload if isinstance(payload, dict) else {}
    error = body.get("error")
    message = body.get("message")

    envelope: Dict[str, Any] = {"error": error or message or UNKNOWN_ERROR}
    if error and message and message != error:
        envelope["message"] = message
    for key in ERROR_PASSTHROUGH_KEYS:
        if body.get(key) is not None:
            envelope[key] = body[key]
    envelope["meta"] = meta
    return envelope


def build_success_envelope(payload: Any, meta: Dict[str, Any]) -> Dict[str, Any]:
    """Applies rules 3-7 of the decision order to a successful payload."""
    if isinstance(payload, dict):
        if payload.get("pagination") is not None and any(
            payload.get(key) is not None for key in PAGINATED_KEYS
        ):
            items = next(
                (payload[key] for key in PAGINATED_KEYS if payload.get(key) is not None),
                [],
            )
            return {
                "data": items,
                "meta": {**meta, "count": len(items) if isinstance(items, list) else 0},
                "pagination": payload["pagination"],
            }

        if payload.get("message") is not None:
            rest = {key: value for key, value in payload.items() if key != "message"}
            return {
                "data": rest or None,
                "message": payload["message"],
                "meta": meta,
            }

        return {"data": payload, "meta": meta}

    if isinstance(payload, list):
        return {"data": payload, "meta": {**meta, "count": len(payload)}}

    return {"data": payload, "meta": meta}


def build_envelope(
    payload: Any,
    status_code: int,
    meta: Dict[str, Any],
) -> Dict[str, Any]:
    if status_code >= 400:
        return build_error_envelope(payload, meta)
    return build_success_envelope(payload, meta)


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower() == "application/json"


def _copy_headers(response: Response) -> Dict[str, str]:
    return {
        key: value
        for key, value in response.headers.items()
        if key.lower() not in _STALE_HEADERS
    }


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    """
    Post-processes every response from the inner stack into the envelope.

    Configuration:
        excluded_paths: exact-match paths whose 2xx/3xx bodies are left alone
    """

    def __init__(self, app: ASGIApp, excluded_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.excluded_paths = frozenset(
            settings.envelope_excluded_paths if excluded_paths is None else excluded_paths
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        get_request_context(request)
        response = await call_next(request)

        if not _is_json(response):
            return response

        raw = b"".join([chunk async for chunk in response.body_iterator])
        status_code = response.status_code

        if status_code < 400 and request.url.path in self.excluded_paths:
            return Response(
                content=raw,
                status_code=status_code,
                headers=_copy_headers(response),
                media_type=response.media_type or "application/json",
            )

        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            payload = raw.decode("utf-8", errors="replace")

        envelope = build_envelope(payload, status_code, build_meta(request, status_code))
        return JSONResponse(
            content=envelope,
            status_code=status_code,
            headers=_copy_headers(response),
        )
