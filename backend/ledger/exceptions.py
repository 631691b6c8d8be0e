"""
Ledger API — Custom Exception Hierarchy
========================================

What:  Defines a closed set of domain failure kinds, each bound to one HTTP status.
How:   Each exception class carries a message and optional context dict.
       The error mapper (ledger.error_mapper) reads `status_code` off the
       raised kind; nothing in the HTTP layer inspects message text.
Who:   Raised by services, dependencies and route handlers.

Exception Hierarchy:
    LedgerError (base)                 → 500
    ├── InvalidInputError              → 400 Bad Request
    ├── UnauthenticatedError           → 401 Unauthorized
    ├── ForbiddenError                 → 403 Forbidden
    ├── NotFoundError                  → 404 Not Found
    ├── ConflictError                  → 409 Conflict
    ├── PayloadTooLargeError           → 413 Payload Too Large
    └── RouteNotFoundError             → 404 no route matches the path
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """
    Base exception for all Ledger application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class InvalidInputError(LedgerError):
    """
    Raised when input passes schema validation but breaks a business rule.

    When:    Non-positive amount, unknown operation type, empty currency.
    HTTP:    400 Bad Request
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Invalid input data",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthenticatedError(LedgerError):
    """
    Raised when the caller's identity cannot be established.

    When:    Missing bearer token, expired or tampered token, wrong credentials.
    HTTP:    401 Unauthorized
    """

    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(LedgerError):
    """Authenticated caller is not allowed to touch the resource (HTTP 403)."""

    status_code = 403

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(LedgerError):
    """
    Raised when a requested resource does not exist.

    What:    SQLAlchemy returns None for missing records; services convert
             that None into this exception.
    HTTP:    404 Not Found
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class ConflictError(LedgerError):
    """The resource being created already exists (HTTP 409)."""

    status_code = 409

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(LedgerError):
    """
    Raised when a request body exceeds `max_body_size`.

    HTTP:    413 Payload Too Large
    """

    status_code = 413

    def __init__(
        self,
        limit: int,
        received: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["limit"] = limit
        if received is not None:
            ctx["received"] = received
        super().__init__(message="request entity too large", context=ctx)
        self.limit = limit


class RouteNotFoundError(LedgerError):
    """
    Raised by the router when no route matches the request path.

    HTTP:    404 Not Found
    """

    status_code = 404

    def __init__(self, path: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["path"] = path
        super().__init__(message="route not found", context=ctx)
        self.path = path
