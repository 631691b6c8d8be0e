"""
Ledger API — FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn ledger.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain (outermost first):                     │
    │  CORS → GZip → RequestID → Envelope → Logging →          │
    │  RateLimit → Guard                                       │
    │                                                          │
    │  Routes:                                                 │
    │  /api/auth/*   /api/operations*   /api/healthcheck       │
    │                                                          │
    │  Exception Handlers:                                     │
    │  every failure → error_mapper.handle_exception           │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   logging, configuration check
    Shutdown:  dispose database engine
"""

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Receive, Scope, Send

from ledger import __version__
from ledger.config import settings
from ledger.database import dispose_engine
from ledger.error_mapper import handle_exception
from ledger.exceptions import LedgerError, RouteNotFoundError
from ledger.middleware.envelope import ResponseEnvelopeMiddleware
from ledger.middleware.guard import RequestGuardMiddleware
from ledger.middleware.logging import RequestLoggingMiddleware
from ledger.middleware.rate_limit import RateLimitMiddleware
from ledger.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from ledger.routes import auth, health, operations

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Output goes to stdout, which Docker captures.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Ledger API %s starting up (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Ledger API shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Route every failure through the error mapper.

    Handled types:
        LedgerError             → the kind's status (400/401/403/404/409/413)
        RequestValidationError  → 400 invalid input data / malformed JSON
        StarletteHTTPException  → its status and detail
        SQLAlchemyError         → 503/409/400 by driver error code
        OSError                 → 503 when the database refuses connections
        json.JSONDecodeError    → 400 malformed JSON
        Exception (fallback)    → 500 internal server error

    Anything else leaving the router is caught by RequestGuardMiddleware.
    The Exception handler only answers failures raised by the middleware
    themselves.
    """
    for exc_class in (
        LedgerError,
        RequestValidationError,
        StarletteHTTPException,
        SQLAlchemyError,
        OSError,
        json.JSONDecodeError,
        Exception,
    ):
        app.add_exception_handler(exc_class, handle_exception)


async def route_not_found(scope: Scope, receive: Receive, send: Send) -> None:
    """Router fallback: runs only when no route matched the path at all."""
    raise RouteNotFoundError(path=scope["path"])


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Each call builds a fresh middleware stack, including a new rate limiter,
    so tests can create isolated instances.
    """
    app = FastAPI(
        title="Ledger API",
        description=(
            "Record buy and sell operations per user. Every JSON response is "
            "wrapped in a {data | error, meta} envelope."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition (last added = outermost).
    # Execution order: CORS → GZip → RequestID → Envelope → Logging → RateLimit → Guard

    # Body limit and router failures, inside the limiter so they get its headers
    app.add_middleware(RequestGuardMiddleware)

    # Rate limiting: rejections are still logged and enveloped
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_ms=settings.rate_limit_window_ms,
        max_clients=settings.rate_limit_max_clients,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(ResponseEnvelopeMiddleware)

    # Request ID: outside the envelope so meta.requestId and the header agree
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            REQUEST_ID_HEADER,
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(operations.router)
    app.include_router(health.router)

    # Path matches with the wrong method still get the router's 405
    app.router.default = route_not_found

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
