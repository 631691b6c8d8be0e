"""
Ledger API — Authentication Route Handlers
===========================================

What:  Handles account registration, login and token validation.
Who:   Called by the frontend login/register forms and on app start
       (validate) to restore a session.

Responses (before enveloping):
    register → 201 {message, token, user}
    login    → 200 {message, token, user}
    validate → 200 {message, user}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db_session
from ledger.dependencies import get_bearer_token
from ledger.exceptions import UnauthenticatedError
from ledger.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    TokenValidationResponse,
)
from ledger.schemas.common import ErrorResponse
from ledger.services.auth_service import auth_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={
        400: {"description": "Invalid input data", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Create an account",
    description="Registers a user and returns a signed access token for it.",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    result = await auth_service.register(
        db=db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return AuthResponse(message="user registered successfully", **result)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        400: {"description": "Invalid input data", "model": ErrorResponse},
        401: {"description": "Invalid credentials", "model": ErrorResponse},
    },
    summary="Log in",
    description="Exchanges email and password for an access token.",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    result = await auth_service.login(db=db, email=body.email, password=body.password)
    return AuthResponse(message="login successful", **result)


@router.get(
    "/validate",
    response_model=TokenValidationResponse,
    responses={
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
    },
    summary="Validate an access token",
    description="Returns the user the bearer token belongs to, if it is still valid.",
)
async def validate(
    token: Optional[str] = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_db_session),
) -> TokenValidationResponse:
    if not token:
        raise UnauthenticatedError("access token required")
    user = await auth_service.validate_token(db=db, token=token)
    return TokenValidationResponse(message="token is valid", user=user)
