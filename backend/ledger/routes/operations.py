"""
Ledger API — Operation Route Handlers
======================================

What:  Record and browse the caller's buy/sell operations.
How:   Every route depends on get_current_principal, so an unauthenticated
       request is rejected with 401 before the handler runs.

Pagination:
    GET /api/operations?page=2&limit=20
    → {operations: [...], pagination: {page, limit, total, totalPages}}
    The envelope turns this into {data: [...], pagination, meta.count}.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db_session
from ledger.dependencies import get_current_principal
from ledger.middleware.request_id import Principal
from ledger.schemas.common import ErrorResponse
from ledger.schemas.operation import (
    OperationCreate,
    OperationListResponse,
    OperationResponse,
)
from ledger.services.operation_service import operation_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(
    prefix="/api/operations",
    tags=["Operations"],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
)


@router.post(
    "",
    status_code=201,
    response_model=OperationResponse,
    responses={
        400: {"description": "Invalid input data", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
    },
    summary="Record an operation",
    description="Stores a buy or sell operation for the authenticated user.",
)
async def create_operation(
    body: OperationCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> OperationResponse:
    return await operation_service.create_operation(db=db, data=body, user_id=principal.id)


@router.get(
    "",
    response_model=OperationListResponse,
    responses={
        400: {"description": "Invalid pagination parameters", "model": ErrorResponse},
    },
    summary="List operations",
    description="Returns the caller's operations, newest first, with offset pagination.",
)
async def list_operations(
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: int = Query(default=10, ge=1, le=100, description="Items per page (max 100)"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> OperationListResponse:
    return await operation_service.list_operations(
        db=db, user_id=principal.id, page=page, limit=limit
    )


@router.get(
    "/{operation_id}",
    response_model=OperationResponse,
    responses={
        403: {"description": "Operation belongs to another user", "model": ErrorResponse},
        404: {"description": "Operation not found", "model": ErrorResponse},
    },
    summary="Get one operation",
    description="Returns a single operation if it belongs to the caller.",
)
async def get_operation(
    operation_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
) -> OperationResponse:
    return await operation_service.get_operation(
        db=db, operation_id=operation_id, user_id=principal.id
    )
