"""
Ledger API — Operation Service
===============================

What:  Create, list and fetch a user's buy/sell operations.
Who:   Called by the /api/operations route handlers.

Ownership:
    Operations are only visible to the user who recorded them. Fetching
    someone else's operation by id is a 403, not a 404.

Query plan (list):
    SELECT count(*) FROM operations WHERE user_id = :uid
    SELECT * FROM operations WHERE user_id = :uid
    ORDER BY created_at DESC LIMIT :limit OFFSET :offset
    → idx_operations_user_created
"""

import logging
import math
import uuid
from typing import Any, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from ledger.models.operation import Operation, OperationType
from ledger.models.user import User
from ledger.schemas.operation import (
    OperationCreate,
    OperationListResponse,
    OperationResponse,
    Pagination,
)

logger = logging.getLogger(__name__)

FORBIDDEN_OPERATION = "you do not have permission to view this operation"


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class OperationService:
    """
    Business rules for operations.

    Amount, type and currency are validated by the request schema already;
    create_operation checks them again because it is also reachable from
    code that does not go through HTTP.
    """

    async def _get_user(self, db: AsyncSession, user_id: Any) -> User:
        uid = _as_uuid(user_id)
        user = None
        if uid is not None:
            result = await db.execute(
                select(User).where(User.id == uid, User.is_active.is_(True))
            )
            user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    def _check_payload(self, data: OperationCreate) -> None:
        if data.amount is None or not data.amount > 0:
            raise InvalidInputError("amount must be greater than 0", field="amount")
        if data.type not in (OperationType.BUY, OperationType.SELL):
            raise InvalidInputError('type must be "buy" or "sell"', field="type")
        if not data.currency or not data.currency.strip():
            raise InvalidInputError("currency is required", field="currency")

    async def create_operation(
        self, db: AsyncSession, data: OperationCreate, user_id: Any
    ) -> OperationResponse:
        """
        Records an operation for the user in a single transaction.

        Raises:
            NotFoundError: the user does not exist (→ 404)
            InvalidInputError: amount, type or currency rejected (→ 400)
        """
        async with db.begin():
            user = await self._get_user(db, user_id)
            self._check_payload(data)

            operation = Operation(
                type=OperationType(data.type),
                amount=data.amount,
                currency=data.currency.strip().upper(),
                user_id=user.id,
            )
            db.add(operation)
            await db.flush()

        logger.info(
            "Operation %s created: %s %s %s",
            operation.id, operation.type.value, operation.amount, operation.currency,
        )
        return OperationResponse.model_validate(operation)

    async def list_operations(
        self,
        db: AsyncSession,
        user_id: Any,
        page: int = 1,
        limit: int = 10,
    ) -> OperationListResponse:
        """Newest-first page of the user's operations with offset pagination."""
        user = await self._get_user(db, user_id)
        offset = (page - 1) * limit

        total = (
            await db.execute(
                select(func.count()).select_from(Operation).where(Operation.user_id == user.id)
            )
        ).scalar_one()

        result = await db.execute(
            select(Operation)
            .where(Operation.user_id == user.id)
            .order_by(desc(Operation.created_at))
            .offset(offset)
            .limit(limit)
        )
        operations = result.scalars().all()

        return OperationListResponse(
            operations=[OperationResponse.model_validate(op) for op in operations],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if limit else 0,
            ),
        )

    async def get_operation(
        self, db: AsyncSession, operation_id: Any, user_id: Any
    ) -> OperationResponse:
        """
        Fetches one operation owned by the user.

        Raises:
            NotFoundError: no operation with that id (→ 404)
            ForbiddenError: the operation belongs to another user (→ 403)
        """
        op_id = _as_uuid(operation_id)
        operation = None
        if op_id is not None:
            result = await db.execute(select(Operation).where(Operation.id == op_id))
            operation = result.scalar_one_or_none()

        if operation is None:
            raise NotFoundError(resource="operation", resource_id=str(operation_id))

        if str(operation.user_id) != str(user_id):
            logger.warning(
                "User %s tried to read operation %s owned by %s",
                user_id, operation.id, operation.user_id,
            )
            raise ForbiddenError(FORBIDDEN_OPERATION)

        return OperationResponse.model_validate(operation)


operation_service = OperationService()
