"""
Ledger API — Operation Schemas
===============================

What:  Request and response contracts for /api/operations.

Validation (request body):
    type:     "buy" | "sell"
    amount:   number > 0
    currency: 2-10 uppercase letters after trimming (e.g. "USD", "BTC")
"""

import math
import re
import uuid
from datetime import datetime
from typing import List

from pydantic import Field, field_validator

from ledger.models.operation import OperationType
from ledger.schemas.common import CamelModel

CURRENCY_PATTERN = re.compile(r"^[A-Z]{2,10}$")


class OperationCreate(CamelModel):
    type: OperationType = Field(description='Either "buy" or "sell"')
    amount: float = Field(gt=0, description="Positive amount, stored with 2 decimals")
    currency: str = Field(description="Currency code, uppercase letters only")

    @field_validator("amount")
    @classmethod
    def finite_amount(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("amount must be a finite number")
        return v

    @field_validator("currency", mode="before")
    @classmethod
    def strip_currency(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v: str) -> str:
        if not CURRENCY_PATTERN.match(v):
            raise ValueError("currency must be 2-10 uppercase letters")
        return v


class OperationResponse(CamelModel):
    id: uuid.UUID
    type: OperationType
    amount: float
    currency: str
    created_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OperationListResponse(CamelModel):
    """
    Page of operations. The envelope recognizes the {operations, pagination}
    pair and moves the list into `data` with `meta.count`.
    """

    operations: List[OperationResponse]
    pagination: Pagination
