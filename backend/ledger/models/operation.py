"""
Ledger API — Operation SQLAlchemy Model
========================================

What:  ORM model representing the `operations` table: one buy or sell entry.
Who:   Used by OperationService for create/list/get; read by Alembic.

Table Design:
    - amount: NUMERIC(15, 2) with a CHECK (amount > 0) constraint, so the
      database rejects non-positive amounts even if a caller skips the service
    - currency: up to 10 characters, stored uppercase
    - user_id: FK to users with ON DELETE CASCADE

Query Patterns:
    - List a user's operations: WHERE user_id = :id ORDER BY created_at DESC
      → idx_operations_user_created
    - Single lookup: WHERE id = :uuid → primary key
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger.database import Base

if TYPE_CHECKING:
    from ledger.models.user import User


class OperationType(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class Operation(Base):
    """A single buy or sell movement recorded by a user."""

    __tablename__ = "operations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    type: Mapped[OperationType] = mapped_column(
        Enum(
            OperationType,
            name="operation_type",
            values_callable=lambda kinds: [kind.value for kind in kinds],
        ),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user: Mapped["User"] = relationship(back_populates="operations")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_operations_amount_positive"),
        Index("idx_operations_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Operation(id={self.id}, type='{self.type.value}', "
            f"amount={self.amount}, currency='{self.currency}')>"
        )
