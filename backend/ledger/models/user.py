"""
Ledger API — User SQLAlchemy Model
===================================

What:  ORM model representing the `users` table.
Who:   Used by AuthService and OperationService; read by Alembic.

Table Design:
    - UUID primary key
    - email: unique, lowercased by the request schema before it gets here
    - password: bcrypt hash, never the plain text
    - is_active: soft-delete flag; inactive users cannot log in or be found
"""

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger.database import Base

if TYPE_CHECKING:
    from ledger.models.operation import Operation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A registered account that owns operations."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    password: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)

    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    operations: Mapped[List["Operation"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
