"""
Ledger API — Authentication Service
====================================

What:  Registration, credential checks, and token validation.
Who:   Called by the /api/auth route handlers.

Failure kinds raised (mapped to HTTP by the error mapper):
    ConflictError         → email already registered
    UnauthenticatedError  → wrong credentials, bad token, unknown user

Unknown email and wrong password produce the same error so callers cannot
probe which accounts exist.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import ConflictError, UnauthenticatedError
from ledger.models.operation import Operation  # noqa: F401  (mapper registry)
from ledger.models.user import User
from ledger.schemas.auth import UserPublic
from ledger.security import (
    create_access_token,
    decode_access_token,
    hash_password_async,
    verify_password_async,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "invalid credentials"
INVALID_TOKEN = "invalid token"


async def find_active_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(
        select(User).where(User.email == email, User.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def find_active_user_by_id(db: AsyncSession, user_id: Any) -> Optional[User]:
    try:
        uid = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
    except ValueError:
        return None
    result = await db.execute(
        select(User).where(User.id == uid, User.is_active.is_(True))
    )
    return result.scalar_one_or_none()


class AuthService:
    """
    Stateless authentication logic.

    Each method receives the request's session; nothing is cached between
    calls.
    """

    def _session_payload(self, user: User) -> Dict[str, Any]:
        return {
            "token": create_access_token(str(user.id), user.email),
            "user": UserPublic.model_validate(user),
        }

    async def register(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> Dict[str, Any]:
        """
        Creates an account and signs a token for it.

        Raises:
            ConflictError: an active user already uses this email
        """
        if await find_active_user_by_email(db, email) is not None:
            raise ConflictError("a user with this email already exists", context={"email": email})

        user = User(
            email=email,
            password=await hash_password_async(password),
            first_name=first_name,
            last_name=last_name,
        )
        db.add(user)
        await db.flush()
        logger.info("Registered user %s", user.id)
        return self._session_payload(user)

    async def login(self, db: AsyncSession, email: str, password: str) -> Dict[str, Any]:
        """
        Checks credentials and signs a token.

        Raises:
            UnauthenticatedError: unknown email or wrong password
        """
        user = await find_active_user_by_email(db, email)
        if user is None or not await verify_password_async(password, user.password):
            logger.info("Failed login for %s", email)
            raise UnauthenticatedError(INVALID_CREDENTIALS)
        return self._session_payload(user)

    async def validate_token(self, db: AsyncSession, token: str) -> UserPublic:
        """
        Resolves a token to the user it was issued for.

        Raises:
            UnauthenticatedError: bad signature, expired, or user no longer active
        """
        try:
            payload = decode_access_token(token)
        except JWTError:
            raise UnauthenticatedError(INVALID_TOKEN)

        user = await find_active_user_by_id(db, payload.get("id"))
        if user is None:
            raise UnauthenticatedError(INVALID_TOKEN)
        return UserPublic.model_validate(user)


auth_service = AuthService()
