"""
Ledger API — Password Hashing & Token Signing
==============================================

What:  bcrypt password hashing and HS256 JWT issuance/verification.
How:   bcrypt is CPU-bound, so the async wrappers push it to Starlette's
       threadpool instead of blocking the event loop.

Token claims:
    {"id": "<user uuid>", "email": "...", "iat": <epoch>, "exp": <epoch>}
"""

import time
from typing import Any, Dict

import bcrypt
from jose import jwt
from starlette.concurrency import run_in_threadpool

from ledger.config import settings


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(hash_password, password)


async def verify_password_async(password: str, hashed: str) -> bool:
    return await run_in_threadpool(verify_password, password, hashed)


def create_access_token(user_id: str, email: str) -> str:
    """Signs a token for the given user, valid for `jwt_expires_in` seconds."""
    now = int(time.time())
    claims = {
        "id": user_id,
        "email": email,
        "iat": now,
        "exp": now + settings.jwt_expires_in,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verifies signature and expiry and returns the claims.

    Raises:
        jose.ExpiredSignatureError: token past its `exp`
        jose.JWTError: any other signature or format problem
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
