"""
Ledger API — FastAPI Dependencies
==================================

What:  Request-scoped guards injected with Depends():
         - get_bearer_token:    raw token from the Authorization header
         - get_current_principal: verified caller, attached to the RequestContext

Usage:
    @router.get("/protected")
    async def protected(principal: Principal = Depends(get_current_principal)):
        return {"user_id": principal.id}
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError

from ledger.exceptions import UnauthenticatedError
from ledger.middleware.request_id import Principal, get_request_context
from ledger.security import decode_access_token

logger = logging.getLogger(__name__)

# auto_error=False: a missing header becomes our own 401, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


async def get_current_principal(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
) -> Principal:
    """
    Verifies the bearer token and records the caller on the request context.

    Raises:
        UnauthenticatedError: missing, expired, or invalid token (401)
    """
    if not token:
        raise UnauthenticatedError("access token required")

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise UnauthenticatedError("token expired")
    except JWTError:
        raise UnauthenticatedError("invalid token")

    user_id = payload.get("id")
    email = payload.get("email")
    if not user_id or not email:
        raise UnauthenticatedError("invalid token")

    principal = Principal(id=str(user_id), email=str(email))
    get_request_context(request).principal = principal
    logger.debug("Authenticated %s", principal.email)
    return principal
