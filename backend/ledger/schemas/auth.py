"""
Ledger API — Authentication Schemas
====================================

What:  Request and response contracts for /api/auth/*.
How:   Input rules are enforced here, so invalid bodies are rejected with a
       400 before any service code runs:
         - email:     valid address, normalized to lowercase
         - password:  6-72 characters (bcrypt ignores anything past 72 bytes)
         - firstName / lastName: 2-50 letters or spaces, trimmed
"""

import re
import uuid

from pydantic import EmailStr, Field, field_validator

from ledger.schemas.common import CamelModel

NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s]+$")


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RegisterRequest(LoginRequest):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("first_name", "last_name")
    @classmethod
    def letters_only(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError("may only contain letters and spaces")
        return v


class UserPublic(CamelModel):
    """The user as exposed to clients (no password, no flags)."""

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str


class AuthResponse(CamelModel):
    """
    Returned by login and register.

    The envelope hoists `message` and places {token, user} under `data`.
    """

    message: str
    token: str
    user: UserPublic


class TokenValidationResponse(CamelModel):
    message: str
    user: UserPublic
