"""
Ledger API — Shared Pydantic Schemas
=====================================

What:  Base model and small response models shared by every route module.
How:   Field names are snake_case in Python and camelCase on the wire
       (`first_name` ↔ `firstName`), matching what the frontend consumes.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes with camelCase aliases, accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class HealthResponse(BaseModel):
    """Liveness probe body. Returned byte-for-byte, outside the envelope."""

    status: str = Field(description="UP while the process is serving requests")


class ResponseMeta(BaseModel):
    timestamp: str
    request_id: str = Field(alias="requestId")
    path: str
    method: str
    status_code: int = Field(alias="statusCode")
    processing_time: int = Field(alias="processingTime")
    version: str
    count: Optional[int] = None


class ErrorResponse(BaseModel):
    """Shape of every error body, documented on each route's `responses=`."""

    error: str
    message: Optional[str] = None
    details: Optional[Any] = None
    retry_after: Optional[int] = Field(default=None, alias="retryAfter")
    meta: ResponseMeta
