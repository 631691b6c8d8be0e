"""
Ledger API — Health Check Route
================================

What:  Liveness probe for Docker health checks and load balancers.
How:   Answers {"status": "UP"} while the process can serve requests. It does
       not touch the database, so a database outage does not take the
       instance out of rotation.

The path is on the envelope's exclusion list: probes get the body exactly
as written here.
"""

from fastapi import APIRouter

from ledger.schemas.common import HealthResponse

router = APIRouter(prefix="/api", tags=["Health"])


@router.get(
    "/healthcheck",
    response_model=HealthResponse,
    summary="Service liveness check",
    description="Returns UP while the service is running. Not wrapped in the response envelope.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="UP")
