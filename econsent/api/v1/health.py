"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text

from econsent.api.deps import DbSession, Registry

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str
    database: str
    protocol_id: str
    active_sessions: int


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns service health status",
)
async def health_check() -> HealthResponse:
    """Check if the service is healthy."""
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Checks the record database and the loaded study protocol",
)
async def readiness_check(session: DbSession, registry: Registry) -> ReadinessResponse:
    """Check if the service is ready to accept consent sessions."""
    await session.execute(text("SELECT 1"))
    return ReadinessResponse(
        status="ok",
        database="ok",
        protocol_id=registry.protocol.id,
        active_sessions=len(registry),
    )
