"""Health check API endpoints."""

from typing import List

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mapping_service.core.config import settings
from mapping_service.core.database import db_client

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="healthy, or degraded when the mapping store is not usable")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: str = Field(..., description="healthy, degraded (tables missing) or unhealthy (unreachable)")
    missing_tables: List[str] = Field(default_factory=list, description="Mapping tables not yet created")


@router.get(
    "/",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Reports whether the mapping store is reachable and fully migrated",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    db_health = await db_client.health_check()

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
        missing_tables=db_health.get("missing_tables", []),
    )
