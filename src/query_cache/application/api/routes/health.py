"""
Health Check Routes

GET /health           - liveness plus which cache provider is active
GET /health/detailed  - availability snapshot and per-store health

The service stays up while Redis is down (the local store serves), so
/health always answers 200 with status "ok".
"""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from query_cache.application.api.dependencies import CacheDep

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    cacheProvider: str
    availability: str


@router.get("", response_model=HealthResponse)
async def health(cache: CacheDep) -> HealthResponse:
    return HealthResponse(
        status="ok",
        cacheProvider=cache.provider.value,
        availability=cache.availability.mode.value,
    )


@router.get("/detailed")
async def detailed_health(cache: CacheDep) -> dict[str, Any]:
    """Per-store health: local size, Redis ping latency and pool, availability state."""
    return await cache.health_check()
