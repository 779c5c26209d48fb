"""
Cache Administration Routes

GET  /cache/stats  - statistics for the active store
POST /cache/clear  - clear the active store
"""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from query_cache.application.api.dependencies import CacheDep
from query_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])


class ClearResponse(BaseModel):
    message: str


@router.get("/stats")
async def cache_stats(cache: CacheDep) -> dict[str, Any]:
    return await cache.stats()


@router.post("/clear", response_model=ClearResponse)
async def clear_cache(cache: CacheDep) -> ClearResponse:
    await cache.clear()
    logger.info("Cache cleared via API", stage="5.1", provider=cache.provider.value)
    return ClearResponse(message="Cache cleared successfully")
