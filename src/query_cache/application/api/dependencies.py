"""
FastAPI Dependency Injection

Reusable dependencies for route handlers. The cache manager is created in
the application lifespan and stored on app.state, so tests can build an app
around their own manager.
"""

from typing import Annotated

from fastapi import Depends, Request

from query_cache.infrastructure.cache.cache_manager import CacheManager


def get_cache(request: Request) -> CacheManager:
    """Retrieve the CacheManager stored on application state during startup."""
    return request.app.state.cache_manager


CacheDep = Annotated[CacheManager, Depends(get_cache)]
