#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Configures the query cache service: lifespan (logging, cache manager
startup/shutdown), middleware, routes and exception handlers.

Query execution against the warehouse lives in the calling service; this
app exposes only health, statistics and cache clearing.
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from query_cache.application.api.routes.cache import router as cache_router
from query_cache.application.api.routes.health import router as health_router
from query_cache.core.config.constants import API_BASE_PATH, HEADER_REQUEST_ID
from query_cache.core.config.settings import get_settings
from query_cache.core.exceptions import InvalidEvictionPolicyError, QueryCacheError
from query_cache.core.logging.logger import clear_request_id, get_logger, set_request_id, setup_logging
from query_cache.infrastructure.cache.cache_manager import (
    CacheManager,
    close_cache,
    init_cache,
)

logger = get_logger(__name__)


# ============================================================================
# Application Factory
# ============================================================================


def create_app(cache_manager: CacheManager | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        cache_manager: Manager to serve; the global singleton when omitted.
            An injected manager is initialized and shut down by the lifespan
            but is not registered as the global instance.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

        logger.info(
            "Starting query cache service",
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION,
        )

        try:
            if cache_manager is not None:
                await cache_manager.initialize()
                app.state.cache_manager = cache_manager
            else:
                app.state.cache_manager = await init_cache()
            logger.info("Cache initialized", provider=app.state.cache_manager.provider.value)

            yield

        finally:
            logger.info("Shutting down application")
            if cache_manager is not None:
                await cache_manager.shutdown()
            else:
                await close_cache()
            logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Query result cache with Redis and an in-process fallback",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Inject a request ID into every request for log correlation."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    @app.exception_handler(InvalidEvictionPolicyError)
    async def invalid_policy_handler(request: Request, exc: InvalidEvictionPolicyError):
        return JSONResponse(status_code=400, content={"error": exc.message, **exc.to_dict()})

    @app.exception_handler(QueryCacheError)
    async def cache_exception_handler(request: Request, exc: QueryCacheError):
        logger.error(f"Cache exception: {exc.message}", error_type=type(exc).__name__, request_id=exc.request_id)
        return JSONResponse(status_code=500, content={"error": exc.message, **exc.to_dict()})

    app.include_router(health_router, prefix=API_BASE_PATH)
    app.include_router(cache_router, prefix=API_BASE_PATH)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{API_BASE_PATH}/health",
        }

    return app


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "query_cache.application.app:create_app",
        factory=True,
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
