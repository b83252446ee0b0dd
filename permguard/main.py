"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from permguard.core.config import settings
from permguard.core.exceptions import PermissionEngineError
from permguard.core.logging_config import configure_logging
from permguard.implementations.cache import RedisCacheBackend, create_cache_backend
from permguard.api.routes import router as api_router
from permguard.api.middleware import LoggingMiddleware, RequestIdMiddleware
from permguard.models.database import close_db, engine, init_db

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    if settings.is_development:
        # Other environments are migrated out of band
        await init_db(engine)

    cache = create_cache_backend(settings)
    if isinstance(cache, RedisCacheBackend):
        await cache.connect()
    app.state.cache = cache
    logger.info("Permission engine started", cache_backend=settings.permissions.cache_backend)

    yield

    # Shutdown
    if isinstance(cache, RedisCacheBackend):
        await cache.disconnect()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Middleware (order matters - last added is outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # Routes
    app.include_router(api_router, prefix="/api")

    # Exception handlers
    @app.exception_handler(PermissionEngineError)
    async def permission_error_handler(request: Request, exc: PermissionEngineError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": str(exc) if settings.debug else "An error occurred",
            },
        )

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("permguard.main:app", host="0.0.0.0", port=8000)
