"""
FastAPI application with assembled routers.

Dependencies: fastapi, uvicorn, release_jobs.api.routers
System role: API entry point for job control
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from release_jobs.dependencies import get_service_cache
from release_jobs.observability.logger import configure_logging
from release_jobs.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware

from .routers import health_router, jobs_router, release_jobs_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Configures logging and pre-builds the job services on startup;
    disposes the database engine on shutdown.
    """
    logger = logging.getLogger("uvicorn")
    cache = get_service_cache()
    configure_logging(cache.settings.log_level)

    _ = cache.lifecycle
    logger.info("Job services ready")

    yield

    await cache.dispose()
    logger.info("Service cache cleared")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="Release Jobs API",
        description="Start, cancel and inspect background jobs of releases",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    app.include_router(health_router)
    app.include_router(release_jobs_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("release_jobs.api.main:app", host="0.0.0.0", port=8000)
