"""FastAPI application entry point for the stats service."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from sqlalchemy import text

from formdesk_stats.api import stats_router
from formdesk_stats.core.config import get_settings
from formdesk_stats.core.database import AsyncSessionDep, close_db
from formdesk_stats.core.observability import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    setup_observability,
)

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting Formdesk Stats", version=settings.app_version)

    yield

    logger.info("Shutting down Formdesk Stats")

    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Activity statistics for the Formdesk admin dashboard",
    lifespan=lifespan,
)

# Set up observability (logging, tracing, metrics, error tracking)
setup_observability(app)

# Add request middleware (order matters: RequestID first, then logging)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

# Include routers
app.include_router(stats_router)


@app.get("/health")
async def health_check(session: AsyncSessionDep) -> dict:
    """Health check endpoint."""
    try:
        await session.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        database_ok = False

    return {
        "status": "healthy" if database_ok else "degraded",
        "service": "stats",
        "database": database_ok,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Welcome to Formdesk Stats", "version": settings.app_version}
