"""
FastAPI application factory and configuration.

create_app() builds the trialgate application: the v1 signup routes,
the database health check and a lifespan that owns the connection
pool. The module-level `app` is what uvicorn serves.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import psycopg
from fastapi import Depends, FastAPI, HTTPException, status
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import ensure_schema
from src.api.dependencies import get_pool
from src.api.v1 import router as v1_router
from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "v1",
        "description": "Business Trial Signup API v1 - Issue form tokens and create trials",
    },
    {
        "name": "health",
        "description": "Liveness with a bounded database ping",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Open the connection pool and apply the schema; close the pool on exit.

    Pool checkouts wait at most store_timeout_seconds.
    """
    settings = get_settings()

    logger.info(
        "Opening database pool (min=%d, max=%d)", settings.pool_min_size, settings.pool_max_size
    )
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.store_timeout_seconds,
    )
    ensure_schema(pool)
    app.state.pool = pool
    logger.info("trialgate ready")

    try:
        yield
    finally:
        pool.close()
        logger.info("Database pool closed")


async def health_check(
    pool: ConnectionPool = Depends(get_pool),
    settings: Settings = Depends(get_settings),
) -> dict[str, str]:
    """
    Ping the database within the store timeout.

    Returns 200 {"status": "healthy"}, or 503 when no connection can be
    checked out in time or the ping fails.
    """
    try:
        with pool.connection(timeout=settings.store_timeout_seconds) as conn:
            conn.execute("SELECT 1")
    except (PoolTimeout, psycopg.Error) as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e

    return {"status": "healthy"}


def create_app() -> FastAPI:
    """Build the FastAPI application with all routes registered."""
    application = FastAPI(
        title="trialgate",
        description="Business Trial Signup API - Eligibility and anti-abuse gating for new business trials",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    application.include_router(v1_router, prefix="/v1")
    application.add_api_route("/health", health_check, methods=["GET"], tags=["health"])
    return application


app = create_app()
