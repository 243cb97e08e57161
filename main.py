# ============================================================================
# STACKCHECK - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: Wire datastore, cache and hooks into the health endpoint
# ============================================================================
"""
Stack Health Service

FastAPI application that:
1. Opens the primary (and, if configured, failover) datastore pools
2. Connects the redis object cache client
3. Serves GET /health and GET /health/check

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Optional

import redis
from fastapi import FastAPI, Request

from __version__ import __version__, BUILD_DATE, SERVICE_NAME
from core.config import get_config
from core.logging import configure_logging, get_logger
from health import HealthAggregator, health_router, set_health_services
from infrastructure import PostgresDatastore, RedisObjectCache

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_datastore: Optional[PostgresDatastore] = None
_failover: Optional[PostgresDatastore] = None
_redis: Optional[redis.Redis] = None


def _failover_session():
    """Session on the failover pool opened by the lifespan."""
    return _failover.session(is_fallback=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes handles on startup, closes them on shutdown.
    """
    global _datastore, _redis, _failover

    config = get_config()
    logger.info(f"Starting {SERVICE_NAME} v{__version__} (Build {BUILD_DATE})")

    _datastore = PostgresDatastore(
        config.get_connection_string(),
        options_table=config.options_table,
        connect_timeout=config.connect_timeout_seconds,
    )
    _datastore.open()

    if config.has_failover:
        _failover = PostgresDatastore(
            config.failover_database_url,
            options_table=config.options_table,
            connect_timeout=config.connect_timeout_seconds,
            name="failover",
        )
        _failover.open()

    _redis = redis.Redis.from_url(
        config.redis_url,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )
    logger.info("Object cache client initialized")

    set_health_services(HealthAggregator(
        datastore=_datastore.session,
        fallback=_failover_session if config.has_failover else None,
        cache=lambda: RedisObjectCache(_redis),
        config=config,
    ))
    logger.info("Health endpoint ready")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}...")
    set_health_services(None)

    _redis.close()
    _datastore.close()
    if _failover is not None:
        _failover.close()
        _failover = None

    logger.info(f"{SERVICE_NAME} stopped")


# Create FastAPI app
app = FastAPI(
    title="Stack Health",
    description="Health aggregation endpoint for the application stack",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def record_request_start(request: Request, call_next):
    """Capture the request start for the slow-response check."""
    request.state.started_at = time.monotonic()
    return await call_next(request)


# Include health check routes (no prefix - /health, /health/check)
app.include_router(health_router)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
