#!/usr/bin/env python3
"""
Health Check Routes

Component health for the database and Redis.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ... import __version__
from ..dependencies import ServiceContainer, get_services

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

class ComponentHealth(BaseModel):
    """Health status of a system component."""
    name: str = Field(..., description="Component name")
    status: str = Field(..., description="Health status (healthy, unhealthy)")
    message: str = Field(..., description="Status message")
    response_time_ms: Optional[float] = Field(None, description="Response time in milliseconds")

class SystemHealth(BaseModel):
    """Overall system health status."""
    status: str = Field(..., description="Overall system status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    components: List[ComponentHealth] = Field(..., description="Component health statuses")

async def check_database_health(services: ServiceContainer) -> ComponentHealth:
    """Check database connectivity."""
    start = time.perf_counter()
    try:
        await services.database.ping()
        return ComponentHealth(
            name="database",
            status="healthy",
            message="Database connection successful",
            response_time_ms=(time.perf_counter() - start) * 1000,
        )
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(
            name="database",
            status="unhealthy",
            message=f"Database connection failed: {e}",
            response_time_ms=(time.perf_counter() - start) * 1000,
        )

async def check_redis_health(services: ServiceContainer) -> ComponentHealth:
    """Check Redis connectivity."""
    start = time.perf_counter()
    try:
        await services.redis.ping()
        return ComponentHealth(
            name="redis",
            status="healthy",
            message="Redis connection successful",
            response_time_ms=(time.perf_counter() - start) * 1000,
        )
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return ComponentHealth(
            name="redis",
            status="unhealthy",
            message=f"Redis connection failed: {e}",
            response_time_ms=(time.perf_counter() - start) * 1000,
        )

@router.get("", response_model=SystemHealth)
async def health_check(services: ServiceContainer = Depends(get_services)) -> Any:
    """Overall health; 503 when any component is unhealthy."""
    components = [
        await check_database_health(services),
        await check_redis_health(services),
    ]
    overall = "healthy" if all(c.status == "healthy" for c in components) else "unhealthy"

    health = SystemHealth(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        components=components,
    )
    if overall != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=health.model_dump(mode="json"),
        )
    return health
