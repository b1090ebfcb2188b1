"""
Health check and monitoring API routes.

This module provides endpoints for system health checks, dependency status,
and host resource metrics.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
import psutil
import structlog

from waterme.application.api.dependencies import provide
from waterme.application.models import DependencyStatus, HealthResponse, HealthStatus
from waterme.infrastructure.database.config import DatabaseManager
from waterme.infrastructure.messaging.telegram import SERVICE_NAME
from waterme.infrastructure.resilience import CircuitBreakerState, circuit_breaker_registry

logger = structlog.get_logger(__name__)
router = APIRouter()

VERSION = "1.0.0"


class SystemMetrics(BaseModel):
    """System resource metrics."""
    cpu_percent: float
    memory_percent: float
    disk_usage_percent: float


async def check_database_health(db: DatabaseManager) -> DependencyStatus:
    """Check database connectivity and pool state."""
    started = datetime.now(timezone.utc)
    result = await db.health_check()
    response_time_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000

    if result.get("status") != "healthy":
        return DependencyStatus(
            name="Database",
            status=HealthStatus.UNHEALTHY,
            response_time_ms=0,
            error=result.get("error")
        )

    return DependencyStatus(
        name="Database",
        status=HealthStatus.HEALTHY,
        response_time_ms=round(response_time_ms, 2),
        details={"url": result.get("url"), "pool": result.get("pool")}
    )


def check_messaging_health() -> DependencyStatus:
    """Report the Telegram circuit breaker; an open breaker degrades the service."""
    breaker = circuit_breaker_registry.get_breaker(SERVICE_NAME)
    if breaker is None:
        return DependencyStatus(
            name="Telegram",
            status=HealthStatus.DEGRADED,
            response_time_ms=0,
            error="Messenger not initialized"
        )

    degraded = breaker.state != CircuitBreakerState.CLOSED
    return DependencyStatus(
        name="Telegram",
        status=HealthStatus.DEGRADED if degraded else HealthStatus.HEALTHY,
        response_time_ms=0,
        details=breaker.get_status()
    )


def get_system_metrics() -> SystemMetrics:
    """Get current system resource metrics."""
    try:
        return SystemMetrics(
            cpu_percent=round(psutil.cpu_percent(interval=None), 2),
            memory_percent=round(psutil.virtual_memory().percent, 2),
            disk_usage_percent=round(psutil.disk_usage('/').percent, 2)
        )
    except (psutil.Error, OSError) as e:
        logger.error("Failed to get system metrics", error=str(e))
        return SystemMetrics(cpu_percent=0, memory_percent=0, disk_usage_percent=0)


@router.get("", response_model=HealthResponse)
async def health_check(db: DatabaseManager = Depends(provide(DatabaseManager))) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Returns:
        Overall system health status with dependency checks
    """
    dependencies = [await check_database_health(db), check_messaging_health()]

    if any(d.status == HealthStatus.UNHEALTHY for d in dependencies):
        overall_status = HealthStatus.UNHEALTHY
    elif any(d.status == HealthStatus.DEGRADED for d in dependencies):
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        dependencies=dependencies,
        metrics=get_system_metrics().model_dump()
    )


@router.get("/liveness", status_code=status.HTTP_200_OK)
async def liveness_check() -> Dict[str, str]:
    """Simple liveness check for container orchestration."""
    return {"status": "alive"}


@router.get("/readiness", response_model=Dict[str, Any])
async def readiness_check(db: DatabaseManager = Depends(provide(DatabaseManager))) -> Dict[str, Any]:
    """
    Readiness check for container orchestration.

    Returns:
        200 OK if the store answers, 503 otherwise
    """
    result = await db.health_check()
    if result.get("status") != "healthy":
        logger.warning("Service not ready", error=result.get("error"))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not ready", "errors": [f"Database not ready: {result.get('error')}"]}
        )

    return {"status": "ready"}
