"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

import redis.asyncio as redis
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no DB/Redis check)."""
    return {
        "status": "ok",
        "service": "GreyLedger",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check including the database and, when caching is on, Redis.

    Returns 200 only if all dependencies are healthy, 503 otherwise.
    """
    checks = {
        "service": "ok",
        "database": "unknown",
        "redis": "disabled" if not settings.cache_enabled else "unknown",
    }
    overall_healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        checks["database"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    if settings.cache_enabled:
        try:
            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
            await redis_client.ping()
            await redis_client.aclose()
            checks["redis"] = "ok"
        except redis.RedisError as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "GreyLedger",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
