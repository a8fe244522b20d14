"""Health check endpoints."""

import asyncio
import logging
from datetime import UTC, datetime

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.config import get_settings
from infrastructure.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def _app_info() -> dict:
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def _ping_database(db: AsyncSession) -> str:
    try:
        result = await asyncio.wait_for(db.execute(text("SELECT 1")), timeout=5.0)
        result.scalar()
    except TimeoutError:
        logger.error("Health check DB timeout")
        return "error: database timeout"
    except (SQLAlchemyError, OSError) as e:
        logger.error("Health check DB error: %s", e)
        return "error: database check failed"
    return "connected"


async def _ping_redis(timeout: float) -> bool:
    r = aioredis.from_url(settings.redis_url)
    try:
        await asyncio.wait_for(r.ping(), timeout=timeout)
    finally:
        await r.aclose()
    return True


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", **_app_info()}


@router.get("/health/db")
async def health_check_db(db: AsyncSession = Depends(get_db)):
    """Health check with database connectivity."""
    db_status = await _ping_database(db)
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        **_app_info(),
    }


@router.get("/health/redis")
async def health_redis():
    """Redis connectivity; reports disabled when no REDIS_URL is configured."""
    if not settings.redis_url:
        return {"status": "disabled", "service": "redis"}
    try:
        await _ping_redis(timeout=3.0)
    except TimeoutError:
        raise HTTPException(status_code=503, detail="Redis timeout")
    except (RedisError, OSError) as e:
        logger.warning("Health check Redis error: %s", e)
        raise HTTPException(status_code=503, detail="Redis unavailable")
    return {"status": "healthy", "service": "redis"}


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe. The database is required; Redis is optional."""
    db_ok = await _ping_database(db) == "connected"

    redis_state = "disabled"
    if settings.redis_url:
        try:
            await _ping_redis(timeout=2.0)
            redis_state = "ok"
        except (TimeoutError, RedisError, OSError):
            redis_state = "degraded"

    return {
        "ready": db_ok,
        "database": "ok" if db_ok else "unavailable",
        "redis": redis_state,
    }


@router.get("/health/live")
async def liveness_check():
    """Liveness probe."""
    return {"alive": True}
