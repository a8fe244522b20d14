"""
API usage accounting.

Every token-authenticated request leaves one ``api_usage`` row. The rows back
the per-user and per-token statistics endpoints and the monthly quota check.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models import ApiUsage

logger = logging.getLogger(__name__)

DEFAULT_STATS_HOURS = 3


async def log_api_usage(
    db: AsyncSession,
    user_id: str,
    endpoint: str,
    method: str,
    status_code: int,
    api_token_id: str | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> bool:
    """
    Record one request. Never raises; a failed write is logged and dropped.

    Returns:
        True if the row was committed
    """
    try:
        db.add(
            ApiUsage(
                user_id=user_id,
                api_token_id=api_token_id,
                endpoint=endpoint[:500],
                method=method,
                status_code=status_code,
                user_agent=user_agent[:500] if user_agent else None,
                ip_address=ip_address,
            )
        )
        await db.commit()
        return True
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Failed to log API usage: %s",
            e,
            extra={"user_id": user_id, "api_token_id": api_token_id},
        )
        return False


async def _usage_stats(db: AsyncSession, condition: Any, hours_back: int) -> dict[str, Any]:
    since = datetime.now(timezone.utc) - timedelta(hours=hours_back)
    window = (condition, ApiUsage.created_at >= since)

    total = await db.scalar(select(func.count(ApiUsage.id)).where(*window))

    count_col = func.count(ApiUsage.id).label("count")
    by_endpoint = await db.execute(
        select(ApiUsage.endpoint, count_col)
        .where(*window)
        .group_by(ApiUsage.endpoint)
        .order_by(count_col.desc(), ApiUsage.endpoint.asc())
    )
    by_status = await db.execute(
        select(ApiUsage.status_code, count_col)
        .where(*window)
        .group_by(ApiUsage.status_code)
        .order_by(ApiUsage.status_code.asc())
    )

    return {
        "total_requests": total or 0,
        "by_endpoint": [{"endpoint": e, "count": c} for e, c in by_endpoint.all()],
        "by_status_code": [{"status_code": s, "count": c} for s, c in by_status.all()],
        "window": f"{hours_back}h",
    }


async def get_user_usage_stats(
    db: AsyncSession, user_id: str, hours_back: int = DEFAULT_STATS_HOURS
) -> dict[str, Any]:
    """Request counts for a user over the last ``hours_back`` hours."""
    return await _usage_stats(db, ApiUsage.user_id == user_id, hours_back)


async def get_token_usage_stats(
    db: AsyncSession, api_token_id: str, hours_back: int = DEFAULT_STATS_HOURS
) -> dict[str, Any]:
    """Request counts for a single token over the last ``hours_back`` hours."""
    return await _usage_stats(db, ApiUsage.api_token_id == api_token_id, hours_back)


def month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def count_monthly_requests(
    db: AsyncSession, user_id: str, now: datetime | None = None
) -> int:
    """Requests the user has made since the first of the current month (UTC)."""
    count = await db.scalar(
        select(func.count(ApiUsage.id)).where(
            ApiUsage.user_id == user_id,
            ApiUsage.created_at >= month_start(now),
        )
    )
    return count or 0
