"""
Membership tier lookups.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.plans import DEFAULT_TIERS, FREE_TIER, TIERS_BY_SLUG
from infrastructure.database.models import MembershipTier

logger = logging.getLogger(__name__)


async def find_tier_by_price_id(db: AsyncSession, price_id: str | None) -> MembershipTier | None:
    """Tier whose monthly or yearly Stripe price matches ``price_id``."""
    if not price_id:
        return None
    result = await db.execute(
        select(MembershipTier)
        .where(
            or_(
                MembershipTier.stripe_price_id_monthly == price_id,
                MembershipTier.stripe_price_id_yearly == price_id,
            )
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_tier(db: AsyncSession, slug: str) -> MembershipTier | None:
    result = await db.execute(select(MembershipTier).where(MembershipTier.slug == slug))
    return result.scalar_one_or_none()


async def tier_exists(db: AsyncSession, slug: str | None) -> bool:
    if not slug:
        return False
    return await get_tier(db, slug) is not None


async def list_active_tiers(db: AsyncSession) -> list[MembershipTier]:
    """Active tiers, cheapest first."""
    result = await db.execute(
        select(MembershipTier)
        .where(MembershipTier.is_active.is_(True))
        .order_by(MembershipTier.price_monthly.asc(), MembershipTier.slug.asc())
    )
    return list(result.scalars().all())


async def get_request_limit(db: AsyncSession, slug: str) -> int:
    """
    Monthly API request quota for a tier slug.

    Falls back to the free tier's quota when the slug has no row, so a user
    pointing at a retired tier is throttled rather than unlimited.
    """
    tier = await get_tier(db, slug)
    if tier is None and slug != FREE_TIER:
        logger.warning("Unknown membership tier %s, applying free tier quota", slug)
        tier = await get_tier(db, FREE_TIER)
    if tier is None:
        return TIERS_BY_SLUG[FREE_TIER]["request_limit"]
    return tier.request_limit


async def seed_default_tiers(db: AsyncSession) -> tuple[int, int]:
    """
    Upsert ``DEFAULT_TIERS`` by slug. The caller commits.

    Returns:
        (created, updated) counts
    """
    created = updated = 0
    for data in DEFAULT_TIERS:
        tier = await get_tier(db, data["slug"])
        if tier is None:
            db.add(MembershipTier(**data))
            created += 1
        else:
            for field, value in data.items():
                setattr(tier, field, value)
            updated += 1
    await db.flush()
    logger.info("Seeded membership tiers: %d created, %d updated", created, updated)
    return created, updated
