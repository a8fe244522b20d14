"""
Network upgrade routes.

Read-only views over the upgrade tables filled by the ingestion pipeline.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Principal, require_scope
from api.schemas.upgrade import UpgradeDetail, UpgradeItem, UpgradeStats, UpgradeSummary
from core.scopes import UPGRADES_READ
from infrastructure.database.connection import get_db
from infrastructure.database.models import Upgrade, UpgradeComposition

router = APIRouter(prefix="/upgrades", tags=["Upgrades"])

UpgradesReader = Annotated[Principal, Depends(require_scope(UPGRADES_READ))]


@router.get("", response_model=list[UpgradeItem])
async def list_upgrades(principal: UpgradesReader, db: AsyncSession = Depends(get_db)):
    """Upgrades newest first, each with its EIP count."""
    result = await db.execute(select(Upgrade).order_by(Upgrade.created_at.desc(), Upgrade.id.desc()))
    upgrades = result.scalars().all()
    if not upgrades:
        return []

    counts = await db.execute(
        select(UpgradeComposition.upgrade_id, func.count(UpgradeComposition.id))
        .where(UpgradeComposition.upgrade_id.in_([u.id for u in upgrades]))
        .group_by(UpgradeComposition.upgrade_id)
    )
    total_by_upgrade = dict(counts.all())

    return [
        UpgradeItem(
            id=u.id,
            slug=u.slug,
            name=u.name or "",
            meta_eip=u.meta_eip,
            created_at=u.created_at,
            stats=UpgradeStats(
                total_eips=total_by_upgrade.get(u.id, 0),
                execution_layer=1 if u.is_execution_layer else 0,
                consensus_layer=0 if u.is_execution_layer else 1,
            ),
        )
        for u in upgrades
    ]


@router.get("/stats", response_model=UpgradeSummary)
async def get_upgrade_stats(principal: UpgradesReader, db: AsyncSession = Depends(get_db)):
    """Aggregate counts; an EIP in several upgrades counts once."""
    total_upgrades = await db.scalar(select(func.count(Upgrade.id)))
    total_eips = await db.scalar(select(func.count(distinct(UpgradeComposition.eip_number))))
    execution_layer = await db.scalar(
        select(func.count(Upgrade.id)).where(Upgrade.meta_eip.is_not(None))
    )
    return UpgradeSummary(
        total_upgrades=total_upgrades or 0,
        total_eips=total_eips or 0,
        execution_layer=execution_layer or 0,
        consensus_layer=(total_upgrades or 0) - (execution_layer or 0),
    )


@router.get("/{slug}", response_model=UpgradeDetail)
async def get_upgrade(slug: str, principal: UpgradesReader, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Upgrade).where(Upgrade.slug == slug))
    upgrade = result.scalar_one_or_none()
    if not upgrade:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Upgrade {slug} not found",
        )

    eips = await db.execute(
        select(UpgradeComposition.eip_number)
        .where(UpgradeComposition.upgrade_id == upgrade.id)
        .order_by(UpgradeComposition.bucket.asc(), UpgradeComposition.eip_number.asc())
    )
    return UpgradeDetail(
        id=upgrade.id,
        slug=upgrade.slug,
        name=upgrade.name or "",
        meta_eip=upgrade.meta_eip,
        created_at=upgrade.created_at,
        eips=list(eips.scalars().all()),
    )
