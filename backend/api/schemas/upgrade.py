"""
Network upgrade schemas.
"""

from datetime import datetime

from pydantic import BaseModel


class UpgradeStats(BaseModel):
    total_eips: int
    execution_layer: int
    consensus_layer: int


class UpgradeItem(BaseModel):
    id: int
    slug: str
    name: str
    meta_eip: int | None = None
    created_at: datetime | None = None
    stats: UpgradeStats


class UpgradeDetail(BaseModel):
    id: int
    slug: str
    name: str
    meta_eip: int | None = None
    created_at: datetime | None = None
    eips: list[int]


class UpgradeSummary(BaseModel):
    """Aggregate counts across all upgrades."""

    total_upgrades: int
    total_eips: int
    execution_layer: int
    consensus_layer: int
