"""
Network upgrade models.

Both tables are populated by the governance-data ingestion pipeline; this
service only reads them.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Upgrade(Base):
    """An Ethereum network upgrade (hard fork)."""

    __tablename__ = "upgrades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    meta_eip: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Upgrade(slug={self.slug})>"

    @property
    def is_execution_layer(self) -> bool:
        """Execution-layer upgrades are the ones tracked by a meta EIP."""
        return self.meta_eip is not None


class UpgradeComposition(Base):
    """Current set of EIPs included in an upgrade."""

    __tablename__ = "upgrade_composition_current"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    upgrade_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("upgrades.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    eip_number: Mapped[int] = mapped_column(Integer, nullable=False)
    bucket: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
