"""
Membership tier model.
"""

from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin

# request_limit value meaning "no monthly cap"
UNLIMITED_REQUESTS = -1


class MembershipTier(Base, TimestampMixin):
    """A purchasable plan; users reference it by slug."""

    __tablename__ = "membership_tiers"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    price_monthly: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    price_yearly: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    features: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    request_limit: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)

    # Stripe catalog ids
    stripe_product_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_price_id_monthly: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    stripe_price_id_yearly: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<MembershipTier(slug={self.slug}, limit={self.request_limit})>"

    @property
    def is_unlimited(self) -> bool:
        return self.request_limit == UNLIMITED_REQUESTS

    def owns_price(self, price_id: str) -> bool:
        """True when price_id is this tier's monthly or yearly price."""
        return price_id in (self.stripe_price_id_monthly, self.stripe_price_id_yearly)
