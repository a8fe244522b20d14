"""
Billing and subscription request/response schemas.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class BillingPeriod(StrEnum):
    """Stripe recurring intervals offered at checkout."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class TierInfo(BaseModel):
    """A membership tier as shown on the pricing page."""

    slug: str = Field(..., description="Tier slug (free, pro, enterprise)")
    name: str
    description: str | None = None
    price_monthly: float = Field(..., description="Monthly price in USD")
    price_yearly: float = Field(..., description="Yearly price in USD")
    features: list[str] = Field(default_factory=list)
    request_limit: int = Field(..., description="Monthly API requests (-1 for unlimited)")
    stripe_price_id_monthly: str | None = None
    stripe_price_id_yearly: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PricingResponse(BaseModel):
    """All active tiers, cheapest first."""

    tiers: list[TierInfo]


class CheckoutRequest(BaseModel):
    """
    Request to start a Stripe Checkout session.

    Fields are optional at the schema level so missing values produce a 400
    with a single message instead of a 422 validation report.
    """

    price_id: str | None = None
    tier_slug: str | None = None
    billing_period: str | None = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "price_id": "price_1T3z7RATJNEiu6uCl16uk65s",
                "tier_slug": "pro",
                "billing_period": "monthly",
            }
        }
    }


class CheckoutResponse(BaseModel):
    """Checkout session id and hosted page URL."""

    session_id: str
    url: str | None = None


class CheckoutSessionSyncRequest(BaseModel):
    """Session id returned to the success URL."""

    session_id: str | None = None


class CheckoutSessionSyncResponse(BaseModel):
    ok: bool = True
    tier: str


class PortalResponse(BaseModel):
    """Customer portal URL."""

    url: str


class SubscriptionResponse(BaseModel):
    """Snapshot of the user's subscription."""

    tier: str = Field(..., description="Membership tier slug")
    status: str | None = Field(None, description="Stripe subscription status, null when none")
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    price_amount: float | None = Field(None, description="Unit amount in major currency units")
    price_currency: str | None = None
    billing_interval: str | None = Field(None, description="month or year")


class CancelResponse(BaseModel):
    """Result of scheduling or undoing cancellation."""

    status: str | None = None
    cancel_at_period_end: bool
    current_period_end: datetime | None = None


class WebhookAck(BaseModel):
    received: bool = True
