"""
Billing API routes for Stripe subscriptions.
"""

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import (
    StripeAdapter,
    StripeNotConfiguredError,
    StripePaymentError,
    first_price,
    get_stripe_adapter,
    object_id,
    subscription_period_end,
    to_datetime,
)
from api.middleware.rate_limit import limiter
from api.deps_auth import get_current_user
from api.schemas.billing import (
    BillingPeriod,
    CancelResponse,
    CheckoutRequest,
    CheckoutResponse,
    CheckoutSessionSyncRequest,
    CheckoutSessionSyncResponse,
    PortalResponse,
    PricingResponse,
    SubscriptionResponse,
    TierInfo,
)
from core.plans import FREE_TIER
from infrastructure.config.settings import settings
from infrastructure.database.connection import get_db
from infrastructure.database.models.user import User
from services.tiers import find_tier_by_price_id, get_tier, list_active_tiers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])

PROVIDER_ERROR = "Payment provider error"


def _provider_unavailable(e: Exception) -> HTTPException:
    """Map adapter failures onto HTTP errors."""
    if isinstance(e, StripeNotConfiguredError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payments are not configured",
        )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=PROVIDER_ERROR)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _add_interval(start: datetime, interval: str, count: int) -> datetime | None:
    """Advance ``start`` by ``count`` Stripe recurring intervals."""
    if interval == "day":
        return start + timedelta(days=count)
    if interval == "week":
        return start + timedelta(weeks=count)
    if interval in ("month", "year"):
        months = count * (12 if interval == "year" else 1)
        month_index = start.month - 1 + months
        year = start.year + month_index // 12
        month = month_index % 12 + 1
        day = min(start.day, calendar.monthrange(year, month)[1])
        return start.replace(year=year, month=month, day=day)
    return None


def _display_period_end(subscription: Any) -> datetime | None:
    """
    Best available period end for display.

    Order: current period end (subscription, then first item), ``ended_at``,
    billing cycle anchor plus one recurring interval.
    """
    period_end = subscription_period_end(subscription)
    if period_end is not None:
        return period_end

    ended_at = to_datetime(subscription.get("ended_at"))
    if ended_at is not None:
        return ended_at

    anchor = to_datetime(subscription.get("billing_cycle_anchor"))
    price = first_price(subscription) or {}
    recurring = price.get("recurring") or {}
    if anchor is None or not recurring.get("interval"):
        return None
    return _add_interval(anchor, recurring["interval"], recurring.get("interval_count") or 1)


def _free_snapshot(user: User) -> SubscriptionResponse:
    return SubscriptionResponse(
        tier=user.membership_tier or FREE_TIER,
        status="free",
        current_period_end=None,
        cancel_at_period_end=False,
        price_amount=0,
        price_currency="usd",
        billing_interval="month",
    )


@router.get("/pricing", response_model=PricingResponse)
async def get_pricing(db: AsyncSession = Depends(get_db)) -> PricingResponse:
    """Active membership tiers, cheapest first. Public."""
    tiers = await list_active_tiers(db)
    return PricingResponse(tiers=[TierInfo.model_validate(t) for t in tiers])


@router.post("/checkout", response_model=CheckoutResponse)
@limiter.limit("5/minute")
async def create_checkout(
    request: Request,
    checkout_request: CheckoutRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
) -> CheckoutResponse:
    """
    Start a Stripe Checkout session for a paid tier.

    The session metadata carries userId, tierSlug and billingPeriod; the
    webhook relies on userId to link the resulting subscription.
    """
    price_id = checkout_request.price_id
    tier_slug = checkout_request.tier_slug
    billing_period = checkout_request.billing_period

    if not price_id or not tier_slug or not billing_period:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: price_id, tier_slug, billing_period",
        )

    if billing_period not in (BillingPeriod.MONTHLY, BillingPeriod.YEARLY):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="billing_period must be 'monthly' or 'yearly'",
        )

    tier = await get_tier(db, tier_slug)
    if tier is None or not tier.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown tier: {tier_slug}",
        )

    expected_price = (
        tier.stripe_price_id_monthly
        if billing_period == BillingPeriod.MONTHLY
        else tier.stripe_price_id_yearly
    )
    if not expected_price or price_id != expected_price:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Price {price_id} is not the {billing_period} price of tier {tier_slug}",
        )

    try:
        customer_id = await stripe_adapter.get_or_create_customer(
            user_id=current_user.id,
            email=current_user.email,
            name=current_user.name,
            existing_customer_id=current_user.stripe_customer_id,
        )
        if current_user.stripe_customer_id != customer_id:
            current_user.stripe_customer_id = customer_id
            await db.commit()

        session = await stripe_adapter.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=f"{settings.frontend_url}/settings/billing?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.frontend_url}/upgrade",
            metadata={
                "userId": current_user.id,
                "tierSlug": tier_slug,
                "billingPeriod": billing_period,
            },
        )
    except (StripeNotConfiguredError, StripePaymentError) as e:
        raise _provider_unavailable(e)

    logger.info(
        "Checkout session created for tier %s (%s)",
        tier_slug,
        billing_period,
        extra={"user_id": current_user.id},
    )
    return CheckoutResponse(session_id=session["id"], url=session.get("url"))


@router.post("/checkout-session", response_model=CheckoutSessionSyncResponse)
async def sync_checkout_session(
    sync_request: CheckoutSessionSyncRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
) -> CheckoutSessionSyncResponse:
    """
    Sync a completed Checkout session right after the redirect back.

    The webhook applies the same change asynchronously; this makes the new
    tier visible without waiting for it.
    """
    if not sync_request.session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing session_id")

    try:
        checkout = await stripe_adapter.retrieve_checkout_session(sync_request.session_id)
    except (StripeNotConfiguredError, StripePaymentError) as e:
        raise _provider_unavailable(e)

    owner_id = (checkout.get("metadata") or {}).get("userId")
    if owner_id and owner_id != current_user.id:
        logger.warning(
            "Checkout session %s belongs to another user",
            sync_request.session_id,
            extra={"user_id": current_user.id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Checkout session does not belong to this user",
        )

    subscription_id = object_id(checkout.get("subscription"))
    if not subscription_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No subscription found in checkout session",
        )

    subscription = await stripe_adapter.get_subscription(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=PROVIDER_ERROR)

    price_id = object_id(first_price(subscription))
    if not price_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No price found in subscription",
        )

    tier = await find_tier_by_price_id(db, price_id)
    if tier is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No tier found for price {price_id}",
        )

    period_end = subscription_period_end(subscription)
    customer_id = object_id(checkout.get("customer"))
    if customer_id:
        current_user.stripe_customer_id = customer_id
    current_user.stripe_subscription_id = subscription_id
    current_user.stripe_price_id = price_id
    current_user.stripe_current_period_end = period_end
    current_user.membership_tier = tier.slug
    current_user.membership_expires_at = period_end
    await db.commit()

    logger.info("Checkout session synced, tier %s", tier.slug, extra={"user_id": current_user.id})
    return CheckoutSessionSyncResponse(ok=True, tier=tier.slug)


@router.post("/portal", response_model=PortalResponse)
async def create_portal_session(
    current_user: Annotated[User, Depends(get_current_user)],
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
) -> PortalResponse:
    """Stripe customer portal for payment methods and invoices."""
    if not current_user.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No billing account found. Subscribe to a plan first.",
        )

    try:
        portal = await stripe_adapter.create_portal_session(
            customer_id=current_user.stripe_customer_id,
            return_url=f"{settings.frontend_url}/settings/billing",
        )
    except (StripeNotConfiguredError, StripePaymentError) as e:
        raise _provider_unavailable(e)

    return PortalResponse(url=portal["url"])


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription_status(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
) -> SubscriptionResponse:
    """
    Current subscription snapshot.

    Falls back to a free snapshot when there is no subscription or Stripe
    cannot return it.
    """
    if not current_user.stripe_subscription_id:
        return _free_snapshot(current_user)

    try:
        subscription = await stripe_adapter.get_subscription(current_user.stripe_subscription_id)
    except StripeNotConfiguredError:
        subscription = None
    if subscription is None:
        return _free_snapshot(current_user)

    price = first_price(subscription) or {}
    dirty = False

    tier = current_user.membership_tier or FREE_TIER
    if not current_user.membership_tier:
        inferred = await find_tier_by_price_id(db, object_id(price))
        if inferred is not None:
            tier = inferred.slug
            current_user.membership_tier = tier
            dirty = True

    period_end = _display_period_end(subscription) or _as_utc(
        current_user.stripe_current_period_end
    )
    if period_end is not None and current_user.stripe_current_period_end is None:
        current_user.stripe_current_period_end = period_end
        dirty = True

    if dirty:
        await db.commit()

    unit_amount = price.get("unit_amount")
    recurring = price.get("recurring") or {}
    return SubscriptionResponse(
        tier=tier,
        status=subscription.get("status"),
        current_period_end=period_end,
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        price_amount=(unit_amount or 0) / 100,
        price_currency=price.get("currency") or "usd",
        billing_interval=recurring.get("interval") or "month",
    )


async def _set_cancellation(
    user: User,
    db: AsyncSession,
    stripe_adapter: StripeAdapter,
    cancel: bool,
) -> CancelResponse:
    if not user.stripe_subscription_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active subscription found",
        )

    try:
        if cancel:
            subscription = await stripe_adapter.cancel_subscription(user.stripe_subscription_id)
        else:
            subscription = await stripe_adapter.resume_subscription(user.stripe_subscription_id)
    except (StripeNotConfiguredError, StripePaymentError) as e:
        raise _provider_unavailable(e)

    period_end = subscription_period_end(subscription)
    if period_end is not None:
        user.stripe_current_period_end = period_end
        await db.commit()

    logger.info(
        "Subscription %s",
        "cancellation scheduled" if cancel else "resumed",
        extra={"user_id": user.id},
    )
    return CancelResponse(
        status=subscription.get("status"),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        current_period_end=period_end or _as_utc(user.stripe_current_period_end),
    )


@router.post("/cancel", response_model=CancelResponse)
async def cancel_subscription(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
) -> CancelResponse:
    """Cancel at the end of the current period; the tier stays until then."""
    return await _set_cancellation(current_user, db, stripe_adapter, cancel=True)


@router.post("/resume", response_model=CancelResponse)
async def resume_subscription(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
) -> CancelResponse:
    """Undo a scheduled cancellation."""
    return await _set_cancellation(current_user, db, stripe_adapter, cancel=False)
