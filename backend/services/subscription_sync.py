"""
Stripe subscription synchronizer.

Mirrors the provider's subscription state onto the ``users`` row in response
to webhook events. Deliveries are at-least-once and may arrive out of order,
so every handler writes absolute values taken from the event's own snapshot
and replays converge to the same row.
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import (
    StripeAdapter,
    StripeAdapterError,
    first_price_id,
    object_id,
    subscription_period_end,
)
from core.plans import ENTITLED_STATUSES, FREE_TIER
from infrastructure.database.models import User
from services.tiers import find_tier_by_price_id, tier_exists

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


def _is_uuid(value: Any) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class WebhookError(Exception):
    """Event could not be applied; the delivery should be retried."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


class SubscriptionSynchronizer:
    """Applies one verified Stripe event to local state."""

    def __init__(self, db: AsyncSession, stripe_adapter: StripeAdapter):
        self.db = db
        self.stripe = stripe_adapter
        self._handlers = {
            CHECKOUT_COMPLETED: self._checkout_completed,
            SUBSCRIPTION_CREATED: self._subscription_created,
            SUBSCRIPTION_UPDATED: self._subscription_updated,
            SUBSCRIPTION_DELETED: self._subscription_deleted,
            INVOICE_PAYMENT_SUCCEEDED: self._invoice_payment_succeeded,
            INVOICE_PAYMENT_FAILED: self._invoice_payment_failed,
        }

    async def handle_event(self, event: Mapping[str, Any]) -> str:
        """
        Dispatch an event by type.

        Returns a short outcome label ("processed", "ignored", "skipped").
        The caller owns the transaction and commits on success.

        Raises:
            WebhookError: MISSING_USER_METADATA on a checkout event without userId
        """
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled Stripe event type: %s", event_type, extra={"event_type": event_type})
            return "ignored"

        return await handler(obj)

    async def _update_user(self, user_id: str, values: dict[str, Any]) -> int:
        result = await self.db.execute(
            update(User).where(User.id == user_id).values(**values)
        )
        return result.rowcount

    async def _find_user_by_customer(self, customer_id: str | None) -> tuple[User | None, bool]:
        """
        Resolve the local user for a Stripe customer.

        The subscription-created event can arrive before checkout completion has
        stored the customer id, so when the direct lookup misses, the customer is
        fetched from Stripe and its ``metadata.userId`` is used instead.

        Returns:
            (user, needs_backfill); needs_backfill is True when the user was
            found through customer metadata and lacks the customer id.
        """
        if not customer_id:
            return None, False

        result = await self.db.execute(select(User).where(User.stripe_customer_id == customer_id))
        user = result.scalar_one_or_none()
        if user is not None:
            return user, False

        try:
            customer = await self.stripe.retrieve_customer(customer_id)
        except StripeAdapterError as e:
            logger.error("Failed to retrieve Stripe customer %s: %s", customer_id, e)
            return None, False

        metadata = customer.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id:
            logger.warning("No userId metadata on Stripe customer %s", customer_id)
            return None, False
        if not _is_uuid(user_id):
            logger.warning("Malformed userId %r on Stripe customer %s", user_id, customer_id)
            return None, False

        user = await self.db.get(User, user_id)
        if user is None:
            logger.warning("Stripe customer %s points at unknown user %s", customer_id, user_id)
            return None, False
        return user, True

    async def _checkout_completed(self, session: Mapping[str, Any]) -> str:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        tier_slug = metadata.get("tierSlug")

        if not user_id:
            raise WebhookError("No userId in checkout session metadata", code="MISSING_USER_METADATA")

        if not _is_uuid(user_id):
            logger.error("Malformed userId %r in checkout session metadata", user_id)
            return "skipped"

        subscription_id = object_id(session.get("subscription"))
        if not subscription_id:
            logger.warning("No subscription id in checkout session %s", session.get("id"))
            return "skipped"

        values: dict[str, Any] = {"stripe_subscription_id": subscription_id}
        customer_id = object_id(session.get("customer"))
        if customer_id:
            values["stripe_customer_id"] = customer_id
        if await tier_exists(self.db, tier_slug):
            values["membership_tier"] = tier_slug
        elif tier_slug:
            logger.warning("Checkout session carries unknown tier %s", tier_slug)

        if not await self._update_user(user_id, values):
            logger.warning("Checkout completed for unknown user %s", user_id, extra={"user_id": user_id})
            return "skipped"

        logger.info(
            "Checkout completed for user %s, tier: %s",
            user_id,
            values.get("membership_tier"),
            extra={"user_id": user_id, "event_type": CHECKOUT_COMPLETED},
        )
        return "processed"

    async def _subscription_created(self, subscription: Mapping[str, Any]) -> str:
        customer_id = object_id(subscription.get("customer"))
        user, backfill = await self._find_user_by_customer(customer_id)
        if user is None:
            logger.warning("No user found for customer %s", customer_id)
            return "skipped"

        price_id = first_price_id(subscription)
        period_end = subscription_period_end(subscription)
        tier = await find_tier_by_price_id(self.db, price_id)

        values: dict[str, Any] = {
            "stripe_subscription_id": subscription.get("id"),
            "stripe_price_id": price_id,
            "stripe_current_period_end": period_end,
        }
        if tier is not None:
            values["membership_tier"] = tier.slug
            values["membership_expires_at"] = period_end
        if backfill:
            values["stripe_customer_id"] = customer_id

        await self._update_user(user.id, values)
        logger.info(
            "Subscription created for user %s, tier: %s",
            user.id,
            tier.slug if tier else None,
            extra={"user_id": user.id, "event_type": SUBSCRIPTION_CREATED},
        )
        return "processed"

    async def _subscription_updated(self, subscription: Mapping[str, Any]) -> str:
        customer_id = object_id(subscription.get("customer"))
        user, backfill = await self._find_user_by_customer(customer_id)
        if user is None:
            logger.warning("No user found for customer %s", customer_id)
            return "skipped"

        price_id = first_price_id(subscription)
        period_end = subscription_period_end(subscription)
        tier = await find_tier_by_price_id(self.db, price_id)

        sub_status = subscription.get("status")
        is_active = sub_status in ENTITLED_STATUSES
        # Tier is kept while cancellation is pending; deletion downgrades it
        is_cancelling = sub_status == "canceled" or subscription.get("cancel_at_period_end") is True

        values: dict[str, Any] = {
            "stripe_price_id": price_id,
            "stripe_current_period_end": period_end,
            "membership_expires_at": period_end if (is_active or is_cancelling) else None,
        }
        if is_active and tier is not None:
            values["membership_tier"] = tier.slug
        if backfill:
            values["stripe_customer_id"] = customer_id

        await self._update_user(user.id, values)
        logger.info(
            "Subscription updated for user %s, status: %s",
            user.id,
            sub_status,
            extra={"user_id": user.id, "event_type": SUBSCRIPTION_UPDATED},
        )
        return "processed"

    async def _subscription_deleted(self, subscription: Mapping[str, Any]) -> str:
        customer_id = object_id(subscription.get("customer"))
        user, backfill = await self._find_user_by_customer(customer_id)
        if user is None:
            logger.warning("No user found for customer %s", customer_id)
            return "skipped"

        values: dict[str, Any] = {
            "stripe_subscription_id": None,
            "stripe_price_id": None,
            "stripe_current_period_end": None,
            "membership_tier": FREE_TIER,
            "membership_expires_at": None,
        }
        if backfill:
            values["stripe_customer_id"] = customer_id

        await self._update_user(user.id, values)
        logger.info(
            "Subscription deleted for user %s, reverted to free",
            user.id,
            extra={"user_id": user.id, "event_type": SUBSCRIPTION_DELETED},
        )
        return "processed"

    async def _invoice_payment_succeeded(self, invoice: Mapping[str, Any]) -> str:
        if not object_id(invoice.get("subscription")):
            return "skipped"
        customer_id = object_id(invoice.get("customer"))
        user, _ = await self._find_user_by_customer(customer_id)
        if user is None:
            return "skipped"

        logger.info(
            "Payment succeeded for user %s: %.2f %s",
            user.id,
            (invoice.get("amount_paid") or 0) / 100,
            invoice.get("currency"),
            extra={"user_id": user.id, "event_type": INVOICE_PAYMENT_SUCCEEDED},
        )
        return "processed"

    async def _invoice_payment_failed(self, invoice: Mapping[str, Any]) -> str:
        customer_id = object_id(invoice.get("customer"))
        user, _ = await self._find_user_by_customer(customer_id)
        if user is None:
            return "skipped"

        logger.error(
            "Payment failed for user %s: %.2f %s",
            user.id,
            (invoice.get("amount_due") or 0) / 100,
            invoice.get("currency"),
            extra={"user_id": user.id, "event_type": INVOICE_PAYMENT_FAILED},
        )
        return "processed"
