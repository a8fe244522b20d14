"""
Stripe billing adapter.

Wraps the official Stripe SDK for customers, checkout and portal sessions,
subscription lookups and webhook signature verification. The SDK client is
built on first use and reused for the life of the process.
"""

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import stripe

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)


# Custom Exceptions
class StripeAdapterError(Exception):
    """Base exception for Stripe adapter errors."""

    pass


class StripeNotConfiguredError(StripeAdapterError):
    """Raised when the secret key or webhook secret is missing."""

    pass


class StripePaymentError(StripeAdapterError):
    """Raised when a Stripe API call fails."""

    pass


class StripeWebhookError(StripeAdapterError):
    """Raised when a webhook payload cannot be verified."""

    def __init__(self, message: str, code: str = "INVALID_SIGNATURE"):
        super().__init__(message)
        self.code = code


# Field helpers; accept plain dicts (webhook payloads) and SDK objects alike
def to_plain(value: Any) -> Any:
    """Recursive plain-dict copy of an SDK object; other values pass through."""
    if isinstance(value, stripe.StripeObject):
        return value.to_dict()
    return value


def object_id(value: Any) -> str | None:
    """Id string from either a bare id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return to_plain(value).get("id")


def to_datetime(unix_seconds: Any) -> datetime | None:
    """UTC datetime from a Stripe unix timestamp; None when missing or invalid."""
    if unix_seconds in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(unix_seconds), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _first_item(subscription: Mapping) -> Mapping | None:
    subscription = to_plain(subscription)
    items = subscription.get("items") or {}
    data = items.get("data") or []
    return data[0] if data else None


def first_price(subscription: Mapping) -> Mapping | None:
    """Price object of the first subscription item."""
    item = _first_item(subscription)
    if item is None:
        return None
    return item.get("price")


def first_price_id(subscription: Mapping) -> str | None:
    return object_id(first_price(subscription))


def subscription_period_end(subscription: Mapping) -> datetime | None:
    """
    Current period end of a subscription.

    Newer API versions only carry the value on subscription items, so the
    top-level field is tried first and the first item second.
    """
    subscription = to_plain(subscription)
    period_end = to_datetime(subscription.get("current_period_end"))
    if period_end is not None:
        return period_end

    item = _first_item(subscription)
    if item is not None:
        return to_datetime(item.get("current_period_end"))
    return None


class StripeAdapter:
    """
    Adapter for the Stripe API.

    All calls go through a single ``StripeClient`` using the SDK's httpx
    transport so requests do not block the event loop.
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        api_version: str | None = None,
    ):
        """
        Initialize the adapter.

        Args:
            api_key: Stripe secret key (defaults to settings)
            webhook_secret: Webhook signing secret (defaults to settings)
            api_version: Optional API version pin (defaults to settings)
        """
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.api_version = api_version or settings.stripe_api_version
        self._client: stripe.StripeClient | None = None

        if not self.api_key:
            logger.warning("Stripe secret key not configured. Set STRIPE_SECRET_KEY.")

    @property
    def client(self) -> stripe.StripeClient:
        """Lazily constructed SDK client."""
        if self._client is None:
            if not self.api_key:
                raise StripeNotConfiguredError(
                    "Stripe secret key not configured. Set STRIPE_SECRET_KEY."
                )
            kwargs: dict[str, Any] = {"http_client": stripe.HTTPXClient()}
            if self.api_version:
                kwargs["stripe_version"] = self.api_version
            self._client = stripe.StripeClient(self.api_key, **kwargs)
        return self._client

    @property
    def is_webhook_configured(self) -> bool:
        return bool(self.webhook_secret)

    async def get_or_create_customer(
        self,
        user_id: str,
        email: str,
        name: str | None = None,
        existing_customer_id: str | None = None,
    ) -> str:
        """
        Return the user's Stripe customer id, creating the customer if needed.

        New customers carry ``metadata.userId`` so webhook handlers can map
        them back to a local user.
        """
        if existing_customer_id:
            return existing_customer_id

        params: dict[str, Any] = {"email": email, "metadata": {"userId": user_id}}
        if name:
            params["name"] = name

        try:
            customer = await self.client.v1.customers.create_async(params=params)
        except stripe.StripeError as e:
            logger.error("Failed to create Stripe customer for user %s: %s", user_id, e)
            raise StripePaymentError(f"Customer creation failed: {e}") from e

        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer.id

    async def retrieve_customer(self, customer_id: str) -> dict[str, Any]:
        try:
            customer = await self.client.v1.customers.retrieve_async(customer_id)
        except stripe.StripeError as e:
            logger.error("Failed to retrieve Stripe customer %s: %s", customer_id, e)
            raise StripePaymentError(f"Customer lookup failed: {e}") from e
        return to_plain(customer)

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a subscription-mode Checkout session.

        Args:
            customer_id: Stripe customer id
            price_id: Recurring price to subscribe to
            success_url: Redirect after payment; may contain {CHECKOUT_SESSION_ID}
            cancel_url: Redirect when the user backs out
            metadata: Copied onto the session and the resulting subscription

        Returns:
            The Checkout session as a plain dict (``id`` and ``url`` are what
            callers need)
        """
        metadata = metadata or {}
        params = {
            "customer": customer_id,
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
            "allow_promotion_codes": True,
            "billing_address_collection": "auto",
        }

        try:
            session = await self.client.v1.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            logger.error("Failed to create checkout session for %s: %s", customer_id, e)
            raise StripePaymentError(f"Checkout session creation failed: {e}") from e

        logger.info("Created checkout session %s for customer %s", session.id, customer_id)
        return to_plain(session)

    async def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Checkout session with its subscription and line items expanded."""
        try:
            session = await self.client.v1.checkout.sessions.retrieve_async(
                session_id,
                params={"expand": ["subscription", "line_items"]},
            )
        except stripe.StripeError as e:
            logger.error("Failed to retrieve checkout session %s: %s", session_id, e)
            raise StripePaymentError(f"Checkout session lookup failed: {e}") from e
        return to_plain(session)

    async def create_portal_session(self, customer_id: str, return_url: str) -> dict[str, Any]:
        try:
            portal = await self.client.v1.billing_portal.sessions.create_async(
                params={"customer": customer_id, "return_url": return_url}
            )
        except stripe.StripeError as e:
            logger.error("Failed to create portal session for %s: %s", customer_id, e)
            raise StripePaymentError(f"Portal session creation failed: {e}") from e
        return to_plain(portal)

    async def get_subscription(self, subscription_id: str) -> dict[str, Any] | None:
        """Subscription by id, or None when Stripe cannot return it."""
        try:
            subscription = await self.client.v1.subscriptions.retrieve_async(subscription_id)
        except stripe.StripeError as e:
            logger.warning("Could not retrieve subscription %s: %s", subscription_id, e)
            return None
        return to_plain(subscription)

    async def _set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> dict[str, Any]:
        try:
            subscription = await self.client.v1.subscriptions.update_async(
                subscription_id,
                params={"cancel_at_period_end": cancel},
            )
        except stripe.StripeError as e:
            action = "cancel" if cancel else "resume"
            logger.error("Failed to %s subscription %s: %s", action, subscription_id, e)
            raise StripePaymentError(f"Subscription {action} failed: {e}") from e
        return to_plain(subscription)

    async def cancel_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Schedule cancellation at the end of the current period."""
        subscription = await self._set_cancel_at_period_end(subscription_id, True)
        logger.info("Subscription %s set to cancel at period end", subscription_id)
        return subscription

    async def resume_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Undo a scheduled cancellation."""
        subscription = await self._set_cancel_at_period_end(subscription_id, False)
        logger.info("Subscription %s resumed", subscription_id)
        return subscription

    def construct_event(self, payload: bytes | str, signature: str | None) -> dict[str, Any]:
        """
        Verify a webhook delivery and return the event as a plain dict.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the ``Stripe-Signature`` header

        Raises:
            StripeNotConfiguredError: No webhook secret configured
            StripeWebhookError: Missing or invalid signature, or unparseable body
        """
        if not self.webhook_secret:
            raise StripeNotConfiguredError("Stripe webhook secret not configured")
        if not signature:
            raise StripeWebhookError("Missing Stripe-Signature header", code="MISSING_SIGNATURE")

        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise StripeWebhookError("Invalid webhook payload", code="INVALID_PAYLOAD") from e

        try:
            stripe.WebhookSignature.verify_header(
                payload,
                signature,
                self.webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise StripeWebhookError("Invalid webhook signature") from e

        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise StripeWebhookError("Invalid webhook payload", code="INVALID_PAYLOAD") from e

        if not isinstance(event, dict) or "type" not in event:
            raise StripeWebhookError("Invalid webhook payload", code="INVALID_PAYLOAD")
        return event


_adapter: StripeAdapter | None = None


def get_stripe_adapter() -> StripeAdapter:
    """Process-wide adapter, created on first use."""
    global _adapter
    if _adapter is None:
        _adapter = StripeAdapter()
    return _adapter
