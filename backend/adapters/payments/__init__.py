"""Payment adapters for billing and subscription management."""

from .stripe_adapter import (
    StripeAdapter,
    StripeAdapterError,
    StripeNotConfiguredError,
    StripePaymentError,
    StripeWebhookError,
    first_price,
    first_price_id,
    get_stripe_adapter,
    object_id,
    to_plain,
    subscription_period_end,
    to_datetime,
)

__all__ = [
    "StripeAdapter",
    "StripeAdapterError",
    "StripeNotConfiguredError",
    "StripePaymentError",
    "StripeWebhookError",
    "get_stripe_adapter",
    "to_plain",
    "object_id",
    "to_datetime",
    "first_price",
    "first_price_id",
    "subscription_period_end",
]
