"""
Application services.
"""

from .api_token_resolver import ApiTokenError, ResolvedApiToken, resolve_api_token
from .api_usage import (
    count_monthly_requests,
    get_token_usage_stats,
    get_user_usage_stats,
    log_api_usage,
)
from .subscription_sync import SubscriptionSynchronizer, WebhookError
from .tiers import find_tier_by_price_id, get_tier, list_active_tiers, seed_default_tiers

__all__ = [
    "ApiTokenError",
    "ResolvedApiToken",
    "resolve_api_token",
    "log_api_usage",
    "get_user_usage_stats",
    "get_token_usage_stats",
    "count_monthly_requests",
    "SubscriptionSynchronizer",
    "WebhookError",
    "find_tier_by_price_id",
    "get_tier",
    "list_active_tiers",
    "seed_default_tiers",
]
