"""
Membership tier catalog.

This module is the single source of truth for the default tiers, their
prices, API quotas and Stripe catalog ids. It lives in core/ so the seed
script, services and API layers can all import it without cycles.
The database copy (``membership_tiers``) is authoritative at runtime;
``DEFAULT_TIERS`` is what the seed script writes.
"""

import os

FREE_TIER = "free"

# Subscription statuses under which a paid tier may be granted
ENTITLED_STATUSES = ("active", "trialing")

DEFAULT_TIERS = [
    {
        "slug": FREE_TIER,
        "name": "Free",
        "description": "Perfect for getting started with EIP data",
        "price_monthly": 0,
        "price_yearly": 0,
        "features": [
            "1,000 API requests/month",
            "Basic EIP data access",
            "Community support",
            "Standard analytics",
        ],
        "request_limit": 1000,
        "stripe_product_id": None,
        "stripe_price_id_monthly": None,
        "stripe_price_id_yearly": None,
    },
    {
        "slug": "pro",
        "name": "Pro",
        "description": "For developers and teams building on Ethereum",
        "price_monthly": 29,
        "price_yearly": 290,
        "features": [
            "50,000 API requests/month",
            "Advanced analytics",
            "Priority support",
            "Export capabilities",
            "Custom integrations",
            "API webhooks",
        ],
        "request_limit": 50000,
        "stripe_product_id": os.getenv("STRIPE_PRO_PRODUCT_ID", "prod_U23DtoM1jcOkOw"),
        "stripe_price_id_monthly": os.getenv(
            "STRIPE_PRO_PRICE_MONTHLY", "price_1T3z7RATJNEiu6uCl16uk65s"
        ),
        "stripe_price_id_yearly": os.getenv(
            "STRIPE_PRO_PRICE_YEARLY", "price_1T3zDrATJNEiu6uCvmFt2ao5"
        ),
    },
    {
        "slug": "enterprise",
        "name": "Enterprise",
        "description": "Advanced features for large organizations",
        "price_monthly": 99,
        "price_yearly": 990,
        "features": [
            "500,000 API requests/month",
            "Dedicated support",
            "Custom rate limits",
            "SLA guarantee",
            "Advanced security",
            "Custom contracts",
            "White-label options",
        ],
        "request_limit": 500000,
        "stripe_product_id": os.getenv("STRIPE_ENTERPRISE_PRODUCT_ID", "prod_U23EzfqOtDsC1E"),
        "stripe_price_id_monthly": os.getenv(
            "STRIPE_ENTERPRISE_PRICE_MONTHLY", "price_1T3z7wATJNEiu6uC4Q9ZPh0i"
        ),
        "stripe_price_id_yearly": os.getenv(
            "STRIPE_ENTERPRISE_PRICE_YEARLY", "price_1T3zE7ATJNEiu6uC5Ver6TZd"
        ),
    },
]

TIERS_BY_SLUG = {tier["slug"]: tier for tier in DEFAULT_TIERS}
