"""
Rate limiting using slowapi.

Limits are keyed by client IP. Storage is Redis when ``REDIS_URL`` is set and
in-process memory otherwise.

Rate Limits:
- Login: 5 per minute
- Registration: 3 per minute
- Checkout: 5 per minute
- Token creation: 10 per hour
- Webhooks: 100 per minute
- Default: 100 per minute
"""

import ipaddress
import logging
import re

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

# Rejects obviously invalid values before ipaddress parsing
_IP_LIKE = re.compile(r"^[\d.:a-fA-F]+$")


def _is_valid_ip(value: str) -> bool:
    if not _IP_LIKE.match(value):
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _is_private_ip(value: str) -> bool:
    """Private, loopback and link-local addresses in proxy headers are spoofable."""
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local


def get_client_ip(request: Request) -> str:
    """
    Client IP from X-Forwarded-For / X-Real-IP, else the socket peer.

    Only public, well-formed addresses from proxy headers are trusted.
    """
    for header in ("x-forwarded-for", "x-real-ip"):
        raw = request.headers.get(header)
        if not raw:
            continue
        # X-Forwarded-For is a list; the first entry is the client
        candidate = raw.split(",")[0].strip()
        if _is_valid_ip(candidate) and not _is_private_ip(candidate):
            return candidate
    return get_remote_address(request)


# Format: "count/period" where period is second, minute, hour or day
RATE_LIMITS = {
    "login": "5/minute",
    "register": "3/minute",
    "checkout": "5/minute",
    "token_create": "10/hour",
    "webhook": "100/minute",
    "default": "100/minute",
}

_storage_uri = settings.redis_url if settings.redis_url else "memory://"

if not settings.redis_url:
    logger.warning(
        "Rate limiter using in-memory storage; limits are per worker process"
    )
    if settings.is_production:
        logger.critical(
            "Rate limiter has no Redis in production. Set REDIS_URL to share limits across workers."
        )

limiter = Limiter(
    key_func=get_client_ip,
    storage_uri=_storage_uri,
    default_limits=[RATE_LIMITS["default"]],
)


def get_rate_limit(endpoint: str) -> str:
    """Limit string for an endpoint key, the default when unknown."""
    return RATE_LIMITS.get(endpoint, RATE_LIMITS["default"])
