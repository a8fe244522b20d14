"""
SQLAlchemy database models.
"""

from .api_token import ApiToken, ApiUsage
from .base import Base, TimestampMixin
from .blog import Blog
from .membership import UNLIMITED_REQUESTS, MembershipTier
from .upgrade import Upgrade, UpgradeComposition
from .user import User, UserRole

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "UserRole",
    "MembershipTier",
    "UNLIMITED_REQUESTS",
    "ApiToken",
    "ApiUsage",
    "Blog",
    "Upgrade",
    "UpgradeComposition",
]
