"""
Request principal dependencies.

Endpoints that serve programmatic clients accept either an API token
(``x-api-token`` header) or a browser session. Token principals are limited
to their granted scopes and to the monthly request quota of the owner's tier.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps_auth import get_current_user
from core.plans import FREE_TIER
from infrastructure.config.settings import settings
from infrastructure.database.connection import get_db
from infrastructure.database.models import UNLIMITED_REQUESTS, User
from services.api_token_resolver import ApiTokenError, ResolvedApiToken, resolve_api_token
from services.api_usage import count_monthly_requests
from services.tiers import get_request_limit

logger = logging.getLogger(__name__)


@dataclass
class Principal:
    """The authenticated caller: a user, optionally acting through an API token."""

    user: User
    api_token: ResolvedApiToken | None = None

    @property
    def is_api_token(self) -> bool:
        return self.api_token is not None

    def has_scope(self, scope: str) -> bool:
        """Sessions carry every scope; tokens only what they were granted."""
        if self.api_token is None:
            return True
        return self.api_token.has_scope(scope)


async def enforce_monthly_quota(db: AsyncSession, user: User) -> None:
    """
    Raise 429 once the user has spent the tier's monthly request allowance.
    """
    limit = await get_request_limit(db, user.membership_tier or FREE_TIER)
    if limit == UNLIMITED_REQUESTS:
        return

    used = await count_monthly_requests(db, user.id)
    if used >= limit:
        logger.info(
            "Monthly API quota exhausted (%d/%d)",
            used,
            limit,
            extra={"user_id": user.id},
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Monthly API request limit of {limit} reached for tier {user.membership_tier}",
        )


async def get_api_principal(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    Authenticate by API token first, then by session.

    Raises:
        HTTPException: 401 with INVALID_TOKEN / EXPIRED_TOKEN for bad tokens,
            401 when neither credential is present, 403 for disabled owners,
            429 when a token owner is over quota
    """
    try:
        resolved = await resolve_api_token(
            db,
            request.headers,
            header_name=settings.api_token_header,
            salt=settings.api_token_salt,
        )
    except ApiTokenError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.code)

    if resolved is None:
        user = await get_current_user(request, authorization, db)
        return Principal(user=user)

    user = await db.get(User, resolved.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    # Read by the usage middleware once the response status is known
    request.state.api_token = resolved

    await enforce_monthly_quota(db, user)
    return Principal(user=user, api_token=resolved)


def require_scope(scope: str):
    """Dependency factory: the caller must hold ``scope`` (sessions always do)."""

    async def _require_scope(
        principal: Annotated[Principal, Depends(get_api_principal)],
    ) -> Principal:
        if not principal.has_scope(scope):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scope: {scope}",
            )
        return principal

    return _require_scope
