"""
API token management routes.

Tokens are minted and revoked from a browser session. The plaintext secret is
shown exactly once, in the create response.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Principal, require_scope
from api.middleware.rate_limit import get_rate_limit, limiter
from api.deps_auth import get_current_user
from api.schemas.api_token import (
    ApiTokenCreatedResponse,
    ApiTokenCreateRequest,
    ApiTokenListResponse,
    ApiTokenResponse,
    UsageStatsResponse,
)
from core.scopes import ACCOUNT_READ
from core.security.api_tokens import display_prefix, generate_api_token, hash_api_token
from infrastructure.config.settings import settings
from infrastructure.database.connection import get_db
from infrastructure.database.models import ApiToken, User
from services.api_usage import get_token_usage_stats, get_user_usage_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["API Tokens"])


def _token_response(token: ApiToken, now: datetime) -> ApiTokenResponse:
    return ApiTokenResponse(
        id=token.id,
        name=token.name,
        token_prefix=token.token_prefix,
        scopes=list(token.scopes or []),
        expires_at=token.expires_at,
        last_used=token.last_used,
        created_at=token.created_at,
        is_expired=token.is_expired(now),
    )


async def _get_owned_token(db: AsyncSession, token_id: str, user_id: str) -> ApiToken:
    result = await db.execute(
        select(ApiToken).where(ApiToken.id == token_id, ApiToken.user_id == user_id)
    )
    token = result.scalar_one_or_none()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="API token not found",
        )
    return token


@router.post(
    "/tokens",
    response_model=ApiTokenCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(get_rate_limit("token_create"))
async def create_api_token(
    request: Request,
    body: ApiTokenCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ApiTokenCreatedResponse:
    """
    Mint a new API token for the current user.

    Only paid tiers may hold tokens, and at most ``api_token_max_per_user``
    unexpired tokens at a time.
    """
    if not current_user.is_paid:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API tokens require a paid membership",
        )

    now = datetime.now(timezone.utc)
    result = await db.execute(select(ApiToken).where(ApiToken.user_id == current_user.id))
    active = [t for t in result.scalars().all() if not t.is_expired(now)]
    if len(active) >= settings.api_token_max_per_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Token limit reached ({settings.api_token_max_per_user}). Revoke an existing token first.",
        )

    secret = generate_api_token(settings.api_token_prefix)
    token = ApiToken(
        user_id=current_user.id,
        name=body.name,
        token_hash=hash_api_token(secret, settings.api_token_salt),
        token_prefix=display_prefix(secret),
        scopes=body.scopes,
        expires_at=now + timedelta(days=body.expires_in_days) if body.expires_in_days else None,
    )
    db.add(token)
    await db.commit()
    await db.refresh(token)

    logger.info(
        "Created API token %s",
        token.token_prefix,
        extra={"user_id": current_user.id, "api_token_id": token.id},
    )
    return ApiTokenCreatedResponse(
        **_token_response(token, now).model_dump(),
        token=secret,
    )


@router.get("/tokens", response_model=ApiTokenListResponse)
async def list_api_tokens(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ApiTokenListResponse:
    """Current user's tokens, newest first, without secrets."""
    result = await db.execute(
        select(ApiToken)
        .where(ApiToken.user_id == current_user.id)
        .order_by(ApiToken.created_at.desc())
    )
    tokens = result.scalars().all()
    now = datetime.now(timezone.utc)
    return ApiTokenListResponse(
        tokens=[_token_response(t, now) for t in tokens],
        total=len(tokens),
    )


@router.get("/tokens/stats", response_model=UsageStatsResponse)
async def get_usage_stats(
    current_user: Annotated[User, Depends(get_current_user)],
    hours: int = Query(settings.api_usage_stats_hours, ge=1, le=24 * 31),
    db: AsyncSession = Depends(get_db),
):
    """Request counts across all of the user's tokens."""
    return await get_user_usage_stats(db, current_user.id, hours_back=hours)


@router.get("/tokens/{token_id}/stats", response_model=UsageStatsResponse)
async def get_single_token_stats(
    token_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    hours: int = Query(settings.api_usage_stats_hours, ge=1, le=24 * 31),
    db: AsyncSession = Depends(get_db),
):
    token = await _get_owned_token(db, token_id, current_user.id)
    return await get_token_usage_stats(db, token.id, hours_back=hours)


@router.delete("/tokens/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_token(
    token_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Revoke (delete) one of the user's tokens. Usage rows keep a null token id."""
    token = await _get_owned_token(db, token_id, current_user.id)
    await db.delete(token)
    await db.commit()

    logger.info(
        "Revoked API token %s",
        token.token_prefix,
        extra={"user_id": current_user.id, "api_token_id": token_id},
    )


@router.get("/usage", response_model=UsageStatsResponse)
async def get_account_usage(
    principal: Annotated[Principal, Depends(require_scope(ACCOUNT_READ))],
    hours: int = Query(settings.api_usage_stats_hours, ge=1, le=24 * 31),
    db: AsyncSession = Depends(get_db),
):
    """Usage for the calling account; reachable with an ``account:read`` token."""
    return await get_user_usage_stats(db, principal.user.id, hours_back=hours)
