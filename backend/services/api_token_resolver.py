"""
API token resolution.

Authenticates a request carrying an ``x-api-token`` header by hashing the
presented secret and looking up the stored hash.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.security.api_tokens import DEFAULT_TOKEN_SALT, hash_api_token
from infrastructure.database.models import ApiToken, User

logger = logging.getLogger(__name__)

API_TOKEN_HEADER = "x-api-token"


class ApiTokenError(Exception):
    """Presented token is unknown (INVALID_TOKEN) or past its expiry (EXPIRED_TOKEN)."""

    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class ResolvedApiToken:
    user_id: str
    user_role: str
    api_token_id: str
    scopes: list[str] = field(default_factory=list)

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


def _header(headers: Mapping[str, str], name: str) -> str | None:
    # Starlette's Headers is already case-insensitive; plain dicts are not
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


async def resolve_api_token(
    db: AsyncSession,
    headers: Mapping[str, str],
    header_name: str = API_TOKEN_HEADER,
    salt: str = DEFAULT_TOKEN_SALT,
) -> ResolvedApiToken | None:
    """
    Resolve the API token in ``headers``.

    Returns:
        None when no token header is present, else the resolved principal

    Raises:
        ApiTokenError: INVALID_TOKEN when no stored hash matches,
            EXPIRED_TOKEN when the matching token has expired
    """
    presented = _header(headers, header_name)
    if not presented:
        return None

    result = await db.execute(
        select(ApiToken, User.role)
        .join(User, User.id == ApiToken.user_id)
        .where(ApiToken.token_hash == hash_api_token(presented, salt))
    )
    row = result.first()
    if row is None:
        raise ApiTokenError(ApiTokenError.INVALID_TOKEN)

    token, role = row
    now = datetime.now(timezone.utc)
    if token.is_expired(now):
        raise ApiTokenError(ApiTokenError.EXPIRED_TOKEN)

    resolved = ResolvedApiToken(
        user_id=token.user_id,
        user_role=role,
        api_token_id=token.id,
        scopes=list(token.scopes or []),
    )

    try:
        await db.execute(update(ApiToken).where(ApiToken.id == token.id).values(last_used=now))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(
            "Failed to record last use of API token: %s",
            e,
            extra={"api_token_id": token.id},
        )

    return resolved
