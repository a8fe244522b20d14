"""
Stripe webhook receiver.
"""

import logging
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import (
    StripeAdapter,
    StripeNotConfiguredError,
    StripeWebhookError,
    get_stripe_adapter,
)
from api.middleware.rate_limit import limiter
from infrastructure.config.settings import settings
from infrastructure.database.connection import get_db
from services.subscription_sync import SubscriptionSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

# Seconds an event id stays marked as processed
DEDUPE_TTL_SECONDS = 86400


def _error(status_code: int, error: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "code": code})


async def _already_processed(event_id: str | None) -> bool:
    """
    Mark ``event_id`` as seen in Redis and report whether it already was.

    Returns False when Redis is disabled or unreachable.
    """
    if not event_id or not settings.redis_url:
        return False
    try:
        r = aioredis.from_url(settings.redis_url)
        try:
            # SET NX returns None when the key already exists
            fresh = await r.set(f"webhook:processed:{event_id}", "1", ex=DEDUPE_TTL_SECONDS, nx=True)
        finally:
            await r.aclose()
    except (RedisError, OSError) as e:
        logger.warning("Webhook dedupe unavailable (Redis error): %s", e)
        return False
    return not fresh


async def _forget(event_id: str | None) -> None:
    """Clear the dedupe mark so a failed delivery is processed on retry."""
    if not event_id or not settings.redis_url:
        return
    try:
        r = aioredis.from_url(settings.redis_url)
        try:
            await r.delete(f"webhook:processed:{event_id}")
        finally:
            await r.aclose()
    except (RedisError, OSError) as e:
        logger.warning("Could not clear webhook dedupe key %s: %s", event_id, e)


@router.post("/stripe")
@limiter.limit("100/minute")
async def stripe_webhook(
    request: Request,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
):
    """
    Receive Stripe events and mirror subscription state onto users.

    Responses:
    - 400 MISSING_SIGNATURE: no Stripe-Signature header
    - 403 WEBHOOK_NOT_CONFIGURED: no signing secret configured
    - 401 INVALID_SIGNATURE: verification failed
    - 400 INVALID_PAYLOAD: body is not a Stripe event
    - 500: processing failed; Stripe will redeliver
    - 200 {"received": true}: processed, ignored or duplicate
    """
    body = await request.body()

    if not stripe_signature:
        logger.warning("Webhook received without signature")
        return _error(status.HTTP_400_BAD_REQUEST, "No signature provided", "MISSING_SIGNATURE")

    try:
        event = stripe_adapter.construct_event(body, stripe_signature)
    except StripeNotConfiguredError:
        logger.error("Webhook rejected: STRIPE_WEBHOOK_SECRET not configured")
        return _error(
            status.HTTP_403_FORBIDDEN,
            "Webhook verification not configured",
            "WEBHOOK_NOT_CONFIGURED",
        )
    except StripeWebhookError as e:
        if e.code == "INVALID_PAYLOAD":
            logger.error("Webhook payload could not be parsed: %s", e)
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid payload", e.code)
        logger.error("Webhook signature verification failed: %s", e)
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid signature", e.code)

    event_id = event.get("id")
    event_type = event.get("type")

    if await _already_processed(event_id):
        logger.info("Duplicate webhook event %s, skipping", event_id, extra={"event_type": event_type})
        return {"received": True}

    synchronizer = SubscriptionSynchronizer(db, stripe_adapter)
    try:
        outcome = await synchronizer.handle_event(event)
        await db.commit()
    except Exception as e:
        await db.rollback()
        await _forget(event_id)
        logger.error(
            "Error processing webhook %s: %s",
            event_id,
            e,
            exc_info=True,
            extra={"event_type": event_type},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook handler failed", "message": str(e)},
        )

    logger.info("Webhook %s %s", event_type, outcome, extra={"event_type": event_type})
    return {"received": True}
