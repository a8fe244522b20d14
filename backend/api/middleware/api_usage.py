"""
API usage recording middleware.

Runs after the endpoint so the logged status code is the one sent to the
client. Only requests authenticated with an API token are recorded; the
principal dependency leaves the resolved token on ``request.state``.
"""

import logging

from starlette.requests import Request

from api.middleware.rate_limit import get_client_ip
from infrastructure.database.connection import get_db
from services.api_usage import log_api_usage

logger = logging.getLogger(__name__)


async def record_api_usage(request: Request, call_next):
    response = await call_next(request)

    resolved = getattr(request.state, "api_token", None)
    if resolved is None:
        return response

    # Honour dependency overrides so tests record into their own session
    session_dependency = request.app.dependency_overrides.get(get_db, get_db)
    sessions = session_dependency()
    db = await anext(sessions)
    try:
        await log_api_usage(
            db,
            user_id=resolved.user_id,
            api_token_id=resolved.api_token_id,
            endpoint=request.url.path,
            method=request.method,
            status_code=response.status_code,
            user_agent=request.headers.get("user-agent"),
            ip_address=get_client_ip(request),
        )
    finally:
        await sessions.aclose()

    return response
