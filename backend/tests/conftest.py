"""
Pytest configuration and shared fixtures for backend tests.
"""

import hashlib
import hmac
import json
import os
import sys
import time
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time; pin them before any app module loads
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_URL"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-that-is-long-enough-123"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["FRONTEND_URL"] = "http://localhost:3000"

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from uuid import uuid4

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import after path is set
from adapters.payments import StripeAdapter, get_stripe_adapter
from core.plans import TIERS_BY_SLUG
from core.security import PasswordHasher, TokenService, display_prefix, generate_api_token, hash_api_token
from infrastructure.config import get_settings
from infrastructure.database.connection import get_db
from infrastructure.database.models import ApiToken, Base, User, UserRole
from services.tiers import seed_default_tiers

# Few rounds keep fixture setup fast
password_hasher = PasswordHasher(rounds=4)
settings = get_settings()
token_service = TokenService(secret_key=settings.jwt_secret_key)

WEBHOOK_SECRET = "whsec_test"
PRO_PRICE_MONTHLY = TIERS_BY_SLUG["pro"]["stripe_price_id_monthly"]
PRO_PRICE_YEARLY = TIERS_BY_SLUG["pro"]["stripe_price_id_yearly"]
ENTERPRISE_PRICE_MONTHLY = TIERS_BY_SLUG["enterprise"]["stripe_price_id_monthly"]


# Database URL for testing (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def tiers(db_session: AsyncSession) -> None:
    """Seed the default membership tiers."""
    await seed_default_tiers(db_session)
    await db_session.commit()


async def create_user(db: AsyncSession, email: str, **fields) -> User:
    user = User(
        id=str(uuid4()),
        email=email,
        password_hash=password_hasher.hash("testpassword123"),
        name=fields.pop("name", "Test User"),
        **fields,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user: User) -> dict:
    """Bearer headers for a session as ``user``."""
    access_token = token_service.create_access_token(
        user_id=user.id, email=user.email, role=user.role
    )
    return {"Authorization": f"Bearer {access_token}"}


async def create_api_token(
    db: AsyncSession,
    user: User,
    scopes: list[str],
    expires_at: datetime | None = None,
    name: str = "test token",
) -> tuple[str, ApiToken]:
    """Insert a token for ``user``; returns (plaintext, row)."""
    secret = generate_api_token(settings.api_token_prefix)
    token = ApiToken(
        user_id=user.id,
        name=name,
        token_hash=hash_api_token(secret, settings.api_token_salt),
        token_prefix=display_prefix(secret),
        scopes=scopes,
        expires_at=expires_at,
    )
    db.add(token)
    await db.commit()
    await db.refresh(token)
    return secret, token


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Free-tier user with no Stripe state."""
    return await create_user(db_session, "test@example.com")


@pytest.fixture
async def paid_user(db_session: AsyncSession) -> User:
    """Pro user with a live subscription mirror."""
    return await create_user(
        db_session,
        "pro@example.com",
        name="Pro User",
        membership_tier="pro",
        membership_expires_at=datetime.now(timezone.utc) + timedelta(days=30),
        stripe_customer_id="cus_pro123",
        stripe_subscription_id="sub_pro123",
        stripe_price_id=PRO_PRICE_MONTHLY,
        stripe_current_period_end=datetime.now(timezone.utc) + timedelta(days=30),
    )


@pytest.fixture
async def editor_user(db_session: AsyncSession) -> User:
    return await create_user(
        db_session,
        "editor@example.com",
        name="Editor",
        role=UserRole.EDITOR.value,
        membership_tier="pro",
    )


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Generate authentication headers for test user."""
    return headers_for(test_user)


@pytest.fixture
def paid_headers(paid_user: User) -> dict:
    return headers_for(paid_user)


@pytest.fixture
def editor_headers(editor_user: User) -> dict:
    return headers_for(editor_user)


@pytest.fixture
def stripe_adapter() -> StripeAdapter:
    """
    Adapter with a real webhook secret and mocked API calls.

    ``construct_event`` runs for real; every network method is an AsyncMock
    the test configures.
    """
    adapter = StripeAdapter(api_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)
    adapter.get_or_create_customer = AsyncMock(return_value="cus_new123")
    adapter.retrieve_customer = AsyncMock(return_value={"id": "cus_x", "metadata": {}})
    adapter.create_checkout_session = AsyncMock(
        return_value={"id": "cs_test_123", "url": "https://checkout.stripe.com/c/pay/cs_test_123"}
    )
    adapter.retrieve_checkout_session = AsyncMock()
    adapter.create_portal_session = AsyncMock(
        return_value={"url": "https://billing.stripe.com/p/session/test"}
    )
    adapter.get_subscription = AsyncMock(return_value=None)
    adapter.cancel_subscription = AsyncMock()
    adapter.resume_subscription = AsyncMock()
    return adapter


@pytest.fixture
async def async_client(
    db_session: AsyncSession, stripe_adapter: StripeAdapter
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    # Import app here to avoid circular imports
    from main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_adapter] = lambda: stripe_adapter

    # Reset rate limiter state between tests to prevent cross-test 429s
    app.state.limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Stripe webhook helpers
# ============================================================================


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header value for ``payload`` (v1 scheme)."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str | None = None) -> dict:
    return {
        "id": event_id or f"evt_{uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def make_subscription(
    customer: str,
    price_id: str,
    status: str = "active",
    period_end: int | None = None,
    cancel_at_period_end: bool = False,
    subscription_id: str = "sub_123",
    item_period_end: int | None = None,
) -> dict:
    """Subscription payload; period end on the item only when requested."""
    item = {"id": "si_1", "price": {"id": price_id, "unit_amount": 2900, "currency": "usd",
                                   "recurring": {"interval": "month", "interval_count": 1}}}
    if item_period_end is not None:
        item["current_period_end"] = item_period_end
    subscription = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "items": {"data": [item]},
    }
    if period_end is not None:
        subscription["current_period_end"] = period_end
    return subscription


@pytest.fixture
def post_webhook(async_client: AsyncClient):
    """Send a signed event to the webhook endpoint."""

    async def _post(event: dict, signature: str | None = None, headers: dict | None = None):
        payload = json.dumps(event)
        request_headers = {"Content-Type": "application/json"}
        request_headers["Stripe-Signature"] = signature or sign_payload(payload)
        request_headers.update(headers or {})
        return await async_client.post(
            "/api/v1/webhooks/stripe", content=payload, headers=request_headers
        )

    return _post


# ============================================================================
# Factory fixtures
# ============================================================================


@pytest.fixture
def user_factory(db_session: AsyncSession):
    async def _create(email: str, **fields) -> User:
        return await create_user(db_session, email, **fields)

    return _create


@pytest.fixture
def token_factory(db_session: AsyncSession):
    async def _create(user: User, scopes: list[str], **kwargs) -> tuple[str, ApiToken]:
        return await create_api_token(db_session, user, scopes, **kwargs)

    return _create


@pytest.fixture
def session_headers():
    return headers_for


@pytest.fixture
def stripe_payloads():
    """Builders for signed webhook bodies."""

    class _Payloads:
        sign = staticmethod(sign_payload)
        event = staticmethod(make_event)
        subscription = staticmethod(make_subscription)

    return _Payloads
