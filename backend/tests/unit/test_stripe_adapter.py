"""
Unit tests for the Stripe adapter.

Field helpers are exercised with plain dict payloads and SDK objects built
with ``construct_from``; webhook verification runs against the real Stripe
signing scheme.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import stripe

from adapters.payments import (
    StripeAdapter,
    StripeNotConfiguredError,
    StripePaymentError,
    StripeWebhookError,
    first_price,
    first_price_id,
    object_id,
    subscription_period_end,
    to_datetime,
    to_plain,
)

SECRET = "whsec_unit"


def _sign(payload: str, secret: str = SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestFieldHelpers:
    def test_object_id_accepts_string_and_object(self):
        assert object_id("cus_1") == "cus_1"
        assert object_id({"id": "cus_2", "email": "a@b.c"}) == "cus_2"
        assert object_id(None) is None

    def test_to_datetime(self):
        assert to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert to_datetime("1700000000") == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert to_datetime(None) is None
        assert to_datetime("") is None
        assert to_datetime("not-a-number") is None

    def test_period_end_prefers_top_level(self):
        subscription = {
            "current_period_end": 1700000000,
            "items": {"data": [{"current_period_end": 1800000000}]},
        }
        assert subscription_period_end(subscription) == to_datetime(1700000000)

    def test_period_end_falls_back_to_first_item(self):
        subscription = {"items": {"data": [{"current_period_end": 1800000000}]}}
        assert subscription_period_end(subscription) == to_datetime(1800000000)

    def test_period_end_missing_everywhere(self):
        assert subscription_period_end({}) is None
        assert subscription_period_end({"items": {"data": []}}) is None

    def test_first_price(self):
        subscription = {"items": {"data": [{"price": {"id": "price_1", "unit_amount": 2900}}]}}
        assert first_price(subscription)["unit_amount"] == 2900
        assert first_price_id(subscription) == "price_1"
        assert first_price({}) is None
        assert first_price_id({}) is None

    def test_helpers_accept_sdk_objects(self):
        subscription = stripe.Subscription.construct_from(
            {
                "id": "sub_1",
                "customer": {"id": "cus_1", "object": "customer"},
                "items": {
                    "object": "list",
                    "data": [
                        {
                            "id": "si_1",
                            "current_period_end": 1800000000,
                            "price": {"id": "price_1", "unit_amount": 2900},
                        }
                    ],
                },
            },
            "sk_test_dummy",
        )

        assert first_price_id(subscription) == "price_1"
        assert subscription_period_end(subscription) == to_datetime(1800000000)
        assert object_id(subscription["customer"]) == "cus_1"

    def test_to_plain(self):
        customer = stripe.Customer.construct_from(
            {"id": "cus_1", "metadata": {"userId": "u1"}}, "sk_test_dummy"
        )

        plain = to_plain(customer)

        assert type(plain) is dict
        assert type(plain["metadata"]) is dict
        assert plain["metadata"].get("userId") == "u1"
        assert to_plain({"id": "cus_2"}) == {"id": "cus_2"}
        assert to_plain(None) is None


class TestConstructEvent:
    """Webhook signature verification."""

    def test_valid_signature_returns_dict(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        payload = json.dumps({"id": "evt_1", "type": "invoice.payment_failed", "data": {"object": {}}})

        event = adapter.construct_event(payload.encode("utf-8"), _sign(payload))

        assert isinstance(event, dict)
        assert event["id"] == "evt_1"
        assert event["type"] == "invoice.payment_failed"

    def test_wrong_secret_is_invalid(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        payload = json.dumps({"id": "evt_1", "type": "x"})

        with pytest.raises(StripeWebhookError) as exc_info:
            adapter.construct_event(payload, _sign(payload, secret="whsec_other"))
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_tampered_payload_is_invalid(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        payload = json.dumps({"id": "evt_1", "type": "x"})
        signature = _sign(payload)

        with pytest.raises(StripeWebhookError):
            adapter.construct_event(payload.replace("evt_1", "evt_2"), signature)

    def test_stale_timestamp_is_invalid(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        payload = json.dumps({"id": "evt_1", "type": "x"})

        with pytest.raises(StripeWebhookError):
            adapter.construct_event(payload, _sign(payload, timestamp=int(time.time()) - 3600))

    def test_missing_signature(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)

        with pytest.raises(StripeWebhookError) as exc_info:
            adapter.construct_event(b"{}", None)
        assert exc_info.value.code == "MISSING_SIGNATURE"

    def test_unconfigured_secret(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=None)
        adapter.webhook_secret = None

        assert not adapter.is_webhook_configured
        with pytest.raises(StripeNotConfiguredError):
            adapter.construct_event(b"{}", "t=1,v1=abc")

    def test_signed_non_event_payload(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        payload = json.dumps(["not", "an", "event"])

        with pytest.raises(StripeWebhookError) as exc_info:
            adapter.construct_event(payload, _sign(payload))
        assert exc_info.value.code == "INVALID_PAYLOAD"

    def test_non_utf8_body_is_invalid_payload(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)

        with pytest.raises(StripeWebhookError) as exc_info:
            adapter.construct_event(b"\xff\xfe{}", "t=1,v1=abc")
        assert exc_info.value.code == "INVALID_PAYLOAD"


class TestClient:
    def test_client_requires_secret_key(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        adapter.api_key = None

        with pytest.raises(StripeNotConfiguredError):
            _ = adapter.client

    def test_client_is_cached(self):
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        assert adapter.client is adapter.client


class TestCustomerAndSubscriptionCalls:
    """Adapter calls go through the SDK client; the client is replaced by a mock."""

    def _adapter_with_client(self) -> tuple[StripeAdapter, MagicMock]:
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        client = MagicMock()
        adapter._client = client
        return adapter, client

    @pytest.mark.asyncio
    async def test_existing_customer_is_reused(self):
        adapter, client = self._adapter_with_client()

        customer_id = await adapter.get_or_create_customer(
            user_id="u1", email="a@b.c", existing_customer_id="cus_existing"
        )

        assert customer_id == "cus_existing"
        client.v1.customers.create_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_new_customer_carries_user_metadata(self):
        adapter, client = self._adapter_with_client()
        client.v1.customers.create_async = AsyncMock(return_value=MagicMock(id="cus_new"))

        customer_id = await adapter.get_or_create_customer(user_id="u1", email="a@b.c", name="A")

        assert customer_id == "cus_new"
        params = client.v1.customers.create_async.call_args.kwargs["params"]
        assert params["metadata"] == {"userId": "u1"}
        assert params["name"] == "A"

    @pytest.mark.asyncio
    async def test_checkout_session_params(self):
        adapter, client = self._adapter_with_client()
        client.v1.checkout.sessions.create_async = AsyncMock(return_value=MagicMock(id="cs_1"))

        await adapter.create_checkout_session(
            customer_id="cus_1",
            price_id="price_1",
            success_url="https://x/success",
            cancel_url="https://x/cancel",
            metadata={"userId": "u1", "tierSlug": "pro", "billingPeriod": "monthly"},
        )

        params = client.v1.checkout.sessions.create_async.call_args.kwargs["params"]
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_1", "quantity": 1}]
        assert params["allow_promotion_codes"] is True
        assert params["billing_address_collection"] == "auto"
        assert params["subscription_data"]["metadata"]["userId"] == "u1"

    @pytest.mark.asyncio
    async def test_provider_error_is_wrapped(self):
        adapter, client = self._adapter_with_client()
        client.v1.customers.create_async = AsyncMock(side_effect=stripe.StripeError("boom"))

        with pytest.raises(StripePaymentError):
            await adapter.get_or_create_customer(user_id="u1", email="a@b.c")

    @pytest.mark.asyncio
    async def test_get_subscription_returns_none_on_error(self):
        adapter, client = self._adapter_with_client()
        client.v1.subscriptions.retrieve_async = AsyncMock(side_effect=stripe.StripeError("gone"))

        assert await adapter.get_subscription("sub_missing") is None

    @pytest.mark.asyncio
    async def test_cancel_and_resume_toggle_flag(self):
        adapter, client = self._adapter_with_client()
        client.v1.subscriptions.update_async = AsyncMock(return_value={"id": "sub_1"})

        await adapter.cancel_subscription("sub_1")
        assert client.v1.subscriptions.update_async.call_args.kwargs["params"] == {
            "cancel_at_period_end": True
        }

        await adapter.resume_subscription("sub_1")
        assert client.v1.subscriptions.update_async.call_args.kwargs["params"] == {
            "cancel_at_period_end": False
        }


class TestSdkResultsArePlainDicts:
    """Callers read adapter results with ``.get``; SDK objects are converted first."""

    def _adapter_with_client(self) -> tuple[StripeAdapter, MagicMock]:
        adapter = StripeAdapter(api_key="sk_test_x", webhook_secret=SECRET)
        client = MagicMock()
        adapter._client = client
        return adapter, client

    @pytest.mark.asyncio
    async def test_retrieve_customer(self):
        adapter, client = self._adapter_with_client()
        client.v1.customers.retrieve_async = AsyncMock(
            return_value=stripe.Customer.construct_from(
                {"id": "cus_1", "object": "customer", "metadata": {"userId": "u1"}},
                "sk_test_x",
            )
        )

        customer = await adapter.retrieve_customer("cus_1")

        assert isinstance(customer, dict)
        assert customer.get("metadata", {}).get("userId") == "u1"

    @pytest.mark.asyncio
    async def test_checkout_session_round_trip(self):
        adapter, client = self._adapter_with_client()
        session = stripe.checkout.Session.construct_from(
            {
                "id": "cs_1",
                "object": "checkout.session",
                "url": "https://checkout.stripe.com/c/pay/cs_1",
                "customer": "cus_1",
                "subscription": {"id": "sub_1", "object": "subscription"},
                "metadata": {"userId": "u1"},
            },
            "sk_test_x",
        )
        client.v1.checkout.sessions.create_async = AsyncMock(return_value=session)
        client.v1.checkout.sessions.retrieve_async = AsyncMock(return_value=session)

        created = await adapter.create_checkout_session(
            customer_id="cus_1",
            price_id="price_1",
            success_url="https://x/success",
            cancel_url="https://x/cancel",
        )
        retrieved = await adapter.retrieve_checkout_session("cs_1")

        assert created.get("url") == "https://checkout.stripe.com/c/pay/cs_1"
        assert retrieved.get("metadata").get("userId") == "u1"
        assert object_id(retrieved.get("subscription")) == "sub_1"

    @pytest.mark.asyncio
    async def test_portal_session(self):
        adapter, client = self._adapter_with_client()
        client.v1.billing_portal.sessions.create_async = AsyncMock(
            return_value=stripe.billing_portal.Session.construct_from(
                {"id": "bps_1", "url": "https://billing.stripe.com/p/session/x"}, "sk_test_x"
            )
        )

        portal = await adapter.create_portal_session("cus_1", "https://x/settings/billing")

        assert portal["url"] == "https://billing.stripe.com/p/session/x"

    @pytest.mark.asyncio
    async def test_subscription_lookup_and_update(self):
        adapter, client = self._adapter_with_client()
        subscription = stripe.Subscription.construct_from(
            {"id": "sub_1", "status": "active", "cancel_at_period_end": True},
            "sk_test_x",
        )
        client.v1.subscriptions.retrieve_async = AsyncMock(return_value=subscription)
        client.v1.subscriptions.update_async = AsyncMock(return_value=subscription)

        fetched = await adapter.get_subscription("sub_1")
        cancelled = await adapter.cancel_subscription("sub_1")

        assert fetched.get("status") == "active"
        assert cancelled.get("cancel_at_period_end") is True
