"""Tests for Stripe plans, checkout, webhooks and subscriptions."""

import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from curabot.billing.payments import PaymentsService
from curabot.config import StripeSettings
from curabot.errors import NotFoundError, UpstreamError, ValidationFailed
from curabot.storage.models import BillingAccount

SETTINGS = StripeSettings(secret_key="sk_test_123", webhook_secret="whsec_test")


def _price(price_id, amount, active=True, nickname=None, metadata=None):
    return {
        "id": price_id,
        "unit_amount": amount,
        "currency": "usd",
        "nickname": nickname,
        "metadata": metadata or {},
        "product": {"name": f"Plan {price_id}", "description": "Reminder calls", "active": active},
    }


def _signed(payload: bytes, secret: str = "whsec_test") -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def _account(session, **fields) -> BillingAccount:
    account = BillingAccount(owner_id="user_owner", subscription_status="inactive", **fields)
    session.add(account)
    await session.flush()
    return account


class TestPlans:
    @pytest.mark.asyncio
    async def test_filters_and_sorts(self):
        prices = {"data": [
            _price("price_pro", 4900, metadata={"Bots": "10 bots", "Flows": "Unlimited"}),
            _price("price_basic", 1900, nickname="Basic", metadata={"Bot": "1 bot"}),
            _price("price_old", 900, active=False),
            _price("price_metered", None),
        ]}
        with patch.object(stripe.Price, "list", MagicMock(return_value=prices)) as listed:
            plans = await PaymentsService(SETTINGS).list_plans()

        assert listed.call_args.kwargs["api_key"] == "sk_test_123"
        assert listed.call_args.kwargs["active"] is True
        assert [p["priceId"] for p in plans] == ["price_basic", "price_pro"]
        assert plans[0]["name"] == "Basic"
        assert plans[0]["price"] == 19.0
        assert plans[0]["features"] == ["1 bot"]
        assert plans[1]["name"] == "Plan price_pro"
        assert plans[1]["features"] == ["10 bots", "Unlimited"]

    @pytest.mark.asyncio
    async def test_provider_error_returns_empty(self):
        with patch.object(stripe.Price, "list", MagicMock(side_effect=stripe.StripeError("down"))):
            assert await PaymentsService(SETTINGS).list_plans() == []


class TestCheckout:
    @pytest.mark.asyncio
    async def test_requires_price(self):
        with pytest.raises(ValidationFailed, match="Price ID is required"):
            await PaymentsService(SETTINGS).create_checkout_session(None, "http://localhost:3000")

    @pytest.mark.asyncio
    async def test_session_params(self):
        created = MagicMock(return_value={"id": "cs_test_1"})
        with patch.object(stripe.checkout.Session, "create", created):
            session_id = await PaymentsService(SETTINGS).create_checkout_session(
                "price_basic", "http://localhost:3000"
            )

        assert session_id == "cs_test_1"
        params = created.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_basic", "quantity": 1}]
        assert params["success_url"] == "http://localhost:3000/success?session_id={CHECKOUT_SESSION_ID}"
        assert params["cancel_url"] == "http://localhost:3000/pricing"
        assert "customer" not in params

    @pytest.mark.asyncio
    async def test_owner_checkout_reuses_customer(self, scope):
        customer = MagicMock(return_value={"id": "cus_1"})
        created = MagicMock(return_value={"id": "cs_test_1"})
        service = PaymentsService(SETTINGS)
        with patch.object(stripe.Customer, "create", customer), patch.object(stripe.checkout.Session, "create", created):
            await service.checkout_for_owner(scope, "price_basic", "http://app", "m@example.com")
            await service.checkout_for_owner(scope, "price_pro", "http://app")

        assert customer.call_count == 1
        assert customer.call_args.kwargs["metadata"] == {"ownerId": scope.owner_id}
        assert customer.call_args.kwargs["email"] == "m@example.com"
        assert created.call_args.kwargs["customer"] == "cus_1"
        accounts = await scope.billing.find()
        assert [a.stripe_customer_id for a in accounts] == ["cus_1"]

    @pytest.mark.asyncio
    async def test_provider_error_is_upstream(self):
        with patch.object(stripe.checkout.Session, "create", MagicMock(side_effect=stripe.StripeError("declined"))):
            with pytest.raises(UpstreamError, match="Payment provider error"):
                await PaymentsService(SETTINGS).create_checkout_session("price_basic", "http://app")


class TestWebhooks:
    def test_bad_signature(self):
        payload = json.dumps({"id": "evt_1", "object": "event", "type": "ping"}).encode()
        with pytest.raises(ValidationFailed, match="Webhook error"):
            PaymentsService(SETTINGS).construct_event(payload, "t=1,v1=deadbeef")

    def test_missing_signature(self):
        with pytest.raises(ValidationFailed):
            PaymentsService(SETTINGS).construct_event(b"{}", None)

    def test_valid_signature(self):
        payload = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "customer.subscription.deleted",
            "data": {"object": {"customer": "cus_1"}},
        }).encode()
        event = PaymentsService(SETTINGS).construct_event(payload, _signed(payload))
        assert event["type"] == "customer.subscription.deleted"

    @pytest.mark.asyncio
    async def test_checkout_completed_links_subscription(self, session):
        account = await _account(session, stripe_customer_id="cus_1")
        event = {"type": "checkout.session.completed",
                 "data": {"object": {"customer": "cus_1", "subscription": "sub_1"}}}
        await PaymentsService(SETTINGS).handle_event(session, event)
        assert account.subscription_id == "sub_1"
        assert account.subscription_status == "inactive"

    @pytest.mark.asyncio
    async def test_invoice_paid_activates(self, session):
        account = await _account(session, stripe_customer_id="cus_1")
        event = {"type": "invoice.payment_succeeded", "data": {"object": {
            "customer": "cus_1",
            "subscription": "sub_1",
            "lines": {"data": [{"price": {"id": "price_pro"}}]},
        }}}
        await PaymentsService(SETTINGS).handle_event(session, event)
        assert account.subscription_status == "active"
        assert account.price_id == "price_pro"

    @pytest.mark.asyncio
    async def test_subscription_deleted_cancels(self, session):
        account = await _account(session, stripe_customer_id="cus_1", subscription_id="sub_1")
        event = {"type": "customer.subscription.deleted", "data": {"object": {"customer": "cus_1"}}}
        await PaymentsService(SETTINGS).handle_event(session, event)
        assert account.subscription_status == "canceled"

    @pytest.mark.asyncio
    async def test_unknown_customer_is_ignored(self, session):
        event = {"type": "customer.subscription.deleted", "data": {"object": {"customer": "cus_missing"}}}
        await PaymentsService(SETTINGS).handle_event(session, event)


class TestSubscription:
    @pytest.mark.asyncio
    async def test_none_without_account(self, scope):
        assert await PaymentsService(SETTINGS).get_subscription(scope) is None

    @pytest.mark.asyncio
    async def test_details(self, scope, session):
        await _account(session, stripe_customer_id="cus_1", subscription_id="sub_1")
        sub = {"id": "sub_1", "status": "active", "current_period_end": 1767225600, "cancel_at_period_end": False}
        with patch.object(stripe.Subscription, "retrieve", MagicMock(return_value=sub)) as retrieved:
            details = await PaymentsService(SETTINGS).get_subscription(scope)

        assert retrieved.call_args.args == ("sub_1",)
        assert details == {
            "status": "active",
            "subscriptionId": "sub_1",
            "currentPeriodEnd": "2026-01-01T00:00:00+00:00",
            "cancelAtPeriodEnd": False,
        }

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, scope):
        with pytest.raises(NotFoundError, match="No subscription"):
            await PaymentsService(SETTINGS).cancel_subscription(scope)

    @pytest.mark.asyncio
    async def test_cancel(self, scope, session):
        await _account(session, stripe_customer_id="cus_1", subscription_id="sub_1")
        with patch.object(stripe.Subscription, "cancel", MagicMock(return_value={})) as cancel:
            await PaymentsService(SETTINGS).cancel_subscription(scope)
        assert cancel.call_args.args == ("sub_1",)
        assert cancel.call_args.kwargs == {"api_key": "sk_test_123"}
