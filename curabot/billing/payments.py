"""Subscriptions through Stripe: plans, checkout, webhooks, cancellation.

The stripe SDK is synchronous; every call runs in a worker thread so the
event loop never blocks on the network.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.config import StripeSettings, get_settings
from curabot.errors import NotFoundError, UpstreamError, ValidationFailed
from curabot.storage.models import BillingAccount, _utcnow
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _first_price_id(invoice: Any) -> Optional[str]:
    lines = _get(_get(invoice, "lines", {}), "data", [])
    if not lines:
        return None
    return _get(_get(lines[0], "price", {}), "id")


class PaymentsService:
    def __init__(self, settings: Optional[StripeSettings] = None):
        self.settings = settings or get_settings().stripe

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, api_key=self.settings.secret_key, **kwargs)
        except stripe.StripeError as e:
            logger.error("Stripe call %s failed: %s", getattr(fn, "__qualname__", fn), e)
            raise UpstreamError("Payment provider error", detail=str(e)) from e

    # --- Plans and checkout ---

    async def list_plans(self) -> list[dict[str, Any]]:
        """Active recurring prices with an amount, cheapest first."""
        try:
            prices = await self._call(stripe.Price.list, active=True, expand=["data.product"], limit=100)
        except UpstreamError:
            return []

        plans = []
        for price in _get(prices, "data", []):
            product = _get(price, "product", {})
            amount = _get(price, "unit_amount")
            if amount is None or not _get(product, "active", False):
                continue
            metadata = _get(price, "metadata", {})
            features = [
                _get(metadata, "Bot") or _get(metadata, "Bots"),
                _get(metadata, "Flows"),
                _get(metadata, "Model") or _get(metadata, "Models"),
            ]
            plans.append(
                {
                    "id": price["id"],
                    "name": _get(price, "nickname") or _get(product, "name", ""),
                    "description": _get(product, "description", ""),
                    "price": amount / 100,
                    "currency": _get(price, "currency", "usd"),
                    "priceId": price["id"],
                    "features": [f for f in features if f],
                }
            )
        return sorted(plans, key=lambda p: p["price"])

    async def create_checkout_session(
        self, price_id: Optional[str], origin: str, customer_id: Optional[str] = None
    ) -> str:
        if not price_id:
            raise ValidationFailed("Price ID is required")
        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{origin}/pricing",
        }
        if customer_id:
            params["customer"] = customer_id
        session = await self._call(stripe.checkout.Session.create, **params)
        logger.info("Created checkout session %s", session["id"])
        return session["id"]

    async def get_or_create_account(self, scope: OwnerScope, email: Optional[str] = None) -> BillingAccount:
        accounts = await scope.billing.find()
        if accounts:
            account = accounts[0]
        else:
            account = BillingAccount(owner_id=scope.owner_id, subscription_status="inactive", created_at=_utcnow())
            scope.session.add(account)

        if not account.stripe_customer_id:
            params: dict[str, Any] = {"metadata": {"ownerId": scope.owner_id}}
            if email:
                params["email"] = email
            customer = await self._call(stripe.Customer.create, **params)
            account.stripe_customer_id = customer["id"]
            logger.info("Linked owner %s to Stripe customer %s", scope.owner_id, customer["id"])
        await scope.session.flush()
        return account

    async def checkout_for_owner(
        self, scope: OwnerScope, price_id: Optional[str], origin: str, email: Optional[str] = None
    ) -> str:
        if not price_id:
            raise ValidationFailed("Price ID is required")
        account = await self.get_or_create_account(scope, email)
        return await self.create_checkout_session(price_id, origin, account.stripe_customer_id)

    # --- Webhooks ---

    def construct_event(self, payload: bytes, signature: Optional[str]):
        try:
            return stripe.Webhook.construct_event(payload, signature or "", self.settings.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.error("Webhook signature verification failed: %s", e)
            raise ValidationFailed("Webhook error") from e

    async def handle_event(self, session: AsyncSession, event: Any) -> None:
        kind = _get(event, "type")
        obj = _get(_get(event, "data", {}), "object", {})
        logger.info("Stripe webhook event received: %s", kind)

        if kind == "checkout.session.completed":
            logger.info("Checkout completed for customer %s", _get(obj, "customer"))
            account = await self._account_by_customer(session, _get(obj, "customer"))
            if account is not None and _get(obj, "subscription"):
                account.subscription_id = str(obj["subscription"])
        elif kind == "invoice.payment_succeeded":
            if _get(obj, "subscription"):
                account = await self._account_by_customer(session, _get(obj, "customer"))
                if account is not None:
                    account.subscription_status = "active"
                    account.subscription_id = str(obj["subscription"])
                    account.price_id = _first_price_id(obj) or account.price_id
                    logger.info("Subscription activated for owner %s", account.owner_id)
        elif kind == "customer.subscription.deleted":
            account = await self._account_by_customer(session, _get(obj, "customer"))
            if account is not None:
                account.subscription_status = "canceled"
                logger.info("Subscription canceled for owner %s", account.owner_id)
        else:
            logger.debug("Ignoring Stripe event %s", kind)
        await session.flush()

    async def _account_by_customer(self, session: AsyncSession, customer_id: Optional[str]) -> Optional[BillingAccount]:
        if not customer_id:
            return None
        account = await session.scalar(
            select(BillingAccount).where(BillingAccount.stripe_customer_id == customer_id)
        )
        if account is None:
            logger.warning("No billing account for Stripe customer %s", customer_id)
        return account

    # --- Subscription management ---

    async def get_subscription(self, scope: OwnerScope) -> Optional[dict[str, Any]]:
        accounts = await scope.billing.find()
        if not accounts or not accounts[0].subscription_id:
            return None
        sub = await self._call(stripe.Subscription.retrieve, accounts[0].subscription_id)
        period_end = _get(sub, "current_period_end")
        return {
            "status": _get(sub, "status"),
            "subscriptionId": _get(sub, "id"),
            "currentPeriodEnd": (
                datetime.fromtimestamp(period_end, tz=timezone.utc).isoformat() if period_end else None
            ),
            "cancelAtPeriodEnd": _get(sub, "cancel_at_period_end"),
        }

    async def cancel_subscription(self, scope: OwnerScope) -> None:
        accounts = await scope.billing.find()
        if not accounts or not accounts[0].subscription_id:
            raise NotFoundError("No subscription")
        await self._call(stripe.Subscription.cancel, accounts[0].subscription_id)
        logger.info("Canceled subscription %s for owner %s", accounts[0].subscription_id, scope.owner_id)
