"""Pricing, checkout, Stripe webhook and subscription routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from curabot.api.deps import get_db, get_payments, get_scope
from curabot.billing.payments import PaymentsService
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    price_id: Optional[str] = None
    email: Optional[str] = None


def _origin(request: Request) -> str:
    return request.headers.get("origin") or str(request.base_url).rstrip("/")


@router.get("/pricing/plans")
async def pricing_plans(payments: PaymentsService = Depends(get_payments)):
    return {"plans": await payments.list_plans()}


@router.post("/pricing/stripe-checkout")
async def stripe_checkout(
    body: CheckoutRequest, request: Request, payments: PaymentsService = Depends(get_payments)
):
    session_id = await payments.create_checkout_session(body.price_id, _origin(request))
    return {"sessionId": session_id}


@router.post("/userdata")
async def owner_checkout(
    body: CheckoutRequest,
    request: Request,
    scope: OwnerScope = Depends(get_scope),
    payments: PaymentsService = Depends(get_payments),
):
    session_id = await payments.checkout_for_owner(scope, body.price_id, _origin(request), body.email)
    return {"sessionId": session_id}


@router.post("/pricing/stripe-events")
async def stripe_events(
    request: Request,
    session: AsyncSession = Depends(get_db),
    payments: PaymentsService = Depends(get_payments),
):
    payload = await request.body()
    event = payments.construct_event(payload, request.headers.get("stripe-signature"))
    await payments.handle_event(session, event)
    return {"received": True}


@router.get("/subscription")
async def get_subscription(
    scope: OwnerScope = Depends(get_scope), payments: PaymentsService = Depends(get_payments)
):
    subscription = await payments.get_subscription(scope)
    if subscription is None:
        return {"subscription": None}
    return subscription


@router.delete("/subscription")
async def cancel_subscription(
    scope: OwnerScope = Depends(get_scope), payments: PaymentsService = Depends(get_payments)
):
    await payments.cancel_subscription(scope)
    return {"success": True}
