"""Webhooks router - payment gateway callbacks."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from missionhub.core.deps import get_db, get_payment_gateway
from missionhub.services.payment_gateway import PaymentGateway
from missionhub.services.webhooks.stripe import StripeWebhookHandler

router = APIRouter()

stripe_handler = StripeWebhookHandler()


@router.post("/stripe")
async def receive_stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Receive Stripe payment intent events.

    Signature-checked; outcomes are applied to pending payments only, so
    redelivered events are acknowledged without effect. Declined intents are
    cancelled at the gateway before the payment is marked failed.
    """
    return await stripe_handler.handle(request, db, gateway)
