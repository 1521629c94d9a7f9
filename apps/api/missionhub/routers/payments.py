"""Escrow payment API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from missionhub.core.deps import get_current_actor, get_db, get_payment_gateway
from missionhub.schemas.auth import ActorContext
from missionhub.schemas.payment import (
    PaymentConfirmRead,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentRead,
    PaymentRefund,
)
from missionhub.services import mission_service, payment_service
from missionhub.services.payment_gateway import PaymentGateway

router = APIRouter()


@router.post("/intents", response_model=PaymentIntentRead, status_code=status.HTTP_201_CREATED)
def create_payment_intent(
    data: PaymentIntentCreate,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Open an escrow for an accepted mission.

    Returns the payment and the client secret the payer's app uses to
    complete the payment with the gateway.
    """
    currency = data.currency
    if currency is None:
        currency = mission_service.require_mission(db, data.mission_id).currency
    result = payment_service.create_payment_intent(
        db, gateway, data.mission_id, data.amount, currency, actor
    )
    return PaymentIntentRead(payment=result["payment"], client_secret=result["client_secret"])


@router.get("/mine", response_model=list[PaymentRead])
def list_my_payments(
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return payment_service.list_user_payments(db, actor.user_id)


@router.get("/{payment_id}", response_model=PaymentRead)
def get_payment(
    payment_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return payment_service.get_payment_for_actor(db, payment_id, actor)


@router.post("/{payment_id}/confirm", response_model=PaymentConfirmRead)
def confirm_payment(
    payment_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Reconcile the payment with the gateway (idempotent)."""
    result = payment_service.confirm_payment(db, gateway, payment_id, actor)
    return PaymentConfirmRead(
        status=result["status"],
        settled=result["settled"],
        message=result["message"],
        payment=result["payment"],
    )


@router.post("/{payment_id}/cancel", response_model=PaymentRead)
def cancel_payment(
    payment_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return payment_service.cancel_payment(db, gateway, payment_id, actor)


@router.post("/{payment_id}/refund", response_model=PaymentRead)
def refund_payment(
    payment_id: UUID,
    data: PaymentRefund,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Refund a completed payment in full (payer only)."""
    return payment_service.refund_payment(db, gateway, payment_id, data.reason, actor)
