"""Escrow payment orchestration (create intent -> confirm -> cancel / refund).

The local Payment row is the source of truth for business logic; the gateway
is reconciled on every confirm and on inbound webhooks.

Atomicity:
- one pending payment per mission: fast pre-check + partial unique index
- every status write is a conditional UPDATE keyed on the expected prior
  status, so two concurrent confirms cannot both apply a transition
- gateway calls run outside the local write and carry a stable
  per-payment idempotency key; a failed or timed-out call leaves the row
  untouched
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, TypedDict
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from missionhub.core import authorization
from missionhub.core.config import settings
from missionhub.core.errors import (
    AlreadyFinalizedError,
    CannotCancelSettledError,
    GatewayError,
    PaymentAlreadyPendingError,
    PaymentNotFoundError,
    PreconditionFailedError,
)
from missionhub.core.structured_logging import build_log_context
from missionhub.db.enums import GatewayIntentStatus, MissionStatus, PaymentAction, PaymentStatus
from missionhub.db.models import Mission, Payment
from missionhub.schemas.auth import ActorContext
from missionhub.services import mission_service
from missionhub.services.payment_gateway import GatewayIntent, PaymentGateway
from missionhub.utils.money import format_amount, normalize_currency, to_minor_units

logger = logging.getLogger(__name__)

# Mission statuses in which an escrow can be opened (assistant assigned)
PAYABLE_MISSION_STATUSES = (MissionStatus.ACCEPTED.value, MissionStatus.IN_PROGRESS.value)


class PaymentIntentResult(TypedDict):
    """Result of opening an escrow."""

    payment: Payment
    client_secret: str | None  # Opaque, forwarded to the payer's client


class PaymentConfirmResult(TypedDict):
    """Result of a confirm / reconcile operation."""

    status: str  # Payment status after the call
    payment: Payment
    settled: bool  # False = gateway still processing, poll again
    message: str | None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def intent_idempotency_key(payment_id: UUID) -> str:
    return f"payment-intent/{payment_id}"


def cancel_idempotency_key(payment_id: UUID) -> str:
    return f"cancel/{payment_id}"


def refund_idempotency_key(payment_id: UUID) -> str:
    return f"refund/{payment_id}"


# =============================================================================
# Reads
# =============================================================================

def get_payment(db: Session, payment_id: UUID) -> Payment | None:
    return db.get(Payment, payment_id)


def require_payment(db: Session, payment_id: UUID) -> Payment:
    payment = get_payment(db, payment_id)
    if not payment:
        raise PaymentNotFoundError(f"Payment {payment_id} not found")
    return payment


def get_pending_payment(db: Session, mission_id: UUID) -> Payment | None:
    return db.execute(
        select(Payment).where(
            Payment.mission_id == mission_id,
            Payment.status == PaymentStatus.PENDING.value,
        )
    ).scalar_one_or_none()


def get_completed_payment(db: Session, mission_id: UUID) -> Payment | None:
    return db.execute(
        select(Payment)
        .where(
            Payment.mission_id == mission_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        .limit(1)
    ).scalar_one_or_none()


def get_payment_by_intent(db: Session, intent_id: str) -> Payment | None:
    return db.execute(
        select(Payment).where(Payment.provider_intent_id == intent_id)
    ).scalar_one_or_none()


def list_mission_payments(db: Session, mission_id: UUID) -> list[Payment]:
    """All payments of a mission, newest first."""
    return list(
        db.execute(
            select(Payment)
            .where(Payment.mission_id == mission_id)
            .order_by(Payment.created_at.desc())
        ).scalars()
    )


def list_user_payments(db: Session, user_id: UUID) -> list[Payment]:
    """Payments where the user is payer or payee, newest first."""
    return list(
        db.execute(
            select(Payment)
            .where(or_(Payment.client_id == user_id, Payment.assistant_id == user_id))
            .order_by(Payment.created_at.desc())
        ).scalars()
    )


# =============================================================================
# Conditional status writes
# =============================================================================

def _apply_payment_status(
    db: Session,
    payment: Payment,
    *,
    expected: str,
    values: dict[str, Any],
) -> None:
    """
    Write a status change only if the row still holds `expected`, then commit.

    Raises AlreadyFinalizedError with the row's current status when a
    concurrent writer got there first.
    """
    result = db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(payment)
        raise AlreadyFinalizedError(
            f"Payment is already {payment.status}",
            current_status=payment.status,
        )
    db.commit()
    db.refresh(payment)
    logger.info(
        "Payment %s: %s -> %s",
        payment.id,
        expected,
        payment.status,
        extra=build_log_context(mission_id=payment.mission_id, payment_id=payment.id),
    )


def _ensure_pending(payment: Payment, action: str) -> None:
    if payment.status != PaymentStatus.PENDING.value:
        raise AlreadyFinalizedError(
            f"Cannot {action} a payment that is {payment.status}",
            current_status=payment.status,
        )


# =============================================================================
# Create
# =============================================================================

def _release_orphaned_intent(gateway: PaymentGateway, intent: GatewayIntent, payment_id: UUID) -> None:
    """Cancel a gateway intent whose local row lost the one-pending race."""
    try:
        gateway.cancel_intent(intent.intent_id, idempotency_key=cancel_idempotency_key(payment_id))
    except GatewayError:
        logger.exception(
            "Failed to cancel orphaned intent %s",
            intent.intent_id,
            extra=build_log_context(payment_id=payment_id),
        )


def create_intent(
    db: Session,
    gateway: PaymentGateway,
    mission_id: UUID,
    amount: Decimal | int | str,
    currency: str,
) -> PaymentIntentResult:
    """
    Open an escrow for an assigned mission.

    The payment id is generated before calling the gateway so the intent's
    idempotency key is stable across retries of the same request. Once the
    gateway has answered, any failure to record the payment locally cancels
    the intent again.
    """
    mission = mission_service.require_mission(db, mission_id)

    if mission.status not in PAYABLE_MISSION_STATUSES or mission.assistant_id is None:
        raise PreconditionFailedError(
            "Payment can only be created once an assistant has accepted the mission",
            mission_status=mission.status,
        )

    try:
        currency_code = normalize_currency(currency)
        amount_minor = to_minor_units(amount, currency_code)
    except ValueError as e:
        raise PreconditionFailedError(str(e))

    if currency_code not in settings.supported_currencies_list:
        raise PreconditionFailedError(f"Currency {currency_code} is not accepted")
    if currency_code != mission.currency:
        raise PreconditionFailedError(
            f"Payment currency {currency_code} does not match mission currency {mission.currency}"
        )
    if amount_minor <= 0:
        raise PreconditionFailedError("Amount must be greater than zero")

    if get_pending_payment(db, mission.id):
        raise PaymentAlreadyPendingError("A payment is already pending for this mission")
    if get_completed_payment(db, mission.id):
        raise PreconditionFailedError("Mission is already paid")

    payment_id = uuid.uuid4()
    client_id = mission.client_id
    assistant_id = mission.assistant_id
    # Release the read snapshot before the network call
    db.rollback()

    intent = gateway.create_intent(
        amount_minor=amount_minor,
        currency=currency_code,
        metadata={
            "mission_id": str(mission_id),
            "payment_id": str(payment_id),
            "client_id": str(client_id),
            "assistant_id": str(assistant_id),
        },
        idempotency_key=intent_idempotency_key(payment_id),
    )

    try:
        # Re-check the mission under lock: it may have been cancelled meanwhile
        locked_status = db.execute(
            select(Mission.status).where(Mission.id == mission_id).with_for_update()
        ).scalar_one()
        if locked_status not in PAYABLE_MISSION_STATUSES:
            raise PreconditionFailedError(
                "Mission is no longer payable",
                mission_status=locked_status,
            )

        payment = Payment(
            id=payment_id,
            mission_id=mission_id,
            client_id=client_id,
            assistant_id=assistant_id,
            amount_minor=amount_minor,
            currency=currency_code,
            status=PaymentStatus.PENDING.value,
            provider_intent_id=intent.intent_id,
        )
        db.add(payment)
        db.commit()
    except Exception as exc:
        db.rollback()
        _release_orphaned_intent(gateway, intent, payment_id)
        if isinstance(exc, IntegrityError) and get_pending_payment(db, mission_id):
            raise PaymentAlreadyPendingError(
                "A payment is already pending for this mission"
            ) from exc
        raise

    db.refresh(payment)
    logger.info(
        "Payment %s created for mission %s (%s)",
        payment.id,
        mission_id,
        format_amount(amount_minor, currency_code),
        extra=build_log_context(mission_id=mission_id, payment_id=payment.id),
    )
    return PaymentIntentResult(payment=payment, client_secret=intent.client_secret)


# =============================================================================
# Confirm / reconcile
# =============================================================================

def _cancel_declined_intent(
    db: Session, gateway: PaymentGateway, payment: Payment, intent: GatewayIntent
) -> PaymentConfirmResult:
    # A declined intent stays payable at the gateway until it is cancelled
    released = gateway.cancel_intent(
        intent.intent_id,
        idempotency_key=cancel_idempotency_key(payment.id),
    )
    if released.succeeded:
        logger.warning(
            "Declined intent %s succeeded before it could be cancelled",
            intent.intent_id,
            extra=build_log_context(mission_id=payment.mission_id, payment_id=payment.id),
        )
        return reconcile_intent(db, gateway, payment, released)
    if released.status != GatewayIntentStatus.CANCELED.value:
        raise GatewayError(
            f"Payment gateway did not cancel the declined intent (status={released.status})",
            gateway_code=released.status,
        )
    return _record_outcome(
        db,
        payment,
        PaymentStatus.FAILED.value,
        {"status": PaymentStatus.FAILED.value, "failed_at": _now(), "failure_reason": intent.last_error},
    )


def _record_outcome(
    db: Session, payment: Payment, target: str, values: dict[str, Any]
) -> PaymentConfirmResult:
    try:
        _apply_payment_status(db, payment, expected=PaymentStatus.PENDING.value, values=values)
    except AlreadyFinalizedError as exc:
        if exc.current_status != target:
            raise
        # A concurrent confirm or webhook applied the same outcome

    return PaymentConfirmResult(
        status=payment.status,
        payment=payment,
        settled=payment.status == PaymentStatus.COMPLETED.value,
        message=payment.failure_reason if payment.status == PaymentStatus.FAILED.value else None,
    )


def reconcile_intent(
    db: Session, gateway: PaymentGateway, payment: Payment, intent: GatewayIntent
) -> PaymentConfirmResult:
    """
    Apply the gateway's view of an intent to a pending payment.

    succeeded -> completed; canceled -> cancelled; a declined attempt
    (requires_payment_method with an error) is cancelled at the gateway and
    then marked failed; anything else leaves the payment pending.
    """
    if intent.succeeded:
        target = PaymentStatus.COMPLETED.value
        values: dict[str, Any] = {"status": target, "completed_at": _now(), "failure_reason": None}
    elif intent.status == GatewayIntentStatus.CANCELED.value:
        target = PaymentStatus.CANCELLED.value
        values = {"status": target, "cancelled_at": _now()}
    elif (
        intent.status == GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value
        and intent.last_error
    ):
        return _cancel_declined_intent(db, gateway, payment, intent)
    else:
        return PaymentConfirmResult(
            status=payment.status,
            payment=payment,
            settled=False,
            message=f"Payment not yet settled (gateway status: {intent.status})",
        )
    return _record_outcome(db, payment, target, values)


def recover_late_success(db: Session, payment: Payment, intent: GatewayIntent) -> Payment:
    """
    Complete a failed payment whose intent succeeded at the gateway anyway.

    The money was captured, so the local record must say so.
    """
    if payment.status != PaymentStatus.FAILED.value or not intent.succeeded:
        raise PreconditionFailedError("Only a failed payment with a succeeded intent can be recovered")
    logger.warning(
        "Intent %s succeeded after its payment was marked failed",
        intent.intent_id,
        extra=build_log_context(mission_id=payment.mission_id, payment_id=payment.id),
    )
    _apply_payment_status(
        db,
        payment,
        expected=PaymentStatus.FAILED.value,
        values={"status": PaymentStatus.COMPLETED.value, "completed_at": _now(), "failure_reason": None},
    )
    return payment


def settle_payment(db: Session, gateway: PaymentGateway, payment: Payment) -> PaymentConfirmResult:
    """
    Confirm a payment against the gateway.

    Idempotent for completed payments; failed/cancelled/refunded payments
    raise AlreadyFinalizedError. A gateway outage propagates and leaves the
    payment pending.
    """
    if payment.status == PaymentStatus.COMPLETED.value:
        return PaymentConfirmResult(
            status=payment.status,
            payment=payment,
            settled=True,
            message="Payment already completed",
        )
    _ensure_pending(payment, "confirm")
    if not payment.provider_intent_id:
        raise PreconditionFailedError("Payment has no gateway intent")

    intent = gateway.retrieve_intent(payment.provider_intent_id)
    return reconcile_intent(db, gateway, payment, intent)


def settle_pending_payment(
    db: Session, gateway: PaymentGateway, mission: Mission
) -> PaymentConfirmResult | None:
    """Confirm the mission's pending payment, if it has one."""
    payment = get_pending_payment(db, mission.id)
    if not payment:
        return None
    return settle_payment(db, gateway, payment)


# =============================================================================
# Cancel
# =============================================================================

def void_payment(db: Session, gateway: PaymentGateway, payment: Payment) -> Payment:
    """
    Cancel a pending escrow at the gateway, then locally.

    If the gateway reports the intent already succeeded, nothing changes
    locally and CannotCancelSettledError tells the caller to refund instead.
    """
    _ensure_pending(payment, "cancel")
    if not payment.provider_intent_id:
        raise PreconditionFailedError("Payment has no gateway intent")

    intent = gateway.cancel_intent(
        payment.provider_intent_id,
        idempotency_key=cancel_idempotency_key(payment.id),
    )
    if intent.succeeded:
        logger.warning(
            "Cancel refused: intent %s already succeeded",
            intent.intent_id,
            extra=build_log_context(mission_id=payment.mission_id, payment_id=payment.id),
        )
        raise CannotCancelSettledError(
            "Payment already settled at the gateway; request a refund instead",
            payment_id=str(payment.id),
        )
    if intent.status != GatewayIntentStatus.CANCELED.value:
        raise GatewayError(
            f"Payment gateway did not cancel the intent (status={intent.status})",
            gateway_code=intent.status,
        )

    try:
        _apply_payment_status(
            db,
            payment,
            expected=PaymentStatus.PENDING.value,
            values={"status": PaymentStatus.CANCELLED.value, "cancelled_at": _now()},
        )
    except AlreadyFinalizedError as exc:
        if exc.current_status != PaymentStatus.CANCELLED.value:
            raise
    return payment


def void_pending_payment(db: Session, gateway: PaymentGateway, mission: Mission) -> Payment | None:
    """Cancel the mission's pending payment, if it has one."""
    payment = get_pending_payment(db, mission.id)
    if not payment:
        return None
    return void_payment(db, gateway, payment)


# =============================================================================
# Refund
# =============================================================================

def refund(db: Session, gateway: PaymentGateway, payment: Payment, reason: str) -> Payment:
    """
    Refund a completed payment in full.

    Safe to retry: the gateway request carries a key derived from the
    payment id. Any gateway failure leaves the payment completed.
    """
    if payment.status != PaymentStatus.COMPLETED.value:
        raise AlreadyFinalizedError(
            f"Only completed payments can be refunded (status: {payment.status})",
            current_status=payment.status,
        )
    reason = (reason or "").strip()
    if not reason:
        raise PreconditionFailedError("Refund reason is required")
    if not payment.provider_intent_id:
        raise PreconditionFailedError("Payment has no gateway intent")

    gateway_refund = gateway.refund(
        payment.provider_intent_id,
        reason=reason,
        idempotency_key=refund_idempotency_key(payment.id),
    )
    _apply_payment_status(
        db,
        payment,
        expected=PaymentStatus.COMPLETED.value,
        values={
            "status": PaymentStatus.REFUNDED.value,
            "refunded_at": _now(),
            "provider_refund_id": gateway_refund.refund_id,
            "refund_reason": reason,
        },
    )
    return payment


# =============================================================================
# Actor-facing operations
# =============================================================================

def create_payment_intent(
    db: Session,
    gateway: PaymentGateway,
    mission_id: UUID,
    amount: Decimal | int | str,
    currency: str,
    actor: ActorContext,
) -> PaymentIntentResult:
    mission = mission_service.require_mission(db, mission_id)
    authorization.require(
        authorization.can_create_payment(actor, mission),
        "Only the mission's client can pay for it",
    )
    return create_intent(db, gateway, mission_id, amount, currency)


def confirm_payment(
    db: Session,
    gateway: PaymentGateway,
    payment_id: UUID,
    actor: ActorContext,
) -> PaymentConfirmResult:
    payment = require_payment(db, payment_id)
    authorization.require(
        authorization.can_manage_payment(actor, payment, PaymentAction.CONFIRM),
        "Only the payer can confirm this payment",
    )
    return settle_payment(db, gateway, payment)


def cancel_payment(
    db: Session,
    gateway: PaymentGateway,
    payment_id: UUID,
    actor: ActorContext,
) -> Payment:
    payment = require_payment(db, payment_id)
    authorization.require(
        authorization.can_manage_payment(actor, payment, PaymentAction.CANCEL),
        "Not allowed to cancel this payment",
    )
    return void_payment(db, gateway, payment)


def refund_payment(
    db: Session,
    gateway: PaymentGateway,
    payment_id: UUID,
    reason: str,
    actor: ActorContext,
) -> Payment:
    payment = require_payment(db, payment_id)
    authorization.require(
        authorization.can_manage_payment(actor, payment, PaymentAction.REFUND),
        "Only the payer can request a refund",
    )
    return refund(db, gateway, payment, reason)


def get_payment_for_actor(db: Session, payment_id: UUID, actor: ActorContext) -> Payment:
    payment = require_payment(db, payment_id)
    authorization.require(
        authorization.can_manage_payment(actor, payment, PaymentAction.VIEW),
        "Not allowed to view this payment",
    )
    return payment
