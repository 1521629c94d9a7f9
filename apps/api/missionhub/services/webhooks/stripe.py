"""Stripe webhook handler (payment intent outcomes)."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import replace
from typing import Any

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from missionhub.core.config import settings
from missionhub.core.errors import AlreadyFinalizedError
from missionhub.core.structured_logging import build_log_context
from missionhub.db.enums import GatewayIntentStatus, PaymentStatus
from missionhub.services import payment_service
from missionhub.services.payment_gateway import PaymentGateway, intent_from_payload

logger = logging.getLogger(__name__)
MAX_PAYLOAD_BYTES = 512 * 1024

# Event type -> intent status the event implies
HANDLED_EVENTS = {
    "payment_intent.succeeded": GatewayIntentStatus.SUCCEEDED.value,
    "payment_intent.payment_failed": GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value,
    "payment_intent.canceled": GatewayIntentStatus.CANCELED.value,
}


def verify_signature(
    payload: bytes,
    header: str,
    secret: str,
    tolerance: int = 300,
    now: float | None = None,
) -> bool:
    """
    Verify a Stripe-Signature header.

    Header format: t=<unix ts>,v1=<hex hmac>[,v1=...]
    Signed message: "<ts>." + raw body, HMAC-SHA256 with the endpoint secret.
    Events older (or newer) than `tolerance` seconds are rejected.
    """
    if not header or not secret:
        return False

    timestamp = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    if not timestamp or not signatures:
        return False

    try:
        ts = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if tolerance and abs(current - ts) > tolerance:
        return False

    expected = hmac.new(
        secret.encode("utf-8"),
        timestamp.encode("utf-8") + b"." + payload,
        hashlib.sha256,
    ).hexdigest()
    return any(hmac.compare_digest(expected, sig) for sig in signatures)


def handle_event(db: Session, gateway: PaymentGateway, event: dict[str, Any]) -> dict[str, str]:
    """
    Apply a payment intent event to its local payment.

    Only pending payments move, except a success arriving for a payment
    marked failed: the money was captured, so the payment is completed.
    Redeliveries and events for payments that were already reconciled by a
    confirm call are acknowledged and ignored.
    """
    event_type = event.get("type", "")
    if event_type not in HANDLED_EVENTS:
        logger.info("Stripe webhook ignored event type: %s", event_type)
        return {"status": "ignored", "reason": "unhandled_event"}

    obj = (event.get("data") or {}).get("object") or {}
    if not obj.get("id"):
        logger.warning("Stripe webhook %s without intent id", event_type)
        return {"status": "ignored", "reason": "missing_intent"}

    intent = intent_from_payload(obj)
    intent = replace(intent, status=HANDLED_EVENTS[event_type])
    if event_type == "payment_intent.payment_failed" and not intent.last_error:
        intent = replace(intent, last_error="Payment failed")

    payment = payment_service.get_payment_by_intent(db, intent.intent_id)
    if not payment:
        logger.info("Stripe webhook: no payment for intent %s", intent.intent_id)
        return {"status": "ignored", "reason": "unknown_intent"}

    late_success = payment.status == PaymentStatus.FAILED.value and intent.succeeded
    if payment.status != PaymentStatus.PENDING.value and not late_success:
        logger.info(
            "Stripe webhook: payment already %s",
            payment.status,
            extra=build_log_context(mission_id=payment.mission_id, payment_id=payment.id),
        )
        return {"status": "ignored", "reason": "already_final"}

    try:
        if late_success:
            payment_service.recover_late_success(db, payment, intent)
            return {"status": "processed", "payment_status": payment.status}
        result = payment_service.reconcile_intent(db, gateway, payment, intent)
    except AlreadyFinalizedError as exc:
        logger.info(
            "Stripe webhook lost race: payment is %s",
            exc.current_status,
            extra=build_log_context(mission_id=payment.mission_id, payment_id=payment.id),
        )
        return {"status": "ignored", "reason": "already_final"}

    return {"status": "processed", "payment_status": result["status"]}


async def _read_body_safe(request: Request) -> bytes:
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > MAX_PAYLOAD_BYTES:
                raise HTTPException(413, "Payload too large")
        except ValueError:
            pass

    chunks: list[bytes] = []
    total = 0
    async for chunk in request.stream():
        if not chunk:
            continue
        total += len(chunk)
        if total > MAX_PAYLOAD_BYTES:
            raise HTTPException(413, "Payload too large")
        chunks.append(chunk)
    return b"".join(chunks)


class StripeWebhookHandler:
    async def handle(
        self, request: Request, db: Session, gateway: PaymentGateway
    ) -> dict[str, str]:
        """
        Receive Stripe webhook events.

        Security:
        - Validates Stripe-Signature with STRIPE_WEBHOOK_SECRET
        - Rejects events outside the replay window
        """
        body = await _read_body_safe(request)

        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            raise HTTPException(500, "Webhook not configured")

        signature = request.headers.get("stripe-signature", "")
        if not signature:
            logger.warning("Stripe webhook missing signature")
            raise HTTPException(403, "Missing signature")

        if not verify_signature(
            body,
            signature,
            settings.STRIPE_WEBHOOK_SECRET,
            settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        ):
            logger.warning("Stripe webhook invalid signature")
            raise HTTPException(403, "Invalid signature")

        try:
            event = json.loads(body)
        except json.JSONDecodeError:
            raise HTTPException(400, "Invalid JSON")
        if not isinstance(event, dict):
            raise HTTPException(400, "Invalid event")

        return handle_event(db, gateway, event)
