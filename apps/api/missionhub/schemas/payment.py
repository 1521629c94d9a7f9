"""Pydantic schemas for escrow payments."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from missionhub.db.enums import PaymentStatus


class PaymentIntentCreate(BaseModel):
    """Request to open an escrow for a mission."""

    mission_id: UUID
    amount: Decimal = Field(..., gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)


class PaymentRefund(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PaymentRead(BaseModel):
    """Payment response."""

    id: UUID
    mission_id: UUID
    client_id: UUID
    assistant_id: UUID
    amount: Decimal
    currency: str
    status: PaymentStatus
    provider_intent_id: str | None
    failure_reason: str | None
    refund_reason: str | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    failed_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentIntentRead(BaseModel):
    """Created escrow plus the secret the payer's client needs to pay it."""

    payment: PaymentRead
    client_secret: str | None


class PaymentConfirmRead(BaseModel):
    status: PaymentStatus
    settled: bool  # False: gateway still processing, confirm again later
    message: str | None
    payment: PaymentRead
