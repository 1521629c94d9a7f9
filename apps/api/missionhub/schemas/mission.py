"""Pydantic schemas for missions."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from missionhub.db.enums import MissionPriority, MissionStatus


class MissionCreate(BaseModel):
    """Request schema for creating a mission."""

    # Description
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    category: str | None = Field(None, max_length=100)
    priority: MissionPriority = MissionPriority.MEDIUM
    instructions: str | None = None
    requirements: str | None = None
    requires_car: bool = False
    requires_tools: bool = False

    # Locations
    pickup_address: str = Field(..., min_length=1, max_length=255)
    pickup_latitude: Decimal | None = Field(None, ge=-90, le=90)
    pickup_longitude: Decimal | None = Field(None, ge=-180, le=180)
    drop_address: str | None = Field(None, max_length=255)
    time_window_start: datetime
    time_window_end: datetime

    # Money (decimal amounts in `currency`)
    currency: str | None = Field(None, min_length=3, max_length=3)
    price_estimate: Decimal = Field(..., ge=0)
    cash_advance: Decimal = Field(Decimal("0"), ge=0)

    @model_validator(mode="after")
    def validate_time_window(self) -> "MissionCreate":
        if self.time_window_end <= self.time_window_start:
            raise ValueError("time_window_end must be after time_window_start")
        return self


class MissionUpdate(BaseModel):
    """Request schema for updating a pending mission (partial)."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    category: str | None = Field(None, max_length=100)
    priority: MissionPriority | None = None
    instructions: str | None = None
    requirements: str | None = None
    requires_car: bool | None = None
    requires_tools: bool | None = None
    pickup_address: str | None = Field(None, min_length=1, max_length=255)
    pickup_latitude: Decimal | None = Field(None, ge=-90, le=90)
    pickup_longitude: Decimal | None = Field(None, ge=-180, le=180)
    drop_address: str | None = Field(None, max_length=255)
    time_window_start: datetime | None = None
    time_window_end: datetime | None = None
    price_estimate: Decimal | None = Field(None, ge=0)
    cash_advance: Decimal | None = Field(None, ge=0)


class MissionRead(BaseModel):
    """Full mission response."""

    id: UUID
    client_id: UUID
    assistant_id: UUID | None
    status: MissionStatus

    title: str
    description: str
    category: str | None
    priority: MissionPriority
    instructions: str | None
    requirements: str | None
    requires_car: bool
    requires_tools: bool

    pickup_address: str
    pickup_latitude: Decimal | None
    pickup_longitude: Decimal | None
    drop_address: str | None
    time_window_start: datetime
    time_window_end: datetime

    # Money
    currency: str
    price_estimate: Decimal
    final_price: Decimal
    cash_advance: Decimal
    total_amount: Decimal

    # Lifecycle
    accepted_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    disputed_at: datetime | None
    cancellation_reason: str | None
    dispute_reason: str | None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MissionListResponse(BaseModel):
    """Paginated mission list response."""

    items: list[MissionRead]
    total: int
    limit: int
    offset: int


class MissionComplete(BaseModel):
    """Request to complete a mission."""

    final_price: Decimal = Field(..., ge=0)


class MissionReason(BaseModel):
    """Request carrying a cancellation or dispute reason."""

    reason: str = Field(..., min_length=1, max_length=1000)


class MissionStatusHistoryRead(BaseModel):
    """Status history entry response."""

    id: UUID
    from_status: MissionStatus | None
    to_status: MissionStatus
    changed_by_user_id: UUID | None
    changed_by_role: str | None
    comment: str | None
    changed_at: datetime

    model_config = {"from_attributes": True}
