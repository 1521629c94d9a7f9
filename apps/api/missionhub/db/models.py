"""SQLAlchemy ORM models for users, missions, payments, status history and reviews."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from missionhub.db.base import Base
from missionhub.db.enums import MissionPriority, MissionStatus, PaymentStatus
from missionhub.utils.money import from_minor_units


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Identity
# =============================================================================

class User(Base):
    """
    Marketplace identity (client or assistant).

    Owned by the identity service; the mission core only reads it.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Missions
# =============================================================================

class Mission(Base):
    """
    An on-demand errand and its lifecycle state.

    Status and the transition timestamps are only written by
    mission_lifecycle_service. Money is stored as integer minor units of
    `currency`. Deleted missions keep their row (deleted_at) so their
    history stays intact.
    """
    __tablename__ = "missions"
    __table_args__ = (
        Index("idx_missions_status_created", "status", "created_at"),
        Index("idx_missions_client", "client_id", "created_at"),
        Index("idx_missions_assistant", "assistant_id", "created_at"),
        CheckConstraint("price_estimate_minor >= 0", name="ck_missions_price_estimate"),
        CheckConstraint("final_price_minor >= 0", name="ck_missions_final_price"),
        CheckConstraint("cash_advance_minor >= 0", name="ck_missions_cash_advance"),
        CheckConstraint("commission_minor >= 0", name="ck_missions_commission"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    assistant_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Description
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20), default=MissionPriority.MEDIUM.value, nullable=False
    )
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    requires_car: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_tools: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Locations (display only; no matching is done on them)
    pickup_address: Mapped[str] = mapped_column(String(255), nullable=False)
    pickup_latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 8), nullable=True)
    pickup_longitude: Mapped[Decimal | None] = mapped_column(Numeric(11, 8), nullable=True)
    drop_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    time_window_start: Mapped[datetime] = mapped_column(nullable=False)
    time_window_end: Mapped[datetime] = mapped_column(nullable=False)

    # Money (minor units)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    price_estimate_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    final_price_minor: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cash_advance_minor: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    commission_minor: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), default=MissionStatus.PENDING.value, nullable=False
    )
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    client: Mapped[User] = relationship(foreign_keys=[client_id])
    assistant: Mapped[User | None] = relationship(foreign_keys=[assistant_id])
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="mission", order_by="Payment.created_at"
    )
    status_history: Mapped[list["MissionStatusHistory"]] = relationship(
        back_populates="mission", order_by="MissionStatusHistory.changed_at"
    )

    @property
    def price_estimate(self) -> Decimal:
        return from_minor_units(self.price_estimate_minor, self.currency)

    @property
    def final_price(self) -> Decimal:
        return from_minor_units(self.final_price_minor or 0, self.currency)

    @property
    def cash_advance(self) -> Decimal:
        return from_minor_units(self.cash_advance_minor or 0, self.currency)

    @property
    def total_amount(self) -> Decimal:
        """Final price plus the cash advanced by the assistant."""
        return from_minor_units(
            (self.final_price_minor or 0) + (self.cash_advance_minor or 0), self.currency
        )

    @property
    def assistant_earnings(self) -> Decimal:
        return from_minor_units(
            (self.final_price_minor or 0) - (self.commission_minor or 0), self.currency
        )


class MissionStatusHistory(Base):
    """
    Append-only audit row, one per applied status change.

    from_status is NULL for the creation entry.
    """
    __tablename__ = "mission_status_history"
    __table_args__ = (
        Index("idx_mission_history_mission", "mission_id", "changed_at"),
        Index("idx_mission_history_actor", "changed_by_user_id", "changed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("missions.id", ondelete="CASCADE"), nullable=False
    )
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    changed_by_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    mission: Mapped[Mission] = relationship(back_populates="status_history")


# =============================================================================
# Payments
# =============================================================================

class Payment(Base):
    """
    One escrow attempt for a mission.

    Financial record: never deleted. At most one row per mission may be
    pending (partial unique index below).
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_mission", "mission_id", "created_at"),
        Index("idx_payments_provider_intent", "provider_intent_id"),
        Index(
            "uq_payments_one_pending_per_mission",
            "mission_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        CheckConstraint("amount_minor > 0", name="ck_payments_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("missions.id", ondelete="RESTRICT"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    assistant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False
    )

    # Gateway references
    provider_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_refund_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    mission: Mapped[Mission] = relationship(back_populates="payments")

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_minor, self.currency)


# =============================================================================
# Reviews
# =============================================================================

class Review(Base):
    """
    Rating one party of a completed mission gives the other.

    One review per reviewer and mission; the reviewee is always the other
    party of the mission.
    """
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("mission_id", "reviewer_id", name="uq_reviews_mission_reviewer"),
        Index("idx_reviews_reviewee", "reviewee_id", "created_at"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("missions.id", ondelete="CASCADE"), nullable=False
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reviewee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    mission: Mapped[Mission] = relationship()
