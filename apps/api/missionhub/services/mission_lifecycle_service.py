"""Mission lifecycle transitions (guard + payment side effect + history)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from missionhub.core import authorization
from missionhub.core.errors import (
    InvalidTransitionError,
    MissionHubError,
    MissionNotFoundError,
    PaymentDependencyFailedError,
    PreconditionFailedError,
)
from missionhub.core.structured_logging import build_log_context
from missionhub.db.enums import MissionEvent, MissionStatus, PaymentStatus
from missionhub.db.models import Mission, Payment
from missionhub.schemas.auth import ActorContext
from missionhub.services import mission_service, payment_service, status_history_service
from missionhub.services.payment_gateway import PaymentGateway
from missionhub.utils.money import to_minor_units

logger = logging.getLogger(__name__)

# event -> (allowed source statuses, target status)
TRANSITIONS: dict[MissionEvent, tuple[frozenset[str], str]] = {
    MissionEvent.ACCEPT: (
        frozenset({MissionStatus.PENDING.value}),
        MissionStatus.ACCEPTED.value,
    ),
    MissionEvent.START: (
        frozenset({MissionStatus.ACCEPTED.value}),
        MissionStatus.IN_PROGRESS.value,
    ),
    MissionEvent.COMPLETE: (
        frozenset({MissionStatus.IN_PROGRESS.value}),
        MissionStatus.COMPLETED.value,
    ),
    MissionEvent.CANCEL: (
        frozenset(
            {
                MissionStatus.PENDING.value,
                MissionStatus.ACCEPTED.value,
                MissionStatus.IN_PROGRESS.value,
            }
        ),
        MissionStatus.CANCELLED.value,
    ),
    MissionEvent.DISPUTE: (
        frozenset({MissionStatus.ACCEPTED.value, MissionStatus.IN_PROGRESS.value}),
        MissionStatus.DISPUTED.value,
    ),
}


def next_status(status: str, event: MissionEvent | str) -> str | None:
    """Target status for `event` from `status`, or None if there is no edge."""
    sources, target = TRANSITIONS[MissionEvent(event)]
    return target if status in sources else None


def allowed_events(status: str) -> list[MissionEvent]:
    return [event for event, (sources, _) in TRANSITIONS.items() if status in sources]


def _load_mission(db: Session, mission_id: UUID) -> Mission:
    return mission_service.require_mission(db, mission_id)


def _check_edge(mission: Mission, event: MissionEvent) -> str:
    target = next_status(mission.status, event)
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {event.value} a mission that is {mission.status}",
            current_status=mission.status,
            event=event.value,
        )
    return target


def _require_reason(reason: str | None, action: str) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise PreconditionFailedError(f"A reason is required to {action} a mission")
    return cleaned


def _payment_dependency_failed(exc: MissionHubError, action: str) -> PaymentDependencyFailedError:
    return PaymentDependencyFailedError(
        f"Mission not {action}: payment step failed ({exc.message})",
        payment_id=exc.extra.get("payment_id"),
        cause=exc.code,
    )


def _apply_transition(
    db: Session,
    mission: Mission,
    *,
    event: MissionEvent,
    expected: str,
    actor: ActorContext,
    values: dict[str, Any] | None = None,
    comment: str | None = None,
    forbid_pending_payment: bool = False,
) -> Mission:
    """
    Conditionally write the new status and its history entry in one commit.

    The UPDATE only matches while the row still holds `expected`; a
    concurrent winner turns this call into InvalidTransitionError carrying
    the status that won.
    """
    target = TRANSITIONS[event][1]
    mission_id = mission.id
    try:
        result = db.execute(
            update(Mission)
            .where(
                Mission.id == mission_id,
                Mission.status == expected,
                Mission.deleted_at.is_(None),
            )
            .values(status=target, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            db.refresh(mission)
            if mission.deleted_at is not None:
                raise MissionNotFoundError(f"Mission {mission_id} not found")
            raise InvalidTransitionError(
                f"Cannot {event.value} a mission that is {mission.status}",
                current_status=mission.status,
                event=event.value,
            )

        if forbid_pending_payment:
            # An escrow opened while the payment step ran must block the write
            pending_id = db.execute(
                select(Payment.id).where(
                    Payment.mission_id == mission_id,
                    Payment.status == PaymentStatus.PENDING.value,
                )
            ).scalar_one_or_none()
            if pending_id is not None:
                db.rollback()
                raise PaymentDependencyFailedError(
                    f"Mission not updated: payment {pending_id} was opened concurrently",
                    payment_id=pending_id,
                    cause=PaymentStatus.PENDING.value,
                )

        status_history_service.record_status_change(
            db, mission, expected, target, actor, comment
        )
        db.commit()
    except MissionHubError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(mission)
    logger.info(
        "Mission %s: %s -> %s (%s)",
        mission_id,
        expected,
        target,
        event.value,
        extra=build_log_context(mission_id=mission_id, actor_id=actor.user_id),
    )
    return mission


# =============================================================================
# Transitions
# =============================================================================

def accept_mission(db: Session, mission_id: UUID, actor: ActorContext) -> Mission:
    """Assign the calling assistant to a pending mission."""
    mission = _load_mission(db, mission_id)
    _check_edge(mission, MissionEvent.ACCEPT)
    authorization.require(
        authorization.can_accept(actor, mission),
        "Only an assistant can accept an unassigned mission",
    )
    now = datetime.now(timezone.utc)
    return _apply_transition(
        db,
        mission,
        event=MissionEvent.ACCEPT,
        expected=mission.status,
        actor=actor,
        values={"assistant_id": actor.user_id, "accepted_at": now},
        comment="Mission accepted",
    )


def start_mission(db: Session, mission_id: UUID, actor: ActorContext) -> Mission:
    mission = _load_mission(db, mission_id)
    _check_edge(mission, MissionEvent.START)
    authorization.require(
        authorization.can_act_as_assistant(actor, mission),
        "Only the assigned assistant can start this mission",
    )
    return _apply_transition(
        db,
        mission,
        event=MissionEvent.START,
        expected=mission.status,
        actor=actor,
        values={"started_at": datetime.now(timezone.utc)},
        comment="Mission started",
    )


def complete_mission(
    db: Session,
    gateway: PaymentGateway,
    mission_id: UUID,
    actor: ActorContext,
    final_price: Decimal | int | str,
) -> Mission:
    """
    Complete an in-progress mission.

    The mission's pending payment must settle first; a mission without
    payment is a cash mission and completes directly.
    """
    mission = _load_mission(db, mission_id)
    _check_edge(mission, MissionEvent.COMPLETE)
    authorization.require(
        authorization.can_act_as_assistant(actor, mission),
        "Only the assigned assistant can complete this mission",
    )
    try:
        final_price_minor = to_minor_units(final_price, mission.currency)
    except ValueError as e:
        raise PreconditionFailedError(str(e))
    if final_price_minor < 0:
        raise PreconditionFailedError("Final price cannot be negative")

    expected = mission.status
    try:
        settled = payment_service.settle_pending_payment(db, gateway, mission)
    except MissionHubError as exc:
        logger.warning(
            "Completion blocked by payment step: %s",
            exc.code,
            extra=build_log_context(mission_id=mission_id, actor_id=actor.user_id),
        )
        raise _payment_dependency_failed(exc, "completed") from exc
    if settled is not None and not settled["settled"]:
        raise PaymentDependencyFailedError(
            "Mission not completed: payment is not settled",
            payment_id=settled["payment"].id,
            cause=settled["status"],
        )

    return _apply_transition(
        db,
        mission,
        event=MissionEvent.COMPLETE,
        expected=expected,
        actor=actor,
        values={
            "final_price_minor": final_price_minor,
            "completed_at": datetime.now(timezone.utc),
        },
        comment="Mission completed",
        forbid_pending_payment=True,
    )


def cancel_mission(
    db: Session,
    gateway: PaymentGateway,
    mission_id: UUID,
    actor: ActorContext,
    reason: str,
) -> Mission:
    """Cancel a mission, voiding its pending escrow first."""
    mission = _load_mission(db, mission_id)
    _check_edge(mission, MissionEvent.CANCEL)
    authorization.require(
        authorization.can_act_on_assigned(actor, mission),
        "Only the mission's client or assigned assistant can cancel it",
    )
    reason = _require_reason(reason, "cancel")

    expected = mission.status
    try:
        payment_service.void_pending_payment(db, gateway, mission)
    except MissionHubError as exc:
        logger.warning(
            "Cancellation blocked by payment step: %s",
            exc.code,
            extra=build_log_context(mission_id=mission_id, actor_id=actor.user_id),
        )
        raise _payment_dependency_failed(exc, "cancelled") from exc

    return _apply_transition(
        db,
        mission,
        event=MissionEvent.CANCEL,
        expected=expected,
        actor=actor,
        values={
            "cancellation_reason": reason,
            "cancelled_at": datetime.now(timezone.utc),
        },
        comment=reason,
        forbid_pending_payment=True,
    )


def dispute_mission(
    db: Session,
    mission_id: UUID,
    actor: ActorContext,
    reason: str,
) -> Mission:
    """Flag a mission for manual resolution. Payments are left untouched."""
    mission = _load_mission(db, mission_id)
    _check_edge(mission, MissionEvent.DISPUTE)
    authorization.require(
        authorization.can_act_on_assigned(actor, mission),
        "Only the mission's client or assigned assistant can dispute it",
    )
    reason = _require_reason(reason, "dispute")
    return _apply_transition(
        db,
        mission,
        event=MissionEvent.DISPUTE,
        expected=mission.status,
        actor=actor,
        values={
            "dispute_reason": reason,
            "disputed_at": datetime.now(timezone.utc),
        },
        comment=reason,
    )
