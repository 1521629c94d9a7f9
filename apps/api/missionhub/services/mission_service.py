"""Mission CRUD (create, edit while pending, delete, browse)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from missionhub.core import authorization
from missionhub.core.config import settings
from missionhub.core.errors import MissionNotFoundError, PreconditionFailedError
from missionhub.core.structured_logging import build_log_context
from missionhub.db.enums import MissionStatus, Role
from missionhub.db.models import Mission, Payment
from missionhub.schemas.auth import ActorContext
from missionhub.schemas.mission import MissionCreate, MissionUpdate
from missionhub.services import status_history_service
from missionhub.utils.money import normalize_currency, to_minor_units

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

# Money fields accepted as decimals and stored as minor units
MONEY_FIELDS = {
    "price_estimate": "price_estimate_minor",
    "cash_advance": "cash_advance_minor",
}

# Columns that a partial update may not clear
REQUIRED_FIELDS = {
    "title",
    "description",
    "priority",
    "requires_car",
    "requires_tools",
    "pickup_address",
    "time_window_start",
    "time_window_end",
}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _resolve_currency(currency: str | None) -> str:
    try:
        code = normalize_currency(currency or settings.DEFAULT_CURRENCY)
    except ValueError as e:
        raise PreconditionFailedError(str(e))
    if code not in settings.supported_currencies_list:
        raise PreconditionFailedError(f"Currency {code} is not accepted")
    return code


def _minor(amount, currency: str, field: str) -> int:
    try:
        value = to_minor_units(amount, currency)
    except ValueError as e:
        raise PreconditionFailedError(str(e))
    if value < 0:
        raise PreconditionFailedError(f"{field} cannot be negative")
    return value


def get_mission(db: Session, mission_id: UUID) -> Mission | None:
    mission = db.get(Mission, mission_id)
    if mission is None or mission.deleted_at is not None:
        return None
    return mission


def require_mission(db: Session, mission_id: UUID) -> Mission:
    mission = get_mission(db, mission_id)
    if not mission:
        raise MissionNotFoundError(f"Mission {mission_id} not found")
    return mission


def get_mission_for_actor(db: Session, mission_id: UUID, actor: ActorContext) -> Mission:
    mission = require_mission(db, mission_id)
    authorization.require(
        authorization.can_view_mission(actor, mission),
        "Not allowed to view this mission",
    )
    return mission


def create_mission(db: Session, actor: ActorContext, data: MissionCreate) -> Mission:
    """
    Create a pending mission owned by the calling client.

    The creation history entry (no prior status -> pending) commits with it.
    """
    authorization.require(
        authorization.can_create_mission(actor),
        "Only clients can create missions",
    )
    if data.time_window_end <= data.time_window_start:
        raise PreconditionFailedError("Time window end must be after its start")

    currency = _resolve_currency(data.currency)
    mission = Mission(
        client_id=actor.user_id,
        title=data.title.strip(),
        description=data.description.strip(),
        category=data.category,
        priority=data.priority.value,
        instructions=data.instructions,
        requirements=data.requirements,
        requires_car=data.requires_car,
        requires_tools=data.requires_tools,
        pickup_address=data.pickup_address.strip(),
        pickup_latitude=data.pickup_latitude,
        pickup_longitude=data.pickup_longitude,
        drop_address=data.drop_address,
        time_window_start=data.time_window_start,
        time_window_end=data.time_window_end,
        currency=currency,
        price_estimate_minor=_minor(data.price_estimate, currency, "Price estimate"),
        cash_advance_minor=_minor(data.cash_advance, currency, "Cash advance"),
        status=MissionStatus.PENDING.value,
    )
    db.add(mission)
    db.flush()
    status_history_service.record_status_change(
        db, mission, None, MissionStatus.PENDING.value, actor, "Mission created"
    )
    db.commit()
    db.refresh(mission)
    logger.info(
        "Mission %s created",
        mission.id,
        extra=build_log_context(mission_id=mission.id, actor_id=actor.user_id),
    )
    return mission


def update_mission(
    db: Session,
    mission_id: UUID,
    actor: ActorContext,
    data: MissionUpdate,
) -> Mission:
    """Edit a mission's details while it is still pending (owning client only)."""
    mission = require_mission(db, mission_id)
    authorization.require(
        authorization.can_manage_mission(actor, mission),
        "Only the mission's client can edit it",
    )
    if mission.status != MissionStatus.PENDING.value:
        raise PreconditionFailedError(
            "Only pending missions can be edited",
            mission_status=mission.status,
        )

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        return mission

    start = changes.get("time_window_start", mission.time_window_start)
    end = changes.get("time_window_end", mission.time_window_end)
    if start is not None and end is not None and _as_utc(end) <= _as_utc(start):
        raise PreconditionFailedError("Time window end must be after its start")

    values = {}
    for field, value in changes.items():
        if value is None and (field in MONEY_FIELDS or field in REQUIRED_FIELDS):
            continue
        if field in MONEY_FIELDS:
            values[MONEY_FIELDS[field]] = _minor(value, mission.currency, field)
        elif field == "priority":
            values[field] = value.value if hasattr(value, "value") else value
        else:
            values[field] = value
    if not values:
        return mission

    result = db.execute(
        update(Mission)
        .where(Mission.id == mission.id, Mission.status == MissionStatus.PENDING.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(mission)
        raise PreconditionFailedError(
            "Only pending missions can be edited",
            mission_status=mission.status,
        )
    db.commit()
    db.refresh(mission)
    logger.info(
        "Mission %s updated: %s",
        mission.id,
        ", ".join(sorted(values)),
        extra=build_log_context(mission_id=mission.id, actor_id=actor.user_id),
    )
    return mission


def delete_mission(db: Session, mission_id: UUID, actor: ActorContext) -> None:
    """
    Delete a pending mission (owning client only).

    The row is only marked deleted, so its status history is kept. Refused
    once any payment references the mission: payments are financial records
    and are never orphaned.
    """
    mission = require_mission(db, mission_id)
    authorization.require(
        authorization.can_manage_mission(actor, mission),
        "Only the mission's client can delete it",
    )
    if mission.status != MissionStatus.PENDING.value:
        raise PreconditionFailedError(
            "Only pending missions can be deleted",
            mission_status=mission.status,
        )
    has_payments = db.execute(
        select(Payment.id).where(Payment.mission_id == mission.id).limit(1)
    ).first()
    if has_payments:
        raise PreconditionFailedError("Missions with payments cannot be deleted")

    result = db.execute(
        update(Mission)
        .where(
            Mission.id == mission.id,
            Mission.status == MissionStatus.PENDING.value,
            Mission.deleted_at.is_(None),
        )
        .values(deleted_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise PreconditionFailedError("Only pending missions can be deleted")
    db.commit()
    logger.info(
        "Mission %s deleted",
        mission_id,
        extra=build_log_context(mission_id=mission_id, actor_id=actor.user_id),
    )


def list_missions(
    db: Session,
    *,
    visible_to: ActorContext | None = None,
    status: str | None = None,
    priority: str | None = None,
    category: str | None = None,
    requires_car: bool | None = None,
    requires_tools: bool | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[Mission], int]:
    """
    List missions with optional filters, newest first.

    visible_to restricts the result to what that actor may see: their own
    missions, plus unassigned ones for assistants.
    """
    query = select(Mission).where(Mission.deleted_at.is_(None))
    if visible_to is not None:
        scope = [Mission.client_id == visible_to.user_id, Mission.assistant_id == visible_to.user_id]
        if visible_to.role == Role.ASSISTANT:
            scope.append(Mission.assistant_id.is_(None))
        query = query.where(or_(*scope))
    if status:
        query = query.where(Mission.status == status)
    if priority:
        query = query.where(Mission.priority == priority)
    if category:
        query = query.where(Mission.category == category)
    if requires_car is not None:
        query = query.where(Mission.requires_car == requires_car)
    if requires_tools is not None:
        query = query.where(Mission.requires_tools == requires_tools)

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    missions = list(
        db.execute(
            query.order_by(Mission.created_at.desc()).limit(limit).offset(max(offset, 0))
        ).scalars()
    )
    return missions, total


def list_user_missions(db: Session, actor: ActorContext) -> list[Mission]:
    """Missions the actor owns (client) or is assigned to (assistant), newest first."""
    column = Mission.client_id if actor.role == Role.CLIENT else Mission.assistant_id
    return list(
        db.execute(
            select(Mission)
            .where(column == actor.user_id, Mission.deleted_at.is_(None))
            .order_by(Mission.created_at.desc())
        ).scalars()
    )
