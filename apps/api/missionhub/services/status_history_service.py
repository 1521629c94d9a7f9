"""Mission status history (append-only audit trail)."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from missionhub.db.enums import MissionStatus
from missionhub.db.models import Mission, MissionStatusHistory
from missionhub.schemas.auth import ActorContext


def record_status_change(
    db: Session,
    mission: Mission,
    from_status: str | None,
    to_status: str,
    actor: ActorContext | None,
    comment: str | None = None,
) -> MissionStatusHistory:
    """
    Append a history entry to the caller's unit of work.

    Only flushes: the entry commits (or rolls back) together with the status
    write it documents. actor=None marks a system-triggered change.
    """
    entry = MissionStatusHistory(
        mission_id=mission.id,
        from_status=from_status,
        to_status=MissionStatus(to_status).value,
        changed_by_user_id=actor.user_id if actor else None,
        changed_by_role=actor.role.value if actor else None,
        comment=comment,
    )
    db.add(entry)
    db.flush()
    return entry


def list_status_history(db: Session, mission_id: UUID) -> list[MissionStatusHistory]:
    """Return the audit entries for a mission, oldest first."""
    return list(
        db.execute(
            select(MissionStatusHistory)
            .where(MissionStatusHistory.mission_id == mission_id)
            .order_by(MissionStatusHistory.changed_at.asc())
        ).scalars()
    )


def is_valid_walk(entries: Sequence[MissionStatusHistory]) -> bool:
    """
    Check that a history sequence follows the transition graph.

    The first entry must be the creation entry (-> pending); every later
    entry must follow an edge from the previous status.
    """
    from missionhub.services.mission_lifecycle_service import TRANSITIONS

    if not entries:
        return True
    first = entries[0]
    if first.from_status is not None or first.to_status != MissionStatus.PENDING.value:
        return False

    edges = {
        (source, target)
        for source_states, target in TRANSITIONS.values()
        for source in source_states
    }
    previous = first.to_status
    for entry in entries[1:]:
        if entry.from_status != previous:
            return False
        if (previous, entry.to_status) not in edges:
            return False
        previous = entry.to_status
    return True
