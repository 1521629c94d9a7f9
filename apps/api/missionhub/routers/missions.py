"""Missions API endpoints (CRUD + lifecycle transitions)."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from missionhub.core import authorization
from missionhub.core.deps import get_current_actor, get_db, get_payment_gateway
from missionhub.db.enums import MissionPriority, MissionStatus
from missionhub.schemas.auth import ActorContext
from missionhub.schemas.mission import (
    MissionComplete,
    MissionCreate,
    MissionListResponse,
    MissionRead,
    MissionReason,
    MissionStatusHistoryRead,
    MissionUpdate,
)
from missionhub.schemas.payment import PaymentRead
from missionhub.services import (
    mission_lifecycle_service,
    mission_service,
    payment_service,
    status_history_service,
)
from missionhub.services.payment_gateway import PaymentGateway

router = APIRouter()


# =============================================================================
# CRUD
# =============================================================================


@router.post("", response_model=MissionRead, status_code=status.HTTP_201_CREATED)
def create_mission(
    data: MissionCreate,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Create a mission (clients only)."""
    return mission_service.create_mission(db, actor, data)


@router.get("", response_model=MissionListResponse)
def list_missions(
    status_filter: MissionStatus | None = Query(None, alias="status"),
    priority: MissionPriority | None = None,
    category: str | None = None,
    requires_car: bool | None = None,
    requires_tools: bool | None = None,
    limit: int = Query(mission_service.DEFAULT_PAGE_SIZE, ge=1, le=mission_service.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Browse missions visible to the caller, newest first."""
    missions, total = mission_service.list_missions(
        db,
        visible_to=actor,
        status=status_filter.value if status_filter else None,
        priority=priority.value if priority else None,
        category=category,
        requires_car=requires_car,
        requires_tools=requires_tools,
        limit=limit,
        offset=offset,
    )
    return MissionListResponse(items=missions, total=total, limit=limit, offset=offset)


@router.get("/mine", response_model=list[MissionRead])
def list_my_missions(
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Missions the caller owns (client) or performs (assistant)."""
    return mission_service.list_user_missions(db, actor)


@router.get("/{mission_id}", response_model=MissionRead)
def get_mission(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return mission_service.get_mission_for_actor(db, mission_id, actor)


@router.patch("/{mission_id}", response_model=MissionRead)
def update_mission(
    mission_id: UUID,
    data: MissionUpdate,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Edit a pending mission (owning client only)."""
    return mission_service.update_mission(db, mission_id, actor, data)


@router.delete("/{mission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_mission(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    mission_service.delete_mission(db, mission_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Lifecycle
# =============================================================================


@router.post("/{mission_id}/accept", response_model=MissionRead)
def accept_mission(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Accept a pending mission as the calling assistant."""
    return mission_lifecycle_service.accept_mission(db, mission_id, actor)


@router.post("/{mission_id}/start", response_model=MissionRead)
def start_mission(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return mission_lifecycle_service.start_mission(db, mission_id, actor)


@router.post("/{mission_id}/complete", response_model=MissionRead)
def complete_mission(
    mission_id: UUID,
    data: MissionComplete,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Complete a mission; its pending payment is settled first."""
    return mission_lifecycle_service.complete_mission(
        db, gateway, mission_id, actor, data.final_price
    )


@router.post("/{mission_id}/cancel", response_model=MissionRead)
def cancel_mission(
    mission_id: UUID,
    data: MissionReason,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Cancel a mission; its pending payment is voided first."""
    return mission_lifecycle_service.cancel_mission(db, gateway, mission_id, actor, data.reason)


@router.post("/{mission_id}/dispute", response_model=MissionRead)
def dispute_mission(
    mission_id: UUID,
    data: MissionReason,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return mission_lifecycle_service.dispute_mission(db, mission_id, actor, data.reason)


# =============================================================================
# Related records
# =============================================================================


@router.get("/{mission_id}/history", response_model=list[MissionStatusHistoryRead])
def get_mission_history(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Status audit trail, oldest first."""
    mission_service.get_mission_for_actor(db, mission_id, actor)
    return status_history_service.list_status_history(db, mission_id)


@router.get("/{mission_id}/payments", response_model=list[PaymentRead])
def list_mission_payments(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    mission = mission_service.require_mission(db, mission_id)
    authorization.require(
        authorization.can_act_on_assigned(actor, mission),
        "Not allowed to view this mission's payments",
    )
    return payment_service.list_mission_payments(db, mission_id)
