"""Mission review API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from missionhub.core.deps import get_current_actor, get_db
from missionhub.schemas.auth import ActorContext
from missionhub.schemas.review import (
    ReviewCreate,
    ReviewListResponse,
    ReviewRead,
    ReviewStats,
    ReviewUpdate,
)
from missionhub.services import review_service

router = APIRouter()


@router.post(
    "/missions/{mission_id}",
    response_model=ReviewRead,
    status_code=status.HTTP_201_CREATED,
)
def create_review(
    mission_id: UUID,
    data: ReviewCreate,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Review the other party of a completed mission."""
    return review_service.create_review(db, mission_id, actor, data)


@router.get("/missions/{mission_id}", response_model=list[ReviewRead])
def list_mission_reviews(
    mission_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return review_service.list_mission_reviews(db, mission_id, actor)


@router.get("/users/{user_id}", response_model=ReviewListResponse)
def list_user_reviews(
    user_id: UUID,
    rating: int | None = Query(None, ge=1, le=5),
    limit: int = Query(review_service.DEFAULT_PAGE_SIZE, ge=1, le=review_service.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Reviews a user received, newest first."""
    reviews, total = review_service.list_user_received_reviews(
        db, user_id, actor, rating=rating, limit=limit, offset=offset
    )
    return ReviewListResponse(items=reviews, total=total, limit=limit, offset=offset)


@router.get("/users/{user_id}/stats", response_model=ReviewStats)
def get_user_review_stats(
    user_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return review_service.get_user_review_stats(db, user_id)


@router.get("/{review_id}", response_model=ReviewRead)
def get_review(
    review_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return review_service.get_review_for_actor(db, review_id, actor)


@router.patch("/{review_id}", response_model=ReviewRead)
def update_review(
    review_id: UUID,
    data: ReviewUpdate,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Edit a review (author only)."""
    return review_service.update_review(db, review_id, actor, data)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(
    review_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    review_service.delete_review(db, review_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
