"""Reviews the parties of a completed mission leave for each other."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from missionhub.core import authorization
from missionhub.core.errors import (
    PreconditionFailedError,
    ReviewAlreadyExistsError,
    ReviewNotFoundError,
)
from missionhub.core.structured_logging import build_log_context
from missionhub.db.enums import MissionStatus
from missionhub.db.models import Review
from missionhub.schemas.auth import ActorContext
from missionhub.schemas.review import ReviewCreate, ReviewUpdate
from missionhub.services import mission_service

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _check_rating(rating: int) -> None:
    if not MIN_RATING <= rating <= MAX_RATING:
        raise PreconditionFailedError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}"
        )


def _visible(review: Review, actor: ActorContext) -> bool:
    return review.is_public or actor.user_id in {review.reviewer_id, review.reviewee_id}


def get_review(db: Session, review_id: UUID) -> Review | None:
    return db.get(Review, review_id)


def require_review(db: Session, review_id: UUID) -> Review:
    review = get_review(db, review_id)
    if not review:
        raise ReviewNotFoundError(f"Review {review_id} not found")
    return review


def get_review_for_actor(db: Session, review_id: UUID, actor: ActorContext) -> Review:
    review = require_review(db, review_id)
    # Private reviews are hidden, not forbidden
    if not _visible(review, actor):
        raise ReviewNotFoundError(f"Review {review_id} not found")
    return review


def create_review(
    db: Session,
    mission_id: UUID,
    actor: ActorContext,
    data: ReviewCreate,
) -> Review:
    """
    Review the other party of a completed mission.

    The reviewee is derived from the mission: the client reviews the
    assistant and vice versa. Each party reviews a mission at most once.
    """
    mission = mission_service.require_mission(db, mission_id)
    authorization.require(
        authorization.can_review(actor, mission),
        "Only the mission's client or assistant can review it",
    )
    if mission.status != MissionStatus.COMPLETED.value:
        raise PreconditionFailedError(
            "Only completed missions can be reviewed",
            mission_status=mission.status,
        )
    _check_rating(data.rating)

    reviewee_id = (
        mission.assistant_id if actor.user_id == mission.client_id else mission.client_id
    )
    review = Review(
        mission_id=mission.id,
        reviewer_id=actor.user_id,
        reviewee_id=reviewee_id,
        rating=data.rating,
        comment=data.comment,
        is_public=data.is_public,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ReviewAlreadyExistsError(
            "This mission was already reviewed by the caller"
        ) from exc
    db.refresh(review)
    logger.info(
        "Review %s left on mission %s (%d/5)",
        review.id,
        mission.id,
        review.rating,
        extra=build_log_context(mission_id=mission.id, actor_id=actor.user_id),
    )
    return review


def update_review(
    db: Session,
    review_id: UUID,
    actor: ActorContext,
    data: ReviewUpdate,
) -> Review:
    review = require_review(db, review_id)
    authorization.require(
        authorization.can_edit_review(actor, review),
        "Only the review's author can edit it",
    )
    changes = data.model_dump(exclude_unset=True)
    if changes.get("rating") is not None:
        _check_rating(changes["rating"])
    for field, value in changes.items():
        if value is None and field != "comment":
            continue
        setattr(review, field, value)
    db.commit()
    db.refresh(review)
    return review


def delete_review(db: Session, review_id: UUID, actor: ActorContext) -> None:
    review = require_review(db, review_id)
    authorization.require(
        authorization.can_edit_review(actor, review),
        "Only the review's author can delete it",
    )
    db.delete(review)
    db.commit()
    logger.info(
        "Review %s deleted",
        review_id,
        extra=build_log_context(mission_id=review.mission_id, actor_id=actor.user_id),
    )


def list_mission_reviews(db: Session, mission_id: UUID, actor: ActorContext) -> list[Review]:
    """Reviews of a mission the actor may see, newest first."""
    mission_service.require_mission(db, mission_id)
    reviews = db.execute(
        select(Review)
        .where(Review.mission_id == mission_id)
        .order_by(Review.created_at.desc())
    ).scalars()
    return [review for review in reviews if _visible(review, actor)]


def list_user_received_reviews(
    db: Session,
    user_id: UUID,
    actor: ActorContext,
    *,
    rating: int | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[Review], int]:
    """
    Reviews a user received, newest first.

    Private reviews are only listed for the user themselves.
    """
    query = select(Review).where(Review.reviewee_id == user_id)
    if actor.user_id != user_id:
        query = query.where(Review.is_public.is_(True))
    if rating is not None:
        query = query.where(Review.rating == rating)

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    reviews = list(
        db.execute(
            query.order_by(Review.created_at.desc()).limit(limit).offset(max(offset, 0))
        ).scalars()
    )
    return reviews, total


def get_user_review_stats(db: Session, user_id: UUID) -> dict:
    """Average rating, count and per-star distribution of a user's public reviews."""
    rows = db.execute(
        select(Review.rating, func.count(Review.id))
        .where(Review.reviewee_id == user_id, Review.is_public.is_(True))
        .group_by(Review.rating)
    ).all()

    distribution = {star: 0 for star in range(MIN_RATING, MAX_RATING + 1)}
    for rating, count in rows:
        distribution[rating] = count
    total = sum(distribution.values())
    average = (
        round(sum(star * count for star, count in distribution.items()) / total, 2)
        if total
        else 0.0
    )
    return {
        "user_id": user_id,
        "average_rating": average,
        "total_reviews": total,
        "rating_distribution": distribution,
    }
