"""Pydantic schemas for mission reviews."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    """Review of the other party of a completed mission."""

    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)
    is_public: bool = True


class ReviewUpdate(BaseModel):
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)
    is_public: bool | None = None


class ReviewRead(BaseModel):
    id: UUID
    mission_id: UUID
    reviewer_id: UUID
    reviewee_id: UUID
    rating: int
    comment: str | None
    is_public: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReviewListResponse(BaseModel):
    items: list[ReviewRead]
    total: int
    limit: int
    offset: int


class ReviewStats(BaseModel):
    """Aggregate over a user's public reviews."""

    user_id: UUID
    average_rating: float
    total_reviews: int
    rating_distribution: dict[int, int]
