"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from missionhub.db.enums import Role


class ActorContext(BaseModel):
    """
    Authenticated caller supplied by the upstream identity service.

    Every mutating service call receives one; permissions are always
    re-derived from the stored mission/payment, never from client state.
    """
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    role: Role
