"""FastAPI dependencies for the caller identity, database and payment gateway."""

from typing import Generator
from uuid import UUID

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from missionhub.core.config import settings
from missionhub.db.enums import Role
from missionhub.db.session import SessionLocal
from missionhub.schemas.auth import ActorContext
from missionhub.services.payment_gateway import PaymentGateway, build_payment_gateway

# Headers set by the upstream identity service after it validated the token
USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_actor(
    header_user_id: str | None = Header(None, alias=USER_ID_HEADER),
    role: str | None = Header(None, alias=USER_ROLE_HEADER),
) -> ActorContext:
    """
    Build the caller's ActorContext from identity headers.

    Raises:
        HTTPException 401: headers missing or malformed
    """
    if not header_user_id or not role:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        parsed_id = UUID(header_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")
    if not Role.has_value(role):
        raise HTTPException(status_code=401, detail="Invalid role")
    return ActorContext(user_id=parsed_id, role=Role(role))


def get_payment_gateway() -> PaymentGateway:
    if not settings.gateway_configured:
        raise HTTPException(status_code=503, detail="Payment gateway not configured")
    return build_payment_gateway()
