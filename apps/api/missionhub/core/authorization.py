"""Mission and payment access control - centralized permission predicates.

Every mutating service call goes through these predicates, re-derived from
the stored mission/payment at the moment of the call:

- Creating missions: clients only
- Accepting: assistants, only while no assistant is assigned
- Acting on an assigned mission: its client or its assigned assistant
- Payments: either party may view/cancel; create, confirm and refund are
  reserved to the paying client
- Reviews: parties of a mission review each other; only the author edits
"""

from missionhub.core.errors import AuthorizationDeniedError
from missionhub.db.enums import PaymentAction, Role
from missionhub.db.models import Mission, Payment, Review
from missionhub.schemas.auth import ActorContext

# Payment actions reserved to the payer (the mission's client)
PAYER_ONLY_ACTIONS = frozenset(
    {PaymentAction.CREATE, PaymentAction.CONFIRM, PaymentAction.REFUND}
)


def can_create_mission(actor: ActorContext) -> bool:
    return actor.role == Role.CLIENT


def can_accept(actor: ActorContext, mission: Mission) -> bool:
    return actor.role == Role.ASSISTANT and mission.assistant_id is None


def can_act_on_assigned(actor: ActorContext, mission: Mission) -> bool:
    """Client or assigned assistant (cancel, dispute)."""
    return actor.user_id in {mission.client_id, mission.assistant_id}


def can_act_as_assistant(actor: ActorContext, mission: Mission) -> bool:
    """Only the assigned assistant (start, complete)."""
    return (
        actor.role == Role.ASSISTANT
        and mission.assistant_id is not None
        and actor.user_id == mission.assistant_id
    )


def can_manage_mission(actor: ActorContext, mission: Mission) -> bool:
    """Only the owning client (edit, delete)."""
    return actor.role == Role.CLIENT and actor.user_id == mission.client_id


def can_view_mission(actor: ActorContext, mission: Mission) -> bool:
    """Parties of the mission, or any assistant while it is still open for acceptance."""
    if can_act_on_assigned(actor, mission):
        return True
    return actor.role == Role.ASSISTANT and mission.assistant_id is None


def can_create_payment(actor: ActorContext, mission: Mission) -> bool:
    return actor.role == Role.CLIENT and actor.user_id == mission.client_id


def can_manage_payment(
    actor: ActorContext,
    payment: Payment,
    action: PaymentAction | str,
) -> bool:
    action = PaymentAction(action)
    if action in PAYER_ONLY_ACTIONS:
        return actor.user_id == payment.client_id
    return actor.user_id in {payment.client_id, payment.assistant_id}


def can_review(actor: ActorContext, mission: Mission) -> bool:
    """Client or assigned assistant of the mission."""
    return mission.assistant_id is not None and can_act_on_assigned(actor, mission)


def can_edit_review(actor: ActorContext, review: Review) -> bool:
    return actor.user_id == review.reviewer_id


def require(allowed: bool, message: str) -> None:
    """Raise AuthorizationDeniedError unless the predicate held."""
    if not allowed:
        raise AuthorizationDeniedError(message)
