"""Tests for mission and payment permission predicates."""

import uuid

import pytest

from missionhub.core import authorization
from missionhub.core.errors import AuthorizationDeniedError
from missionhub.db.enums import PaymentAction, Role
from missionhub.db.models import Mission, Payment, Review
from missionhub.schemas.auth import ActorContext

CLIENT = ActorContext(user_id=uuid.uuid4(), role=Role.CLIENT)
ASSISTANT = ActorContext(user_id=uuid.uuid4(), role=Role.ASSISTANT)
OTHER_ASSISTANT = ActorContext(user_id=uuid.uuid4(), role=Role.ASSISTANT)
OTHER_CLIENT = ActorContext(user_id=uuid.uuid4(), role=Role.CLIENT)


def _mission(assistant_id=None) -> Mission:
    return Mission(id=uuid.uuid4(), client_id=CLIENT.user_id, assistant_id=assistant_id)


def _payment() -> Payment:
    return Payment(
        id=uuid.uuid4(),
        client_id=CLIENT.user_id,
        assistant_id=ASSISTANT.user_id,
    )


def test_only_clients_create_missions():
    assert authorization.can_create_mission(CLIENT)
    assert not authorization.can_create_mission(ASSISTANT)


def test_accept_requires_assistant_and_unassigned_mission():
    assert authorization.can_accept(ASSISTANT, _mission())
    assert not authorization.can_accept(CLIENT, _mission())
    assert not authorization.can_accept(ASSISTANT, _mission(assistant_id=OTHER_ASSISTANT.user_id))


def test_act_on_assigned_is_client_or_assigned_assistant():
    mission = _mission(assistant_id=ASSISTANT.user_id)

    assert authorization.can_act_on_assigned(CLIENT, mission)
    assert authorization.can_act_on_assigned(ASSISTANT, mission)
    assert not authorization.can_act_on_assigned(OTHER_ASSISTANT, mission)
    assert not authorization.can_act_on_assigned(OTHER_CLIENT, mission)


def test_unassigned_mission_has_no_assistant_party():
    mission = _mission()

    assert authorization.can_act_on_assigned(CLIENT, mission)
    assert not authorization.can_act_on_assigned(ASSISTANT, mission)


def test_act_as_assistant_only_assigned_one():
    mission = _mission(assistant_id=ASSISTANT.user_id)

    assert authorization.can_act_as_assistant(ASSISTANT, mission)
    assert not authorization.can_act_as_assistant(OTHER_ASSISTANT, mission)
    assert not authorization.can_act_as_assistant(CLIENT, mission)
    assert not authorization.can_act_as_assistant(ASSISTANT, _mission())


def test_view_mission():
    open_mission = _mission()
    assigned = _mission(assistant_id=ASSISTANT.user_id)

    assert authorization.can_view_mission(OTHER_ASSISTANT, open_mission)
    assert not authorization.can_view_mission(OTHER_ASSISTANT, assigned)
    assert not authorization.can_view_mission(OTHER_CLIENT, open_mission)
    assert authorization.can_view_mission(CLIENT, assigned)


@pytest.mark.parametrize(
    "action",
    [PaymentAction.CREATE, PaymentAction.CONFIRM, PaymentAction.REFUND],
)
def test_payer_only_payment_actions(action):
    payment = _payment()

    assert authorization.can_manage_payment(CLIENT, payment, action)
    assert not authorization.can_manage_payment(ASSISTANT, payment, action)


@pytest.mark.parametrize("action", ["cancel", "view"])
def test_shared_payment_actions(action):
    payment = _payment()

    assert authorization.can_manage_payment(CLIENT, payment, action)
    assert authorization.can_manage_payment(ASSISTANT, payment, action)
    assert not authorization.can_manage_payment(OTHER_ASSISTANT, payment, action)


def test_create_payment_requires_mission_client():
    mission = _mission(assistant_id=ASSISTANT.user_id)

    assert authorization.can_create_payment(CLIENT, mission)
    assert not authorization.can_create_payment(OTHER_CLIENT, mission)
    assert not authorization.can_create_payment(ASSISTANT, mission)


def test_require_raises_when_denied():
    authorization.require(True, "ok")
    with pytest.raises(AuthorizationDeniedError, match="nope"):
        authorization.require(False, "nope")


def test_review_reserved_to_parties_of_assigned_mission():
    mission = _mission(assistant_id=ASSISTANT.user_id)

    assert authorization.can_review(CLIENT, mission)
    assert authorization.can_review(ASSISTANT, mission)
    assert not authorization.can_review(OTHER_CLIENT, mission)
    assert not authorization.can_review(CLIENT, _mission())


def test_only_author_edits_review():
    review = Review(reviewer_id=CLIENT.user_id, reviewee_id=ASSISTANT.user_id, rating=4)

    assert authorization.can_edit_review(CLIENT, review)
    assert not authorization.can_edit_review(ASSISTANT, review)
