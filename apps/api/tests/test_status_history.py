"""Tests for the mission status audit trail."""

import uuid

from missionhub.db.models import MissionStatusHistory
from missionhub.services import mission_service, status_history_service
from conftest import mission_data


def _walk(*pairs):
    return [
        MissionStatusHistory(mission_id=uuid.uuid4(), from_status=src, to_status=dst)
        for src, dst in pairs
    ]


def test_creation_records_initial_entry(db, client_actor):
    mission = mission_service.create_mission(db, client_actor, mission_data())

    entries = status_history_service.list_status_history(db, mission.id)

    assert len(entries) == 1
    assert entries[0].from_status is None
    assert entries[0].to_status == "pending"
    assert entries[0].changed_by_user_id == client_actor.user_id
    assert entries[0].comment == "Mission created"


def test_record_status_change_joins_caller_transaction(db, pending_mission, assistant_actor):
    status_history_service.record_status_change(
        db, pending_mission, "pending", "accepted", assistant_actor, "Uncommitted"
    )
    db.rollback()

    entries = status_history_service.list_status_history(db, pending_mission.id)
    assert [e.comment for e in entries] == ["Mission created"]


def test_system_change_has_no_actor(db, pending_mission):
    entry = status_history_service.record_status_change(
        db, pending_mission, "pending", "cancelled", None, "Expired"
    )

    assert entry.changed_by_user_id is None
    assert entry.changed_by_role is None


def test_valid_walks():
    assert status_history_service.is_valid_walk([])
    assert status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "accepted"), ("accepted", "in_progress"),
              ("in_progress", "completed"))
    )
    assert status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "cancelled"))
    )
    assert status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "accepted"), ("accepted", "disputed"))
    )


def test_invalid_walks():
    # Does not start with creation
    assert not status_history_service.is_valid_walk(_walk(("pending", "accepted")))
    # Skips a state
    assert not status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "in_progress"))
    )
    # Broken chain
    assert not status_history_service.is_valid_walk(
        _walk((None, "pending"), ("accepted", "in_progress"))
    )
    # Leaves a terminal state
    assert not status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "cancelled"), ("cancelled", "pending"))
    )
    # Same-status entries are not transitions
    assert not status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "pending"))
    )
    assert not status_history_service.is_valid_walk(
        _walk((None, "pending"), ("pending", "accepted"), ("accepted", "accepted"))
    )
