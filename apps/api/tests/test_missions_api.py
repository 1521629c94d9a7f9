"""End-to-end API tests for missions and payments."""

import uuid

import pytest
from httpx import AsyncClient

from missionhub.core.errors import GatewayUnavailableError
from missionhub.db.enums import GatewayIntentStatus
from conftest import auth_headers


def _mission_payload(**overrides) -> dict:
    payload = {
        "title": "Walk the dog",
        "description": "Forty minutes around the park",
        "pickup_address": "3 Place des Vosges, Paris",
        "time_window_start": "2030-05-01T09:00:00Z",
        "time_window_end": "2030-05-01T11:00:00Z",
        "price_estimate": "25.00",
        "currency": "EUR",
    }
    payload.update(overrides)
    return payload


async def _create(client: AsyncClient, actor) -> dict:
    response = await client.post("/missions", json=_mission_payload(), headers=auth_headers(actor))
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_requests_without_identity_are_rejected(client: AsyncClient):
    response = await client.get("/missions")
    assert response.status_code == 401

    response = await client.get("/missions", headers={"X-User-Id": "nope", "X-User-Role": "client"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_and_read_mission(client: AsyncClient, client_actor):
    mission = await _create(client, client_actor)

    assert mission["status"] == "pending"
    assert mission["assistant_id"] is None
    assert mission["price_estimate"] == "25.00"

    response = await client.get(f"/missions/{mission['id']}", headers=auth_headers(client_actor))
    assert response.status_code == 200
    assert response.json()["title"] == "Walk the dog"


@pytest.mark.asyncio
async def test_create_mission_validates_time_window(client: AsyncClient, client_actor):
    response = await client.post(
        "/missions",
        json=_mission_payload(time_window_end="2030-05-01T08:00:00Z"),
        headers=auth_headers(client_actor),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_assistant_cannot_create_mission(client: AsyncClient, assistant_actor):
    response = await client.post("/missions", json=_mission_payload(), headers=auth_headers(assistant_actor))

    assert response.status_code == 403
    assert response.json()["code"] == "authorization_denied"


@pytest.mark.asyncio
async def test_double_accept_conflict(client: AsyncClient, client_actor, assistant_actor, other_assistant_actor):
    mission = await _create(client, client_actor)

    first = await client.post(f"/missions/{mission['id']}/accept", headers=auth_headers(assistant_actor))
    second = await client.post(f"/missions/{mission['id']}/accept", headers=auth_headers(other_assistant_actor))

    assert first.status_code == 200
    assert first.json()["assistant_id"] == str(assistant_actor.user_id)
    assert second.status_code == 409
    assert second.json()["code"] == "invalid_transition"
    assert second.json()["current_status"] == "accepted"

    history = await client.get(f"/missions/{mission['id']}/history", headers=auth_headers(client_actor))
    assert [(h["from_status"], h["to_status"]) for h in history.json()] == [
        (None, "pending"),
        ("pending", "accepted"),
    ]


@pytest.mark.asyncio
async def test_paid_mission_happy_path(client: AsyncClient, gateway, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    mission_id = mission["id"]
    assistant = auth_headers(assistant_actor)
    payer = auth_headers(client_actor)

    assert (await client.post(f"/missions/{mission_id}/accept", headers=assistant)).status_code == 200
    assert (await client.post(f"/missions/{mission_id}/start", headers=assistant)).status_code == 200

    created = await client.post(
        "/payments/intents",
        json={"mission_id": mission_id, "amount": "25.00"},
        headers=payer,
    )
    assert created.status_code == 201, created.text
    payment = created.json()["payment"]
    assert created.json()["client_secret"]
    assert payment["status"] == "pending"
    assert payment["amount"] == "25.00"
    assert payment["currency"] == "EUR"

    gateway.set_status(payment["provider_intent_id"], GatewayIntentStatus.SUCCEEDED.value)

    completed = await client.post(
        f"/missions/{mission_id}/complete",
        json={"final_price": "25.00"},
        headers=assistant,
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    payment_read = await client.get(f"/payments/{payment['id']}", headers=assistant)
    assert payment_read.json()["status"] == "completed"

    history = await client.get(f"/missions/{mission_id}/history", headers=payer)
    assert [h["to_status"] for h in history.json()] == ["pending", "accepted", "in_progress", "completed"]


@pytest.mark.asyncio
async def test_complete_with_unsettled_payment_fails(client: AsyncClient, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    mission_id = mission["id"]
    assistant = auth_headers(assistant_actor)

    await client.post(f"/missions/{mission_id}/accept", headers=assistant)
    await client.post(f"/missions/{mission_id}/start", headers=assistant)
    await client.post(
        "/payments/intents",
        json={"mission_id": mission_id, "amount": "25.00", "currency": "EUR"},
        headers=auth_headers(client_actor),
    )

    response = await client.post(
        f"/missions/{mission_id}/complete", json={"final_price": "25.00"}, headers=assistant
    )

    assert response.status_code == 424
    assert response.json()["code"] == "payment_dependency_failed"
    current = await client.get(f"/missions/{mission_id}", headers=assistant)
    assert current.json()["status"] == "in_progress"


@pytest.mark.asyncio
async def test_cancel_accepted_mission_voids_escrow(client: AsyncClient, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    mission_id = mission["id"]
    payer = auth_headers(client_actor)

    await client.post(f"/missions/{mission_id}/accept", headers=auth_headers(assistant_actor))
    created = await client.post(
        "/payments/intents", json={"mission_id": mission_id, "amount": "25.00"}, headers=payer
    )
    payment_id = created.json()["payment"]["id"]

    response = await client.post(
        f"/missions/{mission_id}/cancel", json={"reason": "No longer needed"}, headers=payer
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "No longer needed"
    payment = await client.get(f"/payments/{payment_id}", headers=payer)
    assert payment.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_refund_twice(client: AsyncClient, gateway, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    mission_id = mission["id"]
    payer = auth_headers(client_actor)

    await client.post(f"/missions/{mission_id}/accept", headers=auth_headers(assistant_actor))
    created = await client.post(
        "/payments/intents", json={"mission_id": mission_id, "amount": "25.00"}, headers=payer
    )
    payment = created.json()["payment"]
    gateway.set_status(payment["provider_intent_id"], GatewayIntentStatus.SUCCEEDED.value)

    confirmed = await client.post(f"/payments/{payment['id']}/confirm", headers=payer)
    assert confirmed.status_code == 200
    assert confirmed.json()["settled"] is True

    refunded = await client.post(
        f"/payments/{payment['id']}/refund", json={"reason": "Item unavailable"}, headers=payer
    )
    assert refunded.status_code == 200
    assert refunded.json()["status"] == "refunded"

    again = await client.post(
        f"/payments/{payment['id']}/refund", json={"reason": "Again"}, headers=payer
    )
    assert again.status_code == 409
    assert again.json()["code"] == "already_finalized"
    assert len(gateway.calls_of("refund")) == 1


@pytest.mark.asyncio
async def test_second_intent_conflict(client: AsyncClient, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    mission_id = mission["id"]
    payer = auth_headers(client_actor)
    await client.post(f"/missions/{mission_id}/accept", headers=auth_headers(assistant_actor))

    body = {"mission_id": mission_id, "amount": "25.00"}
    assert (await client.post("/payments/intents", json=body, headers=payer)).status_code == 201

    second = await client.post("/payments/intents", json=body, headers=payer)
    assert second.status_code == 409
    assert second.json()["code"] == "payment_already_pending"


@pytest.mark.asyncio
async def test_mine_endpoints(client: AsyncClient, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    await client.post(f"/missions/{mission['id']}/accept", headers=auth_headers(assistant_actor))

    mine = await client.get("/missions/mine", headers=auth_headers(assistant_actor))
    assert [m["id"] for m in mine.json()] == [mission["id"]]

    payments = await client.get("/payments/mine", headers=auth_headers(client_actor))
    assert payments.status_code == 200
    assert payments.json() == []


@pytest.mark.asyncio
async def test_unknown_mission_returns_404(client: AsyncClient, client_actor):
    response = await client.get(f"/missions/{uuid.uuid4()}", headers=auth_headers(client_actor))

    assert response.status_code == 404
    assert response.json()["code"] == "mission_not_found"


@pytest.mark.asyncio
async def test_delete_pending_mission(client: AsyncClient, client_actor):
    mission = await _create(client, client_actor)

    response = await client.delete(f"/missions/{mission['id']}", headers=auth_headers(client_actor))
    assert response.status_code == 204

    response = await client.get(f"/missions/{mission['id']}", headers=auth_headers(client_actor))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_gateway_timeout_on_confirm(client: AsyncClient, gateway, client_actor, assistant_actor):
    mission = await _create(client, client_actor)
    mission_id = mission["id"]
    payer = auth_headers(client_actor)
    await client.post(f"/missions/{mission_id}/accept", headers=auth_headers(assistant_actor))
    created = await client.post(
        "/payments/intents", json={"mission_id": mission_id, "amount": "25.00"}, headers=payer
    )
    payment_id = created.json()["payment"]["id"]
    gateway.fail_with["retrieve_intent"] = GatewayUnavailableError("Payment gateway timed out")

    response = await client.post(f"/payments/{payment_id}/confirm", headers=payer)

    assert response.status_code == 503
    assert response.json()["code"] == "gateway_unavailable"
    payment = await client.get(f"/payments/{payment_id}", headers=payer)
    assert payment.json()["status"] == "pending"
