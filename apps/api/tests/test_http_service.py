"""Tests for the retrying gateway transport."""

import httpx
import pytest

from missionhub.services.http_service import backoff_delay, send_to_gateway

INTENTS_URL = "https://api.stripe.test/v1/payment_intents"


def _replay(responses):
    """send() callable returning (or raising) the queued outcomes in order."""
    calls = {"count": 0}

    def send():
        calls["count"] += 1
        outcome = responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return send, calls


def test_intent_create_retried_after_gateway_503():
    req = httpx.Request("POST", INTENTS_URL)
    send, calls = _replay([
        httpx.Response(503, request=req),
        httpx.Response(200, json={"id": "pi_1", "status": "requires_payment_method"}, request=req),
    ])
    slept = []

    response = send_to_gateway(
        send, operation="POST /payment_intents", max_attempts=2, base_delay=0.5, sleep=slept.append
    )

    assert calls["count"] == 2
    assert response.json()["id"] == "pi_1"
    assert len(slept) == 1
    assert 0.5 <= slept[0] <= 0.75


def test_intent_retrieve_retried_after_connection_error():
    req = httpx.Request("GET", f"{INTENTS_URL}/pi_1")
    send, calls = _replay([
        httpx.ConnectError("connection reset", request=req),
        httpx.Response(200, json={"id": "pi_1", "status": "succeeded"}, request=req),
    ])

    response = send_to_gateway(
        send, operation="GET /payment_intents/pi_1", max_attempts=2, base_delay=0
    )

    assert calls["count"] == 2
    assert response.status_code == 200


def test_unreachable_gateway_raises_after_last_attempt():
    req = httpx.Request("POST", f"{INTENTS_URL}/pi_1/cancel")
    send, calls = _replay([httpx.ConnectTimeout("timed out", request=req)] * 2)

    with pytest.raises(httpx.TimeoutException):
        send_to_gateway(send, operation="POST /cancel", max_attempts=2, base_delay=0)

    assert calls["count"] == 2


def test_throttled_gateway_returns_last_answer():
    req = httpx.Request("GET", f"{INTENTS_URL}/pi_1")
    send, calls = _replay([httpx.Response(429, request=req) for _ in range(3)])

    response = send_to_gateway(send, operation="GET /payment_intents/pi_1", base_delay=0)

    assert calls["count"] == 3
    assert response.status_code == 429


def test_card_error_not_retried():
    req = httpx.Request("POST", INTENTS_URL)
    send, calls = _replay([
        httpx.Response(402, json={"error": {"code": "card_declined"}}, request=req),
    ])

    response = send_to_gateway(send, operation="POST /payment_intents", base_delay=0)

    assert calls["count"] == 1
    assert response.status_code == 402


def test_backoff_delay_is_capped():
    assert backoff_delay(0, 0, 4.0) == 0.0
    assert 4.0 <= backoff_delay(10, 0.5, 4.0) <= 6.0
