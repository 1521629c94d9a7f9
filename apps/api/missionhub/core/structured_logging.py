"""Structured logging helpers (payment-detail safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    mission_id: UUID | str | None = None,
    payment_id: UUID | str | None = None,
    actor_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict; never carries amounts or client secrets."""
    context: dict[str, Any] = {}
    if mission_id:
        context["mission_id"] = str(mission_id)
    if payment_id:
        context["payment_id"] = str(payment_id)
    if actor_id:
        context["actor_id"] = str(actor_id)
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
