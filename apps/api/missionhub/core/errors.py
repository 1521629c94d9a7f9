"""Typed error kinds for mission and payment operations.

Each kind maps to one HTTP outcome so callers can tell them apart:

- AuthorizationDeniedError: actor lacks permission (403, never retried)
- InvalidTransitionError: no edge from the current status (409, never retried)
- PreconditionFailedError: business-rule violation (422, never retried)
- PaymentDependencyFailedError: payment side effect of a mission transition
  failed, transition not applied (424, retry the whole operation)
- GatewayUnavailableError: gateway timeout / transient failure (503, safe to retry)
- AlreadyFinalizedError / CannotCancelSettledError: payment already terminal (409)
- ReviewAlreadyExistsError: one review per reviewer and mission (409)
"""

from typing import Any


class MissionHubError(Exception):
    """Base exception for core service errors."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update({k: v for k, v in self.extra.items() if v is not None})
        return payload


class MissionNotFoundError(MissionHubError):
    """Mission not found."""

    code = "mission_not_found"
    http_status = 404


class PaymentNotFoundError(MissionHubError):
    """Payment not found."""

    code = "payment_not_found"
    http_status = 404


class AuthorizationDeniedError(MissionHubError):
    """Actor is not allowed to perform the operation."""

    code = "authorization_denied"
    http_status = 403


class InvalidTransitionError(MissionHubError):
    """Requested event has no edge from the mission's current status."""

    code = "invalid_transition"
    http_status = 409

    def __init__(self, message: str, *, current_status: str, event: str | None = None):
        super().__init__(message, current_status=current_status, event=event)
        self.current_status = current_status
        self.event = event


class PreconditionFailedError(MissionHubError):
    """Business-rule violation detected before any mutation."""

    code = "precondition_failed"
    http_status = 422


class PaymentAlreadyPendingError(PreconditionFailedError):
    """Another escrow attempt is already pending for the mission."""

    code = "payment_already_pending"
    http_status = 409


class PaymentDependencyFailedError(MissionHubError):
    """Payment step of a mission transition failed; the transition was not applied."""

    code = "payment_dependency_failed"
    http_status = 424

    def __init__(self, message: str, *, payment_id: Any = None, cause: str | None = None):
        super().__init__(
            message,
            payment_id=str(payment_id) if payment_id else None,
            cause=cause,
        )
        self.payment_id = payment_id


class GatewayError(MissionHubError):
    """Payment gateway rejected the request."""

    code = "gateway_error"
    http_status = 502


class GatewayUnavailableError(GatewayError):
    """Payment gateway did not answer or returned a transient error."""

    code = "gateway_unavailable"
    http_status = 503


class AlreadyFinalizedError(MissionHubError):
    """Payment is in a terminal status incompatible with the request."""

    code = "already_finalized"
    http_status = 409

    def __init__(self, message: str, *, current_status: str):
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class CannotCancelSettledError(MissionHubError):
    """Gateway reports the intent already succeeded; a refund is required instead."""

    code = "cannot_cancel_settled"
    http_status = 409


class ReviewNotFoundError(MissionHubError):
    """Review not found."""

    code = "review_not_found"
    http_status = 404


class ReviewAlreadyExistsError(MissionHubError):
    """The reviewer already reviewed this mission."""

    code = "review_already_exists"
    http_status = 409
