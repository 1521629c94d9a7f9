"""Payment gateway contract + Stripe REST implementation.

The orchestrator only depends on the four calls of PaymentGateway, so tests
inject an in-memory fake instead of mocking an SDK. StripePaymentGateway
speaks the Stripe REST API directly over httpx:

- form-encoded bodies, bearer secret key
- Idempotency-Key on every mutating call (stable per payment)
- 429/5xx and connection errors retried with backoff, then surfaced as
  GatewayUnavailableError; timeouts never guess success
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from missionhub.core.config import settings
from missionhub.core.errors import GatewayError, GatewayUnavailableError
from missionhub.db.enums import GatewayIntentStatus
from missionhub.services.http_service import RETRYABLE_STATUSES, send_to_gateway

logger = logging.getLogger(__name__)

GATEWAY_RETRY_BASE_DELAY = 0.5
GATEWAY_RETRY_MAX_DELAY = 4.0

# Stripe error code when cancelling an intent that already settled
UNEXPECTED_STATE_CODE = "payment_intent_unexpected_state"
REFUND_ACCEPTED_STATUSES = {"succeeded", "pending"}


@dataclass(frozen=True)
class GatewayIntent:
    intent_id: str
    status: str
    client_secret: str | None = None
    last_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == GatewayIntentStatus.SUCCEEDED.value


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    status: str


class PaymentGateway(Protocol):
    key: str

    def create_intent(
        self,
        *,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> GatewayIntent:
        """Create a payment intent; returns its id and client secret."""

    def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        """Fetch the current intent status."""

    def cancel_intent(self, intent_id: str, *, idempotency_key: str) -> GatewayIntent:
        """Cancel an unsettled intent; returns the intent as the gateway now sees it."""

    def refund(self, intent_id: str, *, reason: str, idempotency_key: str) -> GatewayRefund:
        """Refund a settled intent in full."""


def intent_from_payload(data: dict[str, Any]) -> GatewayIntent:
    last_error = data.get("last_payment_error") or None
    message = None
    if isinstance(last_error, dict):
        message = last_error.get("message") or last_error.get("code")
    return GatewayIntent(
        intent_id=data["id"],
        status=data.get("status", ""),
        client_secret=data.get("client_secret"),
        last_error=message,
    )


class StripePaymentGateway:
    """Stripe-compatible gateway client (sync httpx)."""

    key = "stripe"

    def __init__(
        self,
        api_key: str,
        *,
        api_base: str = "https://api.stripe.com/v1",
        timeout: float = 20.0,
        max_attempts: int = 3,
        base_delay: float = GATEWAY_RETRY_BASE_DELAY,
        max_delay: float = GATEWAY_RETRY_MAX_DELAY,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_base,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        data: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        headers: dict[str, str] = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            with self._client() as client:

                def send() -> httpx.Response:
                    return client.request(method, path, data=data, headers=headers)

                response = send_to_gateway(
                    send,
                    operation=f"{method} {path}",
                    max_attempts=self.max_attempts,
                    base_delay=self.base_delay,
                    max_delay=self.max_delay,
                )
        except httpx.TimeoutException as exc:
            logger.warning("Payment gateway timeout on %s %s", method, path)
            raise GatewayUnavailableError("Payment gateway timed out") from exc
        except httpx.RequestError as exc:
            logger.warning("Payment gateway unreachable on %s %s", method, path)
            raise GatewayUnavailableError(
                f"Payment gateway unreachable: {exc.__class__.__name__}"
            ) from exc

        if response.status_code in RETRYABLE_STATUSES:
            raise GatewayUnavailableError(
                f"Payment gateway returned {response.status_code}"
            )

        if response.status_code >= 400:
            error_code = None
            error_message = None
            try:
                body = response.json()
                error = body.get("error") if isinstance(body, dict) else None
                if isinstance(error, dict):
                    error_code = error.get("code")
                    error_message = error.get("message")
            except ValueError:
                pass
            message = f"Payment gateway error: {response.status_code}"
            if error_message:
                message = f"{message} ({error_message})"
            raise GatewayError(message, gateway_code=error_code)

        return response.json()

    def create_intent(
        self,
        *,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> GatewayIntent:
        data: dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = value
        payload = self._request(
            "POST", "/payment_intents", data=data, idempotency_key=idempotency_key
        )
        return intent_from_payload(payload)

    def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        payload = self._request("GET", f"/payment_intents/{intent_id}")
        return intent_from_payload(payload)

    def cancel_intent(self, intent_id: str, *, idempotency_key: str) -> GatewayIntent:
        try:
            payload = self._request(
                "POST",
                f"/payment_intents/{intent_id}/cancel",
                idempotency_key=idempotency_key,
            )
        except GatewayError as exc:
            if isinstance(exc, GatewayUnavailableError):
                raise
            if exc.extra.get("gateway_code") != UNEXPECTED_STATE_CODE:
                raise
            # Already settled or already cancelled: report what the gateway holds
            logger.info("Cancel rejected for intent %s, re-reading status", intent_id)
            return self.retrieve_intent(intent_id)
        return intent_from_payload(payload)

    def refund(self, intent_id: str, *, reason: str, idempotency_key: str) -> GatewayRefund:
        payload = self._request(
            "POST",
            "/refunds",
            data={
                "payment_intent": intent_id,
                "reason": "requested_by_customer",
                "metadata[reason]": reason,
            },
            idempotency_key=idempotency_key,
        )
        refund = GatewayRefund(refund_id=payload["id"], status=payload.get("status", ""))
        if refund.status not in REFUND_ACCEPTED_STATUSES:
            raise GatewayError(
                f"Payment gateway refused refund (status={refund.status})",
                gateway_code=refund.status,
            )
        return refund


def build_payment_gateway() -> StripePaymentGateway:
    """Build the configured gateway client from settings."""
    return StripePaymentGateway(
        settings.STRIPE_SECRET_KEY,
        api_base=settings.STRIPE_API_BASE,
        timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        max_attempts=settings.PAYMENT_GATEWAY_MAX_ATTEMPTS,
    )
