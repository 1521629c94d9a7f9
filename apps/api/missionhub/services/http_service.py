"""Retrying transport for payment gateway calls.

Gateway requests are idempotent (GETs, and POSTs carrying an
Idempotency-Key), so connection errors and throttled / 5xx answers are
retried with jittered exponential backoff. The final answer or error goes
back to payment_gateway, which maps it to a GatewayError.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (0-based), with up to 50% jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    if not delay:
        return 0.0
    return delay + random.uniform(0, delay / 2)


def send_to_gateway(
    send: Callable[[], httpx.Response],
    *,
    operation: str,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    sleep: Callable[[float], None] = time.sleep,
) -> httpx.Response:
    """
    Send one gateway request, retrying transient failures.

    Returns the first non-retryable response, or the last response once
    attempts run out. Re-raises the last httpx.RequestError.
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        final = attempt == attempts
        try:
            response = send()
        except httpx.RequestError as exc:
            if final:
                raise
            logger.warning(
                "Gateway %s failed (%s), attempt %d/%d",
                operation,
                exc.__class__.__name__,
                attempt,
                attempts,
            )
        else:
            if final or response.status_code not in RETRYABLE_STATUSES:
                return response
            logger.warning(
                "Gateway %s returned %s, attempt %d/%d",
                operation,
                response.status_code,
                attempt,
                attempts,
            )

        delay = backoff_delay(attempt - 1, base_delay, max_delay)
        if delay:
            sleep(delay)
