"""
orders.py — Order Commit Client

Creates the order once the payment has been captured. The backend guarantees
exactly-once creation per idempotency key; this client's obligation is to send
the same key for every retry of the same capture.

Failure classes:
    • Transport failure (any httpx.RequestError, HTTP 502/503/504):
      retried with exponential backoff up to a bounded number of attempts.
    • Rejection (any other error status): not retried.
Both surface as OrderCommitFailure, which the orchestrator turns into the
"contact support" state because the money has already moved.
"""

import asyncio
import hashlib
import json
import logging
from typing import Optional

import httpx

from .clients import OrderApiClient
from .config import ORDER_COMMIT_INITIAL_DELAY, ORDER_COMMIT_MAX_ATTEMPTS, ORDER_COMMIT_MAX_DELAY
from .errors import OrderCommitRejected, OrderCommitTransportExhausted
from .models import OrderCommitRequest

log = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {502, 503, 504}


def derive_idempotency_key(basket_id: Optional[str], payment_token: str, attempt: int) -> str:
    """
    Derives the idempotency key for one payment attempt of one basket.

    The payment token is single-use, so (basket, token, attempt) identifies exactly
    one capture. The same inputs always yield the same key.

    Args:
        basket_id (Optional[str]): Server-side basket identifier.
        payment_token (str): Client secret used for the capture.
        attempt (int): Payment attempt counter of the checkout session.
    Returns:
        str: Hex-encoded SHA-256 digest.
    """
    payload = {"basketId": basket_id, "paymentToken": payment_token, "attempt": attempt}
    serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class OrderCommitClient:
    """
    Sends OrderCommitRequests with bounded retry and backoff.

    Args:
        api (OrderApiClient): Order-management API client.
        max_attempts (int): Total attempts, including the first one.
        initial_delay (float): Delay before the first retry, in seconds.
        max_delay (float): Upper bound for a single backoff delay.
        exponential_base (float): Growth factor between delays.
    """
    def __init__(self, api: OrderApiClient,
                 max_attempts: int = ORDER_COMMIT_MAX_ATTEMPTS,
                 initial_delay: float = ORDER_COMMIT_INITIAL_DELAY,
                 max_delay: float = ORDER_COMMIT_MAX_DELAY,
                 exponential_base: float = 2.0):
        self.api = api
        self.max_attempts = max(1, max_attempts)
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    async def commit(self, request: OrderCommitRequest) -> int:
        """
        Creates the order, retrying transport failures with the same idempotency key.

        Args:
            request (OrderCommitRequest): The commit request for a captured payment.
        Returns:
            int: The order number.
        Raises:
            OrderCommitRejected: If the backend rejected the order.
            OrderCommitTransportExhausted: If every attempt failed at the transport level.
        """
        key = request.idempotencyKey
        log_prefix = f"[Orders: {key[:12]}]"
        delay = self.initial_delay
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                order_number = await self.api.create_order(request)
                log.info(f"{log_prefix} Order #{order_number} created (attempt {attempt}).")
                return order_number
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status not in RETRYABLE_STATUS_CODES:
                    log.error(f"{log_prefix} Order rejected by backend (HTTP {status}). Not retrying.")
                    raise OrderCommitRejected(
                        f"Order rejected by backend (HTTP {status})", key, attempt, status
                    ) from e
                last_error = e
            except httpx.RequestError as e:
                last_error = e
            except (ValueError, TypeError) as e:
                # 2xx without an integer order number
                log.error(f"{log_prefix} Unreadable order number in response: {e}")
                raise OrderCommitRejected("Unreadable order number in response", key, attempt, 200) from e

            if attempt < self.max_attempts:
                log.warning(f"{log_prefix} Commit attempt {attempt}/{self.max_attempts} failed "
                            f"({type(last_error).__name__}). Retrying in {delay:.2f}s...")
                await asyncio.sleep(delay)
                delay = min(delay * self.exponential_base, self.max_delay)

        log.error(f"{log_prefix} Commit failed after {self.max_attempts} attempts: {last_error}")
        raise OrderCommitTransportExhausted(
            f"Order service unreachable after {self.max_attempts} attempts", key, self.max_attempts
        ) from last_error
