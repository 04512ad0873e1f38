"""
errors.py — Error Taxonomy for the Checkout Workflow

Every network-boundary failure is translated into one of these classes by the
adapter or client that observed it. The orchestrator only ever handles these
types, never raw httpx exceptions.

Hierarchy:
    StorefrontError
    ├── StepValidationError          (local, recovered in place)
    ├── PaymentDeclined              (recoverable, user may retry)
    │   └── PaymentTransportError    (same UI treatment, logged distinctly)
    ├── OrderCommitFailure           (payment already captured, contact support)
    │   ├── OrderCommitRejected
    │   └── OrderCommitTransportExhausted
    ├── BasketSyncError
    ├── CacheStalenessError          (internal, handled by refetch)
    └── CheckoutInProgressError      (logout refused while Settling)
"""

from typing import Dict


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    def __init__(self, message: str, *args):
        super().__init__(message, *args)
        self.message = message


class StepValidationError(StorefrontError):
    """
    Raised when a checkout step's schema rejects the submitted data.

    Attributes:
        field_errors (Dict[str, str]): Field name -> user-facing message.
    """

    def __init__(self, field_errors: Dict[str, str]):
        super().__init__(f"{len(field_errors)} field(s) failed validation")
        self.field_errors = field_errors


class PaymentDeclined(StorefrontError):
    """The payment provider refused the capture."""


class PaymentTransportError(PaymentDeclined):
    """The payment provider could not be reached or answered garbage."""


class OrderCommitFailure(StorefrontError):
    """
    The order could not be persisted after the payment was captured.

    Attributes:
        idempotency_key (str): Key sent with every attempt, needed for reconciliation.
        attempts (int): Number of POST /orders attempts made.
    """

    def __init__(self, message: str, idempotency_key: str, attempts: int):
        super().__init__(message)
        self.idempotency_key = idempotency_key
        self.attempts = attempts


class OrderCommitRejected(OrderCommitFailure):
    """The backend answered with a non-retryable error status."""

    def __init__(self, message: str, idempotency_key: str, attempts: int, status_code: int):
        super().__init__(message, idempotency_key, attempts)
        self.status_code = status_code


class OrderCommitTransportExhausted(OrderCommitFailure):
    """Every attempt within the retry window failed at the transport level."""


class BasketSyncError(StorefrontError):
    """The basket could not be synchronized or its payment token re-issued."""


class CacheStalenessError(StorefrontError):
    """Aggregate catalog data was requested while the cache is marked stale."""


class CheckoutInProgressError(StorefrontError):
    """An operation was refused because a checkout is Settling."""
