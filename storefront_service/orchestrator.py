"""
orchestrator.py — Checkout Orchestrator (Settlement State Machine)

This module contains the state machine that takes a basket through checkout.
It coordinates the step controllers, the payment adapter, the order commit
client and the basket/catalog stores in the correct sequence.

Workflow Overview:
    Address → Review → Payment → Settling → Complete(success | failure | support_required)

1. Address and Review advance only when their schema accepts the submitted data.
2. Submitting the Payment step starts Settling, provided a payment adapter and a
   valid basket token exist. Otherwise the submit is refused without side effects.
3. Settling captures the payment, then commits the order. Capture always comes first.
4. On success the basket is cleared and the catalog is flagged stale.
5. A decline ends in Complete(failure), from which the user may retry.
6. A commit failure after capture ends in Complete(support_required). The basket is
   kept and a reconciliation record is written; nothing is retried automatically.

Only one Settling sequence may be in flight per session: submits while the payment
outcome is InProgress are rejected, not queued. Abandoning the session (and logging
out) is refused for the whole of Settling, order commit included.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .basket import BasketStore
from .catalog import CatalogCache
from .errors import BasketSyncError, OrderCommitFailure, PaymentTransportError, StepValidationError
from .logging_config import CheckoutLogAdapter, reconciliation_logger
from .models import LineItem, OrderCommitRequest, ShippingAddress
from .orders import OrderCommitClient, derive_idempotency_key
from .payment import (GENERIC_DECLINE_MESSAGE, Captured, Declined, NeedsUserAction,
                      PaymentAuthorizationAdapter)
from .steps import STEP_CONTROLLERS, CardInput, CheckoutStep, PaymentStepData, StepData

log = logging.getLogger(__name__)

SUCCESS_MESSAGE = "We have received payment - Thank you!"
SUPPORT_MESSAGE = ("We have received your payment but could not create your order. "
                   "Please contact support and quote reference {reference}.")
PAYMENT_UNAVAILABLE_MESSAGE = "Payment is temporarily unavailable. Please try again in a moment."


class PaymentStatus(str, Enum):
    NOT_ATTEMPTED = "NotAttempted"
    IN_PROGRESS = "InProgress"
    CAPTURED = "Captured"
    DECLINED = "Declined"


class CheckoutResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SUPPORT_REQUIRED = "support_required"


class AddressSource(Protocol):
    async def fetch_address(self) -> Optional[dict]:
        ...


@dataclass
class ReconciliationRecord:
    """
    Everything support needs to match a captured payment to a missing order.

    Attributes:
        idempotency_key (str): Key sent with every commit attempt.
        amount (int): Captured amount in cents.
        payment_token (str): Client secret used for the capture.
        basket_id (Optional[str]): Server-side basket identifier.
        items (List[LineItem]): Basket lines at capture time.
        shipping_address (ShippingAddress): Address the order was meant for.
        reason (str): Why the commit failed.
        attempts (int): Number of commit attempts made.
    """
    idempotency_key: str
    amount: int
    payment_token: str
    basket_id: Optional[str]
    items: List[LineItem]
    shipping_address: ShippingAddress
    reason: str
    attempts: int


@dataclass
class CheckoutState:
    session_id: str
    active_step: CheckoutStep = CheckoutStep.ADDRESS
    step_data: Dict[CheckoutStep, StepData] = field(default_factory=dict)
    prefill: Dict[str, Any] = field(default_factory=dict)
    payment_outcome: PaymentStatus = PaymentStatus.NOT_ATTEMPTED
    payment_attempt: int = 0
    order_number: Optional[int] = None
    result: Optional[CheckoutResult] = None
    message: str = ""
    field_errors: Dict[str, str] = field(default_factory=dict)
    failed_step: Optional[CheckoutStep] = None
    reconciliation: Optional[ReconciliationRecord] = None

    @property
    def submit_enabled(self) -> bool:
        return (self.payment_outcome != PaymentStatus.IN_PROGRESS
                and self.active_step <= CheckoutStep.PAYMENT)

    @property
    def back_enabled(self) -> bool:
        return (self.payment_outcome != PaymentStatus.IN_PROGRESS
                and self.active_step in (CheckoutStep.REVIEW, CheckoutStep.PAYMENT))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "activeStep": int(self.active_step),
            "stepName": self.active_step.name.lower(),
            "stepData": {
                step.name.lower(): data.model_dump(exclude={"step"})
                for step, data in self.step_data.items()
            },
            "prefill": self.prefill,
            "paymentOutcome": self.payment_outcome.value,
            "orderNumber": self.order_number,
            "result": self.result.value if self.result else None,
            "message": self.message,
            "fieldErrors": self.field_errors,
            "submitEnabled": self.submit_enabled,
            "backEnabled": self.back_enabled,
            "supportReference": (self.reconciliation.idempotency_key[:12]
                                 if self.reconciliation else None),
        }


class CheckoutOrchestrator:
    """
    One instance per checkout session.

    Args:
        basket (BasketStore): Process-wide basket store.
        catalog (CatalogCache): Process-wide catalog cache.
        address_source (AddressSource): Provides the saved address for prefill.
        payment (Optional[PaymentAuthorizationAdapter]): Payment adapter; None while
            the provider is not ready, in which case Payment→Settling is refused.
        orders (OrderCommitClient): Order commit client.
        session_id (Optional[str]): Identifier used in log lines.
    """
    def __init__(self, basket: BasketStore, catalog: CatalogCache, address_source: AddressSource,
                 payment: Optional[PaymentAuthorizationAdapter], orders: OrderCommitClient,
                 session_id: Optional[str] = None):
        self.basket = basket
        self.catalog = catalog
        self.address_source = address_source
        self.payment = payment
        self.orders = orders
        self.session_id = session_id or uuid.uuid4().hex
        self.state: Optional[CheckoutState] = None
        self.log = CheckoutLogAdapter(log, self.session_id)

    async def begin(self) -> CheckoutState:
        """
        Starts the session and pre-fills the address step from the account.
        A failing prefill is logged and otherwise ignored.
        """
        self.state = CheckoutState(session_id=self.session_id)
        self.log.info(f"Checkout started (basket total {self.basket.total}).")
        try:
            address = await self.address_source.fetch_address()
        except httpx.HTTPError as e:
            self.log.warning(f"Address prefill failed: {e}")
            address = None
        if self.state is not None and address:
            self.state.prefill = {**address, "saveAddress": False}
        return self.state

    async def submit(self, data: Optional[Dict[str, Any]], card: Optional[CardInput] = None) -> CheckoutState:
        """
        Validates the active step and advances; on the Payment step, settles.

        Args:
            data (Optional[Dict[str, Any]]): Raw field values for the active step.
            card (Optional[CardInput]): Card fields, only used on the Payment step.
        Returns:
            CheckoutState: The (possibly unchanged) session state.
        """
        state = self._require_state()
        if state.payment_outcome == PaymentStatus.IN_PROGRESS:
            self.log.warning("Submit rejected: settlement already in progress.")
            return state
        if state.active_step > CheckoutStep.PAYMENT:
            self.log.warning(f"Submit ignored in step {state.active_step.name}.")
            return state

        step = state.active_step
        controller = STEP_CONTROLLERS[step]
        try:
            validated = controller.validate(data)
            if step == CheckoutStep.PAYMENT:
                card = controller.validate_card(card)
        except StepValidationError as e:
            state.field_errors = e.field_errors
            self.log.info(f"{controller.label}: validation failed for {sorted(e.field_errors)}.")
            return state

        state.field_errors = {}
        state.step_data[step] = validated

        if step < CheckoutStep.PAYMENT:
            state.active_step = CheckoutStep(step + 1)
            return state

        if self.payment is None:
            self.log.warning("Settlement refused: payment provider not ready.")
            state.message = PAYMENT_UNAVAILABLE_MESSAGE
            return state
        if not self.basket.has_valid_token():
            self.log.warning("Settlement refused: basket has no valid payment token.")
            state.message = PAYMENT_UNAVAILABLE_MESSAGE
            return state

        await self._settle(validated, card)
        return state

    def back(self) -> CheckoutState:
        state = self._require_state()
        if not state.back_enabled:
            self.log.info(f"Back navigation refused in step {state.active_step.name}.")
            return state
        state.active_step = CheckoutStep(state.active_step - 1)
        state.field_errors = {}
        return state

    async def retry(self, from_start: bool = False) -> CheckoutState:
        """
        Leaves Complete(failure) for the Payment step (or Address when from_start).

        The used payment token is replaced first. Complete(success) and
        Complete(support_required) are terminal and cannot be retried.
        """
        state = self._require_state()
        if state.result != CheckoutResult.FAILURE:
            self.log.warning(f"Retry refused (result: {state.result}).")
            return state
        state.message = ""
        try:
            await self.basket.refresh_token()
        except BasketSyncError as e:
            self.log.error(f"Payment token refresh failed: {e.message}")
            state.message = PAYMENT_UNAVAILABLE_MESSAGE
        state.active_step = CheckoutStep.ADDRESS if from_start else (state.failed_step or CheckoutStep.PAYMENT)
        state.result = None
        state.payment_outcome = PaymentStatus.NOT_ATTEMPTED
        state.field_errors = {}
        self.log.info(f"Retrying from step {state.active_step.name}.")
        return state

    @property
    def settling(self) -> bool:
        """True from the start of payment capture until the order commit has finished."""
        return self.state is not None and self.state.active_step == CheckoutStep.SETTLING

    def abandon(self) -> bool:
        """Discards the session state. Refused while Settling (capture or order commit)."""
        if self.settling:
            self.log.warning("Abandon refused: settlement in progress.")
            return False
        if self.state is not None and self.state.reconciliation is not None:
            reconciliation_logger().critical(
                f"[Checkout: {self.session_id[:8]}] Session with unreconciled payment abandoned: "
                f"{self.state.reconciliation}"
            )
        self.state = None
        self.log.info("Checkout abandoned.")
        return True

    async def _settle(self, payment_data: PaymentStepData, card: CardInput):
        state = self.state
        # set before the first await: this is the single-flight guard
        state.payment_outcome = PaymentStatus.IN_PROGRESS
        state.active_step = CheckoutStep.SETTLING
        state.payment_attempt += 1
        state.message = ""
        basket = self.basket.basket
        token = basket.paymentToken
        self.log.info(f"Settling attempt {state.payment_attempt}: capturing {basket.total} cents.")

        # Money movement is not abortable: a cancelled caller still waits for the capture.
        cancelled = False
        capture = asyncio.ensure_future(
            self.payment.authorize(token, basket.total, card, payment_data.nameOnCard)
        )
        try:
            try:
                outcome = await asyncio.shield(capture)
            except asyncio.CancelledError:
                self.log.warning("Cancellation ignored while capturing payment.")
                cancelled = True
                outcome = await capture
        except Exception:
            self.log.exception("Unexpected error while capturing payment; treated as declined.")
            outcome = Declined(PaymentTransportError(GENERIC_DECLINE_MESSAGE))

        if isinstance(outcome, NeedsUserAction):
            state.payment_outcome = PaymentStatus.NOT_ATTEMPTED
            state.active_step = CheckoutStep.PAYMENT
            state.field_errors = outcome.field_errors
        elif isinstance(outcome, Captured):
            state.payment_outcome = PaymentStatus.CAPTURED
            self.basket.invalidate_token()
            await self._commit_order(state, basket, token)
        else:
            self._fail_payment(state, outcome)

        if cancelled:
            raise asyncio.CancelledError()

    def _fail_payment(self, state: CheckoutState, outcome: Declined):
        if outcome.transport_failure:
            self.log.error("Payment provider unreachable; reported to user as declined.")
        else:
            self.log.warning(f"Payment declined: {outcome.message}")
        state.payment_outcome = PaymentStatus.DECLINED
        state.active_step = CheckoutStep.COMPLETE
        state.result = CheckoutResult.FAILURE
        state.failed_step = CheckoutStep.PAYMENT
        state.message = outcome.message
        self.basket.invalidate_token()

    async def _commit_order(self, state: CheckoutState, basket, token: str):
        address_data = state.step_data[CheckoutStep.ADDRESS]
        request = OrderCommitRequest(
            idempotencyKey=derive_idempotency_key(basket.basketId, token, state.payment_attempt),
            shippingAddress=address_data.shipping_address(),
            saveAddress=address_data.saveAddress,
        )
        try:
            order_number = await self.orders.commit(request)
        except OrderCommitFailure as e:
            self._require_support(state, basket, token, request, e.message, e.attempts)
            return
        except asyncio.CancelledError:
            self._require_support(state, basket, token, request, "Checkout cancelled during order commit", 0)
            raise
        except Exception as e:
            self.log.exception("Unexpected error while committing the order.")
            self._require_support(state, basket, token, request,
                                  f"Unexpected error during order commit ({type(e).__name__})", 0)
            return

        state.order_number = order_number
        state.result = CheckoutResult.SUCCESS
        state.active_step = CheckoutStep.COMPLETE
        state.message = SUCCESS_MESSAGE
        await self.basket.clear()
        self.catalog.mark_stale()
        self.log.info(f"Order #{order_number} committed. Checkout complete.")

    def _require_support(self, state: CheckoutState, basket, token: str, request: OrderCommitRequest,
                         reason: str, attempts: int):
        state.reconciliation = ReconciliationRecord(
            idempotency_key=request.idempotencyKey,
            amount=basket.total,
            payment_token=token,
            basket_id=basket.basketId,
            items=list(basket.items),
            shipping_address=request.shippingAddress,
            reason=reason,
            attempts=attempts,
        )
        state.result = CheckoutResult.SUPPORT_REQUIRED
        state.active_step = CheckoutStep.COMPLETE
        state.message = SUPPORT_MESSAGE.format(reference=request.idempotencyKey[:12])
        reconciliation_logger().critical(
            f"[Checkout: {self.session_id[:8]}] CRITICAL: payment of {basket.total} cents captured "
            f"but order not created ({reason}). MANUAL RECONCILIATION REQUIRED "
            f"(key {request.idempotencyKey}, record {state.reconciliation})."
        )

    def _require_state(self) -> CheckoutState:
        if self.state is None:
            raise RuntimeError("Checkout session has not been started")
        return self.state
