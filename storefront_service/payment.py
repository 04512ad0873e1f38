"""
payment.py — Payment Authorization Adapter

Wraps the payment provider's card confirmation call and translates its result
into one of three outcomes:

    Captured         : money has moved, nothing else is needed
    Declined         : the provider refused, or could not be reached
    NeedsUserAction  : the provider wants more input (field-level messages)

The adapter has no side effects on local stores. Transport failures are reported
as Declined with a generic message but are logged separately, so they can be
told apart from genuine card declines during diagnosis.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Union

import httpx

from .clients import PaymentProviderClient
from .errors import PaymentDeclined, PaymentTransportError
from .models import BillingDetails, PaymentConfirmationRequest
from .steps import CardInput

log = logging.getLogger(__name__)

GENERIC_DECLINE_MESSAGE = "Your payment could not be processed. Please try again."
REQUIRES_ACTION_MESSAGE = "Additional card verification is required."


@dataclass(frozen=True)
class Captured:
    pass


@dataclass(frozen=True)
class Declined:
    error: PaymentDeclined

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def transport_failure(self) -> bool:
        return isinstance(self.error, PaymentTransportError)


@dataclass(frozen=True)
class NeedsUserAction:
    field_errors: Dict[str, str] = field(default_factory=dict)


PaymentOutcome = Union[Captured, Declined, NeedsUserAction]


class PaymentAuthorizationAdapter:
    """
    Translates provider confirmation results into payment outcomes.

    Args:
        provider (PaymentProviderClient): Client for the provider's confirmation API.
    """
    def __init__(self, provider: PaymentProviderClient):
        self.provider = provider

    async def authorize(self, payment_token: str, amount: int, card: CardInput,
                        name_on_card: str) -> PaymentOutcome:
        """
        Confirms one payment attempt.

        Args:
            payment_token (str): Client secret of the basket, bound to `amount`.
            amount (int): Basket total in cents, used for logging only.
            card (CardInput): Card fields as entered; forwarded, never stored.
            name_on_card (str): Cardholder name for the billing details.
        Returns:
            PaymentOutcome: Captured, Declined or NeedsUserAction. Never raises for
            provider or network failures.
        """
        request = PaymentConfirmationRequest(
            clientSecret=payment_token,
            cardElementPayload=card.payload,
            billingDetails=BillingDetails(name=name_on_card),
        )
        log.info(f"[Payment] Confirming payment of {amount} cents.")

        try:
            result = await self.provider.confirm_card_payment(request)
        except httpx.HTTPStatusError as e:
            message = _provider_error_message(e.response) or GENERIC_DECLINE_MESSAGE
            log.warning(f"[Payment] Provider answered HTTP {e.response.status_code}: {message}")
            return Declined(PaymentDeclined(message))
        except httpx.RequestError as e:
            # timeouts, connection failures, undecodable bodies, redirect loops
            log.error(f"[Payment] TRANSPORT ERROR talking to provider ({type(e).__name__}: {e}).")
            return Declined(PaymentTransportError(GENERIC_DECLINE_MESSAGE))
        except ValueError as e:
            # ValidationError and JSONDecodeError both derive from ValueError
            log.error(f"[Payment] TRANSPORT ERROR: unreadable provider response ({type(e).__name__}).")
            return Declined(PaymentTransportError(GENERIC_DECLINE_MESSAGE))

        if result.status == "succeeded":
            log.info(f"[Payment] Payment of {amount} cents captured.")
            return Captured()

        if result.status == "requires_action":
            field_errors = dict(result.fieldErrors)
            if not field_errors:
                field_errors["card"] = result.errorMessage or REQUIRES_ACTION_MESSAGE
            log.info(f"[Payment] Provider requires user action: {sorted(field_errors)}")
            return NeedsUserAction(field_errors)

        message = result.errorMessage or GENERIC_DECLINE_MESSAGE
        log.warning(f"[Payment] Payment declined: {message}")
        return Declined(PaymentDeclined(message))


def _provider_error_message(response: httpx.Response):
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail", body)
    if isinstance(detail, dict):
        return detail.get("errorMessage") or detail.get("message")
    return None
