"""
steps.py — Checkout Step Controllers and Their Validation Schemas

The checkout form is a linear sequence of three user-facing steps followed by
two internal states. Each user-facing step owns exactly one Pydantic schema;
validated payloads form a tagged union keyed by the `step` literal, so a payload
can never be stored under the wrong step.

Steps:
    0. Address : shipping address and the "save address" flag
    1. Review  : nothing to enter, the user confirms the basket
    2. Payment : cardholder name; card fields are checked for completeness only
    3. Settling: internal, payment capture and order commit in flight
    4. Complete: internal, terminal or retryable outcome
"""

from enum import IntEnum
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import StepValidationError
from .models import ShippingAddress


class CheckoutStep(IntEnum):
    ADDRESS = 0
    REVIEW = 1
    PAYMENT = 2
    SETTLING = 3
    COMPLETE = 4


STEP_LABELS = {
    CheckoutStep.ADDRESS: "Shipping address",
    CheckoutStep.REVIEW: "Review your order",
    CheckoutStep.PAYMENT: "Payment details",
}


class _StepSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class AddressStepData(_StepSchema):
    step: Literal["address"] = "address"
    fullName: str = Field(..., min_length=1)
    address1: str = Field(..., min_length=1)
    address2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    saveAddress: bool = False

    def shipping_address(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump(exclude={"step", "saveAddress"}))


class ReviewStepData(_StepSchema):
    step: Literal["review"] = "review"


class PaymentStepData(_StepSchema):
    step: Literal["payment"] = "payment"
    nameOnCard: str = Field(..., min_length=1)


StepData = Union[AddressStepData, ReviewStepData, PaymentStepData]


class CardInput(BaseModel):
    """
    Card fields as entered by the user.

    The payload is handed straight to the payment provider and is never stored
    in the checkout state or written to logs.

    Attributes:
        payload (Dict[str, Any]): Opaque card element payload.
        complete (Dict[str, bool]): Completeness of cardNumber, cardExpiry and cardCvc.
    """
    payload: Dict[str, Any] = Field(default_factory=dict, repr=False)
    complete: Dict[str, bool] = Field(default_factory=dict)


CARD_ELEMENTS = {
    "cardNumber": "Card number is incomplete",
    "cardExpiry": "Expiry date is incomplete",
    "cardCvc": "Security code is incomplete",
}


def _field_errors(exc: ValidationError) -> Dict[str, str]:
    errors = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "__root__"
        if error["type"] in ("missing", "string_too_short"):
            errors[field] = f"{field} is required"
        else:
            errors.setdefault(field, error["msg"])
    return errors


class StepController:
    """
    Validates the data submitted for one checkout step.

    Subclasses set `step` and `schema`; `validate()` returns the typed payload
    or raises StepValidationError with field-level messages.
    """
    step: CheckoutStep
    schema: Type[_StepSchema]

    def validate(self, data: Optional[Dict[str, Any]]) -> StepData:
        try:
            return self.schema.model_validate(data or {})
        except ValidationError as e:
            raise StepValidationError(_field_errors(e))

    @property
    def label(self) -> str:
        return STEP_LABELS[self.step]


class AddressStep(StepController):
    step = CheckoutStep.ADDRESS
    schema = AddressStepData


class ReviewStep(StepController):
    step = CheckoutStep.REVIEW
    schema = ReviewStepData


class PaymentStep(StepController):
    step = CheckoutStep.PAYMENT
    schema = PaymentStepData

    def validate_card(self, card: Optional[CardInput]) -> CardInput:
        """
        Checks that every card element reports itself complete.

        Args:
            card (Optional[CardInput]): Card fields from the payment form.
        Returns:
            CardInput: The same card input, unchanged.
        Raises:
            StepValidationError: If the card is missing or any element is incomplete.
        """
        if card is None:
            raise StepValidationError({name: message for name, message in CARD_ELEMENTS.items()})
        errors = {
            name: message
            for name, message in CARD_ELEMENTS.items()
            if not card.complete.get(name, False)
        }
        if errors:
            raise StepValidationError(errors)
        return card


STEP_CONTROLLERS = {
    CheckoutStep.ADDRESS: AddressStep(),
    CheckoutStep.REVIEW: ReviewStep(),
    CheckoutStep.PAYMENT: PaymentStep(),
}
