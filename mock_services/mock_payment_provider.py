"""
mock_payment_provider.py — Mock Implementation of the Payment Provider (REST API)

This module provides a simulated card payment provider for testing the checkout workflow.
It exposes a simple FastAPI application that mimics the provider's client-side
confirmation call.

Simulation Scenarios (selected by the card payload's "token"):
    • Successful capture
    • Declined card ("tok_decline_...")
    • Additional verification required ("tok_action_...")
    • Provider error, HTTP 500 ("tok_error_...")
    • Timeout simulation ("tok_timeout_...", simulates client read timeout)

A client secret can only be captured once; confirming it again fails.

Endpoints:
    POST /v1/payment_intents/confirm: Confirms the payment intent behind a client secret.

Port:
    Default: 8001 (HTTP)
"""

import logging
import time
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Payment Provider")
logging.basicConfig(level=logging.INFO)

# client secrets that have been captured
CAPTURED_SECRETS = set()


class BillingDetails(BaseModel):
    name: str


class ConfirmRequest(BaseModel):
    """
    Represents a card payment confirmation request.

    Attributes:
        clientSecret (str): Secret of the payment intent, issued with the basket.
        cardElementPayload (dict): Card fields; only "token" is inspected here.
        billingDetails (BillingDetails): Cardholder details.
    """
    clientSecret: str
    cardElementPayload: Dict[str, Any]
    billingDetails: BillingDetails


@app.post("/v1/payment_intents/confirm")
def confirm_payment(request: ConfirmRequest):
    """
    Confirms a card payment.

    Args:
        request (ConfirmRequest): Client secret, card payload and billing details.

    Returns:
        dict: {"status": "succeeded" | "requires_action" | "failed", "errorMessage"?, "fieldErrors"?}

    Raises:
        HTTPException(500): If the card token requests a provider error.
    """
    card_token = str(request.cardElementPayload.get("token", "tok_visa"))
    logging.info(f"[PP] Confirmation for {request.clientSecret[:16]}... ({request.billingDetails.name})")

    if request.clientSecret in CAPTURED_SECRETS:
        logging.warning(f"[PP] Secret {request.clientSecret[:16]}... already captured.")
        return {"status": "failed", "errorMessage": "This payment has already been completed."}

    if card_token.startswith("tok_decline_"):
        logging.warning("[PP] Card declined.")
        return {"status": "failed", "errorMessage": "Your card was declined"}

    if card_token.startswith("tok_action_"):
        return {
            "status": "requires_action",
            "errorMessage": "Authentication required.",
            "fieldErrors": {"cardNumber": "Your card requires authentication."},
        }

    if card_token.startswith("tok_error_"):
        raise HTTPException(
            status_code=500,
            detail={"errorCode": "processing_error", "message": "An error occurred while processing your card."}
        )

    if card_token.startswith("tok_timeout_"):
        logging.info("[PP] Simulating timeout...")
        time.sleep(10)
        logging.error("[PP] Timeout request finished (too late).")
        return

    CAPTURED_SECRETS.add(request.clientSecret)
    logging.info("[PP] Payment captured.")
    return {"status": "succeeded"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
