"""
This module provides communication clients for the external systems used by the storefront:
- Order-management API (REST): catalog, basket payment tokens, address prefill, order creation
- Payment provider (REST): client-side card payment confirmation
Each class encapsulates its protocol details and connection management. Transport and
status errors are logged here and re-raised as httpx exceptions; translating them into
the checkout error taxonomy is the job of the calling adapter.
"""

import logging
from typing import Optional

import httpx

from .config import (
    HTTP_READ_TIMEOUT,
    HTTP_TIMEOUT,
    ORDER_API_TOKEN,
    ORDER_API_URL,
    PAYMENT_PROVIDER_URL,
)
from .models import (
    Basket,
    OrderCommitRequest,
    PaymentConfirmationRequest,
    PaymentConfirmationResponse,
    Product,
    ProductFilters,
    ProductPage,
    ProductParams,
)

log = logging.getLogger(__name__)


def _timeout_config():
    return httpx.Timeout(HTTP_TIMEOUT, read=HTTP_READ_TIMEOUT)


class _AsyncServiceClient:
    """Owns one httpx.AsyncClient; usable as an async context manager."""

    def __init__(self, base_url: str, headers: Optional[dict] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=_timeout_config(),
            headers=headers or {},
            transport=transport,
        )

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


# --- Order-management API (REST) ---
class OrderApiClient(_AsyncServiceClient):
    """
    Client for the order-management API.
    Every request carries the bearer token of the signed-in user.
    """
    def __init__(self, base_url: str = ORDER_API_URL, token: str = ORDER_API_TOKEN,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        super().__init__(base_url, headers=headers, transport=transport)

    async def create_order(self, request: OrderCommitRequest) -> int:
        """
        Creates the order via POST /orders.
        Args:
            request (OrderCommitRequest): Address, save flag and idempotency key.
        Returns:
            int: The order number assigned by the backend.
        Raises:
            httpx.TimeoutException: If the backend does not answer in time (outcome unknown).
            httpx.RequestError: If the connection fails or the response cannot be read.
            httpx.HTTPStatusError: If the backend returns an error status (4xx or 5xx).
        """
        headers = {"Idempotency-Key": request.idempotencyKey}
        response = await self.client.post("/orders", json=request.body(), headers=headers)
        if response.is_error:
            log.error(f"[Orders] POST /orders returned HTTP {response.status_code} "
                      f"(key {request.idempotencyKey}).")
        response.raise_for_status()
        return int(response.json())

    async def fetch_address(self) -> Optional[dict]:
        """
        Loads the saved shipping address of the account.
        Returns:
            Optional[dict]: Address fields, or None if the account has none.
        """
        response = await self.client.get("/account/address")
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json() or None

    async def list_products(self, params: ProductParams) -> ProductPage:
        response = await self.client.get("/products", params=params.to_query())
        response.raise_for_status()
        return ProductPage.model_validate(response.json())

    async def fetch_product(self, product_id: int) -> Product:
        response = await self.client.get(f"/products/{product_id}")
        response.raise_for_status()
        return Product.model_validate(response.json())

    async def fetch_filters(self) -> ProductFilters:
        response = await self.client.get("/products/filters")
        response.raise_for_status()
        return ProductFilters.model_validate(response.json())

    async def fetch_basket(self) -> Optional[Basket]:
        response = await self.client.get("/basket")
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        data = response.json()
        return Basket.model_validate(data) if data else None

    async def issue_payment_token(self, basket: Basket) -> Basket:
        """
        Requests a fresh payment token bound to the basket's current total (POST /payments).
        Args:
            basket (Basket): Basket whose total the token must authorize.
        Returns:
            Basket: Copy of the basket carrying the new token (and basketId, if newly assigned).
        Raises:
            httpx.HTTPError: If the request fails.
        """
        payload = {"basketId": basket.basketId, "amount": basket.total}
        response = await self.client.post("/payments", json=payload)
        response.raise_for_status()
        data = response.json()
        return basket.model_copy(update={
            "basketId": data.get("basketId") or basket.basketId,
            "paymentToken": data["paymentToken"],
        })


# --- Payment Provider (REST) ---
class PaymentProviderClient(_AsyncServiceClient):
    """
    Client for the payment provider's card confirmation API.
    """
    def __init__(self, base_url: str = PAYMENT_PROVIDER_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url, transport=transport)

    async def confirm_card_payment(self, request: PaymentConfirmationRequest) -> PaymentConfirmationResponse:
        """
        Confirms the payment intent behind the client secret with the given card.
        Args:
            request (PaymentConfirmationRequest): Client secret, card payload and billing details.
        Returns:
            PaymentConfirmationResponse: status succeeded | requires_action | failed.
        Raises:
            httpx.TimeoutException: If the provider does not respond within the timeout.
            httpx.RequestError: If the connection fails or the response cannot be read.
            httpx.HTTPStatusError: If the provider returns an error status.
        """
        response = await self.client.post("/v1/payment_intents/confirm", json=request.model_dump())
        response.raise_for_status()
        return PaymentConfirmationResponse.model_validate(response.json())
