"""
basket.py — Basket Store

Holds the current basket as process-wide client state. All mutation goes
through the operations below and is serialized by an asyncio lock.

Payment tokens are bound to an amount. Every mutation that changes the basket
total asks the token issuer for a fresh token, and the new basket is only
committed together with that token: if the issuer fails, the store is left
exactly as it was.
"""

import asyncio
import logging
from typing import Optional, Protocol

import httpx

from .errors import BasketSyncError
from .models import Basket, LineItem

log = logging.getLogger(__name__)


class PaymentTokenIssuer(Protocol):
    async def issue_payment_token(self, basket: Basket) -> Basket:
        ...


class BasketStore:
    """
    Single-writer container for the basket.

    Args:
        issuer (PaymentTokenIssuer): Issues payment tokens bound to a basket total
            (OrderApiClient in production).
    """
    def __init__(self, issuer: PaymentTokenIssuer):
        self._issuer = issuer
        self._basket: Optional[Basket] = None
        self._lock = asyncio.Lock()

    @property
    def basket(self) -> Optional[Basket]:
        """A copy of the current basket; edits to it do not reach the store."""
        return self._basket.model_copy(deep=True) if self._basket else None

    @property
    def payment_token(self) -> Optional[str]:
        return self._basket.paymentToken if self._basket else None

    @property
    def total(self) -> int:
        return self._basket.total if self._basket else 0

    def has_valid_token(self) -> bool:
        return self._basket is not None and not self._basket.is_empty and bool(self._basket.paymentToken)

    async def load(self, basket: Optional[Basket]):
        """
        Replaces the basket wholesale with a server copy.

        A non-empty basket arriving without a token gets one issued before it is stored.
        """
        async with self._lock:
            if basket is None:
                self._basket = None
                log.info("[Basket] Loaded: no basket on server.")
                return
            if not basket.is_empty and not basket.paymentToken:
                basket = await self._issue(basket)
            self._basket = basket
            log.info(f"[Basket] Loaded {len(basket.items)} line(s), total {basket.total}.")

    async def add_item(self, product_id: int, unit_price: int, quantity: int = 1,
                       name: Optional[str] = None) -> Basket:
        if quantity <= 0:
            raise ValueError("quantity must be greater than zero")
        async with self._lock:
            current = self._basket or Basket()
            items = [item.model_copy() for item in current.items]
            for i, item in enumerate(items):
                if item.productId == product_id:
                    items[i] = item.model_copy(update={"quantity": item.quantity + quantity})
                    break
            else:
                items.append(LineItem(productId=product_id, quantity=quantity,
                                      unitPrice=unit_price, name=name))
            return await self._commit(current, items)

    async def remove_item(self, product_id: int, quantity: Optional[int] = None) -> Optional[Basket]:
        """
        Removes `quantity` units of a product, or the whole line when quantity is None.
        Removing a product that is not in the basket is a no-op.
        """
        async with self._lock:
            current = self._basket
            if current is None or current.find(product_id) is None:
                return self.basket
            items = []
            for item in current.items:
                if item.productId != product_id:
                    items.append(item.model_copy())
                elif quantity is not None and item.quantity > quantity:
                    items.append(item.model_copy(update={"quantity": item.quantity - quantity}))
            return await self._commit(current, items)

    async def set_quantity(self, product_id: int, quantity: int) -> Optional[Basket]:
        """Sets the quantity of an existing line; zero removes the line."""
        if quantity < 0:
            raise ValueError("quantity must not be negative")
        async with self._lock:
            current = self._basket
            if current is None or current.find(product_id) is None:
                raise KeyError(product_id)
            items = []
            for item in current.items:
                if item.productId != product_id:
                    items.append(item.model_copy())
                elif quantity > 0:
                    items.append(item.model_copy(update={"quantity": quantity}))
            return await self._commit(current, items)

    async def clear(self):
        """Destroys the basket. Called by the orchestrator after a successful order commit."""
        async with self._lock:
            self._basket = None
            log.info("[Basket] Cleared.")

    def invalidate_token(self):
        """Marks the current payment token as used."""
        if self._basket is not None and self._basket.paymentToken:
            self._basket = self._basket.model_copy(update={"paymentToken": None})
            log.info("[Basket] Payment token invalidated.")

    async def refresh_token(self) -> Optional[Basket]:
        """
        Replaces a used token with a freshly issued one for the same total.

        On issuer failure the token stays invalidated; the next checkout submit is
        then refused until a refresh succeeds.
        """
        async with self._lock:
            self.invalidate_token()
            if self._basket is None or self._basket.is_empty:
                return self.basket
            self._basket = await self._issue(self._basket)
            return self.basket

    async def _commit(self, current: Basket, items) -> Basket:
        candidate = current.model_copy(update={"items": items})
        if candidate.is_empty:
            candidate = candidate.model_copy(update={"paymentToken": None})
        elif candidate.total != current.total or not current.paymentToken:
            candidate = await self._issue(candidate.model_copy(update={"paymentToken": None}))
        self._basket = candidate
        log.info(f"[Basket] {len(candidate.items)} line(s), total {candidate.total}.")
        return self.basket

    async def _issue(self, basket: Basket) -> Basket:
        try:
            issued = await self._issuer.issue_payment_token(basket)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            log.error(f"[Basket] Payment token could not be issued: {e}")
            raise BasketSyncError("Payment token could not be issued") from e
        if not issued.paymentToken:
            raise BasketSyncError("Payment token could not be issued")
        return issued
