"""
session.py — Process-wide Storefront State

Owns the basket store, the catalog cache and the remote clients for one signed-in
storefront user, and hands out one CheckoutOrchestrator per checkout session.
Created at startup, reset on logout, closed at shutdown.
"""

import logging
from typing import Dict, Optional

import httpx

from .basket import BasketStore
from .catalog import CatalogCache, CatalogService
from .clients import OrderApiClient, PaymentProviderClient
from .errors import CheckoutInProgressError
from .orchestrator import CheckoutOrchestrator
from .orders import OrderCommitClient
from .payment import PaymentAuthorizationAdapter

log = logging.getLogger(__name__)


class StorefrontSession:
    """
    Args:
        api (OrderApiClient): Order-management API client.
        provider (Optional[PaymentProviderClient]): Payment provider client; None
            disables settlement.
        order_commit (Optional[OrderCommitClient]): Defaults to one built on `api`.
    """
    def __init__(self, api: OrderApiClient, provider: Optional[PaymentProviderClient],
                 order_commit: Optional[OrderCommitClient] = None):
        self.api = api
        self.provider = provider
        self.payment = PaymentAuthorizationAdapter(provider) if provider else None
        self.orders = order_commit or OrderCommitClient(api)
        self.basket = BasketStore(api)
        self.catalog = CatalogCache()
        self.catalog_service = CatalogService(api, self.catalog)
        self.checkouts: Dict[str, CheckoutOrchestrator] = {}

    async def sync_basket(self):
        """Replaces the local basket with the server copy."""
        try:
            basket = await self.api.fetch_basket()
        except httpx.HTTPError as e:
            log.error(f"[Session] Basket sync failed: {e}")
            raise
        await self.basket.load(basket)
        return self.basket.basket

    async def start_checkout(self) -> CheckoutOrchestrator:
        checkout = CheckoutOrchestrator(
            basket=self.basket,
            catalog=self.catalog,
            address_source=self.api,
            payment=self.payment,
            orders=self.orders,
        )
        await checkout.begin()
        self.checkouts[checkout.session_id] = checkout
        return checkout

    def get_checkout(self, session_id: str) -> Optional[CheckoutOrchestrator]:
        return self.checkouts.get(session_id)

    def end_checkout(self, session_id: str) -> bool:
        checkout = self.checkouts.get(session_id)
        if checkout is None:
            return False
        if not checkout.abandon():
            return False
        del self.checkouts[session_id]
        return True

    async def reset(self):
        """
        Logout: drops the catalog and every checkout session, and clears the basket.

        The basket is kept while any checkout ended in support_required, so the
        captured payment can still be matched to its lines.

        Raises:
            CheckoutInProgressError: If a checkout is Settling; nothing is changed.
        """
        settling = [sid for sid, checkout in self.checkouts.items() if checkout.settling]
        if settling:
            log.warning(f"[Session] Logout refused: {len(settling)} checkout(s) settling.")
            raise CheckoutInProgressError("A payment is being settled; try again shortly.")

        unreconciled = [sid for sid, checkout in self.checkouts.items()
                        if checkout.state is not None and checkout.state.reconciliation is not None]
        for session_id in list(self.checkouts):
            self.end_checkout(session_id)
        if unreconciled:
            log.warning(f"[Session] Basket kept on logout: {len(unreconciled)} checkout(s) "
                        f"await manual reconciliation.")
        else:
            await self.basket.clear()
        self.catalog = CatalogCache()
        self.catalog_service = CatalogService(self.api, self.catalog)
        log.info("[Session] Storefront session reset.")

    async def aclose(self):
        await self.api.aclose()
        if self.provider is not None:
            await self.provider.aclose()
