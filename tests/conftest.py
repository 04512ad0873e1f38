"""Shared fixtures: storefront components wired to the in-process mock services."""
import asyncio

import httpx
import pytest
import pytest_asyncio

from mock_services import mock_order_api, mock_payment_provider
from storefront_service.basket import BasketStore
from storefront_service.catalog import CatalogCache
from storefront_service.clients import OrderApiClient, PaymentProviderClient
from storefront_service.errors import OrderCommitTransportExhausted
from storefront_service.models import Basket
from storefront_service.orchestrator import CheckoutOrchestrator
from storefront_service.orders import OrderCommitClient
from storefront_service.payment import PaymentAuthorizationAdapter
from storefront_service.steps import CardInput

ORDER_API_URL = "http://order-api/api"
PROVIDER_URL = "http://payment-provider"

ADDRESS = {
    "fullName": "Erika Musterfrau",
    "address1": "Hauptstrasse 5",
    "city": "Hamburg",
    "state": "HH",
    "zip": "20095",
    "country": "DE",
    "saveAddress": True,
}
PAYMENT = {"nameOnCard": "Erika Musterfrau"}


def card(token="tok_visa", complete=True):
    return CardInput(
        payload={"token": token},
        complete={"cardNumber": complete, "cardExpiry": complete, "cardCvc": complete},
    )


class CountingIssuer:
    """Issues predictable payment tokens without a backend."""

    def __init__(self):
        self.issued = 0

    async def issue_payment_token(self, basket: Basket) -> Basket:
        self.issued += 1
        return basket.model_copy(update={
            "basketId": basket.basketId or "bsk_test",
            "paymentToken": f"tok_{self.issued}_{basket.total}",
        })


class FailingIssuer:
    async def issue_payment_token(self, basket: Basket) -> Basket:
        raise httpx.ConnectError("payments endpoint down")


class RecordingOrderCommit(OrderCommitClient):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.requests = []

    async def commit(self, request):
        self.requests.append(request)
        return await super().commit(request)


def timeout_transport(seen=None):
    """Transport whose every request times out; records requests in `seen`."""
    def handler(request):
        if seen is not None:
            seen.append(request)
        raise httpx.ReadTimeout("timed out", request=request)
    return httpx.MockTransport(handler)


def garbled_gzip_transport(seen=None, status_code=200):
    """Transport answering with a gzip header over a body that is not gzip."""
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")
    return httpx.MockTransport(handler)


class GatedOrderCommit(RecordingOrderCommit):
    """Blocks every commit on `gate`, then fails as if the order service stayed down."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def commit(self, request):
        self.requests.append(request)
        self.started.set()
        await self.gate.wait()
        raise OrderCommitTransportExhausted(
            f"Order service unreachable after {self.max_attempts} attempts",
            request.idempotencyKey, self.max_attempts,
        )


@pytest.fixture(autouse=True)
def reset_mocks():
    mock_order_api.state.reset()
    mock_payment_provider.CAPTURED_SECRETS.clear()
    yield


@pytest_asyncio.fixture
async def order_api():
    client = OrderApiClient(base_url=ORDER_API_URL, token="test-token",
                            transport=httpx.ASGITransport(app=mock_order_api.app))
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def provider():
    client = PaymentProviderClient(base_url=PROVIDER_URL,
                                   transport=httpx.ASGITransport(app=mock_payment_provider.app))
    yield client
    await client.aclose()


@pytest.fixture
def make_checkout(order_api, provider):
    """Builds (checkout, basket store, catalog, recording commit client)."""
    def _make(orders=None, payment="default", address_source=None):
        basket = BasketStore(order_api)
        catalog = CatalogCache()
        if orders is None:
            orders = RecordingOrderCommit(order_api, initial_delay=0)
        if payment == "default":
            payment = PaymentAuthorizationAdapter(provider)
        checkout = CheckoutOrchestrator(
            basket=basket,
            catalog=catalog,
            address_source=address_source or order_api,
            payment=payment,
            orders=orders,
            session_id="test-session",
        )
        return checkout, basket, catalog, orders
    return _make
