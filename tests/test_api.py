"""End-to-end tests of the HTTP entry point against the mock services."""
import httpx
import pytest
from fastapi.testclient import TestClient

from mock_services import mock_order_api, mock_payment_provider
from storefront_service.clients import OrderApiClient, PaymentProviderClient
from storefront_service.main import app
from storefront_service.orders import OrderCommitClient
from storefront_service.session import StorefrontSession

from conftest import ADDRESS, ORDER_API_URL, PAYMENT, PROVIDER_URL

CARD = {"payload": {"token": "tok_visa"},
        "complete": {"cardNumber": True, "cardExpiry": True, "cardCvc": True}}


@pytest.fixture
def client():
    api = OrderApiClient(base_url=ORDER_API_URL, token="test-token",
                         transport=httpx.ASGITransport(app=mock_order_api.app))
    provider = PaymentProviderClient(base_url=PROVIDER_URL,
                                     transport=httpx.ASGITransport(app=mock_payment_provider.app))
    app.state.storefront = StorefrontSession(api, provider, OrderCommitClient(api, initial_delay=0))
    with TestClient(app) as test_client:
        yield test_client
    app.state.storefront = None


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_checkout_happy_path(client):
    response = client.post("/basket/items", json={"productId": 7, "unitPrice": 4200})
    assert response.status_code == 201
    assert response.json()["total"] == 4200
    assert "paymentToken" not in response.json()

    response = client.post("/checkout")
    assert response.status_code == 201
    state = response.json()
    assert state["stepName"] == "address"
    assert state["prefill"]["fullName"] == "Max Mustermann"
    session_id = state["sessionId"]

    state = client.post(f"/checkout/{session_id}/next", json={"data": ADDRESS}).json()
    assert state["stepName"] == "review"
    state = client.post(f"/checkout/{session_id}/next", json={"data": {}}).json()
    assert state["stepName"] == "payment"

    state = client.post(f"/checkout/{session_id}/next", json={"data": PAYMENT, "card": CARD}).json()

    assert state["stepName"] == "complete"
    assert state["result"] == "success"
    assert state["orderNumber"] == 1
    assert state["paymentOutcome"] == "Captured"
    assert client.get("/basket").json() == {"items": [], "total": 0}


def test_declined_checkout_can_be_retried(client):
    client.post("/basket/items", json={"productId": 7, "unitPrice": 4200})
    session_id = client.post("/checkout").json()["sessionId"]
    client.post(f"/checkout/{session_id}/next", json={"data": ADDRESS})
    client.post(f"/checkout/{session_id}/next", json={"data": {}})
    declined_card = {**CARD, "payload": {"token": "tok_decline_x"}}

    state = client.post(f"/checkout/{session_id}/next", json={"data": PAYMENT, "card": declined_card}).json()
    assert state["result"] == "failure"
    assert state["message"] == "Your card was declined"

    state = client.post(f"/checkout/{session_id}/retry").json()
    assert state["stepName"] == "payment"
    assert client.get("/basket").json()["total"] == 4200


def test_validation_errors_are_returned(client):
    client.post("/basket/items", json={"productId": 7, "unitPrice": 100})
    session_id = client.post("/checkout").json()["sessionId"]

    state = client.post(f"/checkout/{session_id}/next", json={"data": {"fullName": "A"}}).json()

    assert state["stepName"] == "address"
    assert "zip" in state["fieldErrors"]


def test_checkout_requires_items(client):
    assert client.post("/checkout").status_code == 409


def test_unknown_checkout_session(client):
    assert client.get("/checkout/nope").status_code == 404


def test_abandon_checkout(client):
    client.post("/basket/items", json={"productId": 7, "unitPrice": 100})
    session_id = client.post("/checkout").json()["sessionId"]

    assert client.delete(f"/checkout/{session_id}").status_code == 204
    assert client.get(f"/checkout/{session_id}").status_code == 404


def test_basket_quantity_and_removal(client):
    client.post("/basket/items", json={"productId": 7, "unitPrice": 100})
    client.post("/basket/items", json={"productId": 8, "unitPrice": 50})

    assert client.put("/basket/items/7", json={"quantity": 3}).json()["total"] == 350
    assert client.put("/basket/items/99", json={"quantity": 1}).status_code == 404
    assert client.delete("/basket/items/8").json()["total"] == 300


def test_catalog_listing_and_params(client):
    page = client.get("/catalog/products").json()
    assert page["metaData"]["totalCount"] == 10
    assert len(page["items"]) == 6

    params = client.put("/catalog/params", json={"types": ["Hats"]}).json()
    assert params["pageNumber"] == 1

    page = client.get("/catalog/products").json()
    assert page["metaData"]["totalCount"] == 3

    second = client.get("/catalog/products", params={"pageNumber": 2}).json()
    assert second["metaData"]["currentPage"] == 2


def test_catalog_filters_and_details(client):
    filters = client.get("/catalog/filters").json()
    assert "React" in filters["brands"]
    assert client.get("/catalog/products/1").json()["brand"] == "Angular"
    assert client.get("/catalog/products/999").status_code == 404


def test_logout_clears_basket_and_sessions(client):
    client.post("/basket/items", json={"productId": 7, "unitPrice": 100})
    session_id = client.post("/checkout").json()["sessionId"]

    assert client.post("/logout").json() == {"status": "logged out"}

    assert client.get("/basket").json() == {"items": [], "total": 0}
    assert client.get(f"/checkout/{session_id}").status_code == 404
