"""Tests for the payment authorization adapter."""
import httpx
import pytest

from storefront_service.clients import PaymentProviderClient
from storefront_service.errors import PaymentTransportError
from storefront_service.payment import (
    GENERIC_DECLINE_MESSAGE,
    Captured,
    Declined,
    NeedsUserAction,
    PaymentAuthorizationAdapter,
)

from conftest import card, garbled_gzip_transport


def adapter_for(handler):
    client = PaymentProviderClient(base_url="http://payment-provider", transport=httpx.MockTransport(handler))
    return PaymentAuthorizationAdapter(client)


@pytest.mark.asyncio
async def test_succeeded_is_captured(provider):
    outcome = await PaymentAuthorizationAdapter(provider).authorize("pi_1_secret_4200", 4200, card(), "Erika")
    assert outcome == Captured()


@pytest.mark.asyncio
async def test_failed_is_declined_with_provider_message(provider):
    outcome = await PaymentAuthorizationAdapter(provider).authorize(
        "pi_1_secret_4200", 4200, card("tok_decline_insufficient"), "Erika")

    assert isinstance(outcome, Declined)
    assert outcome.message == "Your card was declined"
    assert outcome.transport_failure is False


@pytest.mark.asyncio
async def test_second_capture_of_same_secret_is_declined(provider):
    adapter = PaymentAuthorizationAdapter(provider)
    await adapter.authorize("pi_1_secret_4200", 4200, card(), "Erika")
    outcome = await adapter.authorize("pi_1_secret_4200", 4200, card(), "Erika")
    assert isinstance(outcome, Declined)


@pytest.mark.asyncio
async def test_requires_action_needs_user_input(provider):
    outcome = await PaymentAuthorizationAdapter(provider).authorize(
        "pi_1_secret_4200", 4200, card("tok_action_3ds"), "Erika")

    assert isinstance(outcome, NeedsUserAction)
    assert outcome.field_errors == {"cardNumber": "Your card requires authentication."}


@pytest.mark.asyncio
async def test_requires_action_without_field_errors_uses_card_field():
    adapter = adapter_for(lambda request: httpx.Response(200, json={"status": "requires_action"}))
    outcome = await adapter.authorize("pi", 100, card(), "Erika")
    assert set(outcome.field_errors) == {"card"}


@pytest.mark.asyncio
async def test_provider_error_status_is_declined_with_its_message(provider):
    outcome = await PaymentAuthorizationAdapter(provider).authorize(
        "pi_1_secret_4200", 4200, card("tok_error_500"), "Erika")

    assert isinstance(outcome, Declined)
    assert outcome.message == "An error occurred while processing your card."
    assert outcome.transport_failure is False


@pytest.mark.asyncio
async def test_connection_failure_is_transport_decline():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    outcome = await adapter_for(handler).authorize("pi", 100, card(), "Erika")

    assert isinstance(outcome, Declined)
    assert isinstance(outcome.error, PaymentTransportError)
    assert outcome.transport_failure is True
    assert outcome.message == GENERIC_DECLINE_MESSAGE


@pytest.mark.asyncio
async def test_timeout_is_transport_decline():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    outcome = await adapter_for(handler).authorize("pi", 100, card(), "Erika")
    assert outcome.transport_failure is True


@pytest.mark.asyncio
async def test_unreadable_response_is_transport_decline():
    adapter = adapter_for(lambda request: httpx.Response(200, json={"state": "ok"}))
    outcome = await adapter.authorize("pi", 100, card(), "Erika")
    assert outcome.transport_failure is True


@pytest.mark.asyncio
async def test_request_carries_secret_card_and_billing_details():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"status": "succeeded"})

    await adapter_for(handler).authorize("pi_abc", 100, card("tok_visa"), "Erika")

    body = seen[0].read()
    assert b'"clientSecret":"pi_abc"' in body.replace(b" ", b"")
    assert b'"tok_visa"' in body
    assert b'"name":"Erika"' in body.replace(b" ", b"")


@pytest.mark.asyncio
async def test_undecodable_body_is_transport_decline():
    client = PaymentProviderClient(base_url="http://payment-provider", transport=garbled_gzip_transport())
    outcome = await PaymentAuthorizationAdapter(client).authorize("pi_1_secret_100", 100, card(), "Erika")

    assert isinstance(outcome, Declined)
    assert outcome.transport_failure is True
    assert outcome.message == GENERIC_DECLINE_MESSAGE
    await client.aclose()


@pytest.mark.asyncio
async def test_redirect_loop_is_transport_decline():
    def handler(request):
        return httpx.Response(307, headers={"Location": str(request.url)})

    adapter = adapter_for(handler)
    adapter.provider.client.follow_redirects = True
    outcome = await adapter.authorize("pi_1_secret_100", 100, card(), "Erika")

    assert isinstance(outcome, Declined)
    assert outcome.transport_failure is True
