"""Tests for the process-wide storefront session (checkout registry and logout)."""
import asyncio

import pytest

from storefront_service.errors import CheckoutInProgressError
from storefront_service.orchestrator import CheckoutResult
from storefront_service.orders import OrderCommitClient
from storefront_service.session import StorefrontSession

from conftest import ADDRESS, PAYMENT, GatedOrderCommit, card


async def settling_checkout(session, orders):
    await session.basket.add_item(1, unit_price=4200)
    checkout = await session.start_checkout()
    await checkout.submit(ADDRESS)
    await checkout.submit({})
    task = asyncio.create_task(checkout.submit(PAYMENT, card()))
    await asyncio.wait_for(orders.started.wait(), timeout=5)
    return checkout, task


@pytest.mark.asyncio
async def test_logout_clears_basket_and_checkouts(order_api, provider):
    session = StorefrontSession(order_api, provider, OrderCommitClient(order_api, initial_delay=0))
    await session.basket.add_item(1, unit_price=100)
    checkout = await session.start_checkout()
    catalog = session.catalog

    await session.reset()

    assert session.basket.basket is None
    assert session.get_checkout(checkout.session_id) is None
    assert checkout.state is None
    assert session.catalog is not catalog
    assert session.catalog_service.cache is session.catalog


@pytest.mark.asyncio
async def test_logout_and_end_checkout_refused_while_commit_in_flight(order_api, provider):
    orders = GatedOrderCommit(order_api, initial_delay=0)
    session = StorefrontSession(order_api, provider, orders)
    checkout, task = await settling_checkout(session, orders)

    with pytest.raises(CheckoutInProgressError):
        await session.reset()
    assert session.end_checkout(checkout.session_id) is False
    assert session.get_checkout(checkout.session_id) is checkout
    assert session.basket.total == 4200

    orders.gate.set()
    state = await task
    assert state.result == CheckoutResult.SUPPORT_REQUIRED


@pytest.mark.asyncio
async def test_logout_keeps_basket_of_unreconciled_payment(order_api, provider):
    orders = GatedOrderCommit(order_api, initial_delay=0)
    session = StorefrontSession(order_api, provider, orders)
    checkout, task = await settling_checkout(session, orders)
    orders.gate.set()
    await task

    await session.reset()

    assert session.checkouts == {}
    assert session.basket.total == 4200
    assert [item.productId for item in session.basket.basket.items] == [1]
