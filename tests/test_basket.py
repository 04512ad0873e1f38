"""Tests for the basket store."""
import pytest

from storefront_service.basket import BasketStore
from storefront_service.errors import BasketSyncError
from storefront_service.models import Basket, LineItem

from conftest import CountingIssuer, FailingIssuer


@pytest.fixture
def issuer():
    return CountingIssuer()


@pytest.fixture
def store(issuer):
    return BasketStore(issuer)


@pytest.mark.asyncio
async def test_first_add_creates_basket_with_token(store, issuer):
    basket = await store.add_item(1, unit_price=4200)

    assert basket.total == 4200
    assert basket.paymentToken == "tok_1_4200"
    assert basket.basketId == "bsk_test"
    assert store.has_valid_token()


@pytest.mark.asyncio
async def test_adding_same_product_increments_quantity_and_reissues_token(store):
    await store.add_item(1, unit_price=1000)
    basket = await store.add_item(1, unit_price=1000, quantity=2)

    assert len(basket.items) == 1
    assert basket.items[0].quantity == 3
    assert basket.total == 3000
    assert basket.paymentToken == "tok_2_3000"


@pytest.mark.asyncio
async def test_add_rejects_non_positive_quantity(store):
    with pytest.raises(ValueError):
        await store.add_item(1, unit_price=1000, quantity=0)


@pytest.mark.asyncio
async def test_partial_remove_keeps_line(store):
    await store.add_item(1, unit_price=500, quantity=3)
    basket = await store.remove_item(1, quantity=1)

    assert basket.items[0].quantity == 2
    assert basket.total == 1000


@pytest.mark.asyncio
async def test_removing_last_item_drops_token(store, issuer):
    await store.add_item(1, unit_price=500)
    basket = await store.remove_item(1)

    assert basket.is_empty
    assert basket.paymentToken is None
    assert issuer.issued == 1
    assert not store.has_valid_token()


@pytest.mark.asyncio
async def test_removing_unknown_product_is_noop(store, issuer):
    await store.add_item(1, unit_price=500)
    basket = await store.remove_item(99)

    assert basket.total == 500
    assert issuer.issued == 1


@pytest.mark.asyncio
async def test_set_quantity_reissues_token(store):
    await store.add_item(1, unit_price=500)
    await store.add_item(2, unit_price=100)
    basket = await store.set_quantity(2, 5)

    assert basket.total == 1000
    assert basket.paymentToken == "tok_3_1000"


@pytest.mark.asyncio
async def test_set_quantity_zero_removes_line(store):
    await store.add_item(1, unit_price=500)
    await store.add_item(2, unit_price=100)
    basket = await store.set_quantity(1, 0)

    assert [item.productId for item in basket.items] == [2]


@pytest.mark.asyncio
async def test_set_quantity_of_unknown_product_raises(store):
    await store.add_item(1, unit_price=500)
    with pytest.raises(KeyError):
        await store.set_quantity(2, 1)


@pytest.mark.asyncio
async def test_issuer_failure_leaves_store_unchanged(issuer):
    store = BasketStore(issuer)
    await store.add_item(1, unit_price=500)
    before = store.basket

    store._issuer = FailingIssuer()
    with pytest.raises(BasketSyncError):
        await store.add_item(2, unit_price=700)

    assert store.basket == before


@pytest.mark.asyncio
async def test_load_replaces_basket_wholesale(store):
    await store.add_item(1, unit_price=500)
    server_copy = Basket(basketId="bsk_server", paymentToken="pi_server",
                         items=[LineItem(productId=7, quantity=2, unitPrice=250)])

    await store.load(server_copy)

    assert store.basket == server_copy
    assert store.total == 500


@pytest.mark.asyncio
async def test_load_issues_token_for_basket_without_one(store):
    await store.load(Basket(items=[LineItem(productId=7, quantity=1, unitPrice=250)]))
    assert store.payment_token == "tok_1_250"


@pytest.mark.asyncio
async def test_load_none_destroys_basket(store):
    await store.add_item(1, unit_price=500)
    await store.load(None)
    assert store.basket is None


@pytest.mark.asyncio
async def test_invalidate_and_refresh_token(store):
    await store.add_item(1, unit_price=500)
    store.invalidate_token()
    assert not store.has_valid_token()

    basket = await store.refresh_token()

    assert basket.paymentToken == "tok_2_500"
    assert basket.total == 500


@pytest.mark.asyncio
async def test_clear_destroys_basket(store):
    await store.add_item(1, unit_price=500)
    await store.clear()
    assert store.basket is None
    assert store.total == 0


@pytest.mark.asyncio
async def test_returned_basket_is_a_copy(store):
    basket = await store.add_item(1, unit_price=500)
    basket.items.append(LineItem(productId=2, quantity=1, unitPrice=1))
    assert store.total == 500


@pytest.mark.asyncio
async def test_token_issued_by_order_api(order_api):
    store = BasketStore(order_api)
    basket = await store.add_item(1, unit_price=4200)

    assert basket.basketId.startswith("bsk_")
    assert basket.paymentToken.endswith("_secret_4200")
