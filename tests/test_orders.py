# tests/test_orders.py
import pytest

from storefront_cart.domain.errors import AuthRequiredError, OrderLookupError
from storefront_cart.domain.schemas import LineItem

from conftest import authenticator, authorizer


async def test_listing_orders_requires_login(storefront, api):
    with pytest.raises(AuthRequiredError):
        await storefront.orders.list_customer_orders()
    assert "list_customer_orders" not in api.call_names()


async def test_placed_order_can_be_read_back(storefront, customer, checkout_request):
    await storefront.reconciliation.login(authenticator(customer))
    await storefront.cart.add_item(LineItem(product_id=4, quantity=2))
    result = await storefront.reconciliation.checkout(checkout_request, authorizer())

    order = await storefront.orders.get_order(result.order_id)
    orders = await storefront.orders.list_customer_orders()

    assert order.id == result.order_id
    assert order.total == result.totals.total
    assert [o.id for o in orders] == [result.order_id]


async def test_unknown_order_says_not_found(storefront):
    with pytest.raises(OrderLookupError) as exc:
        await storefront.orders.get_order("404404")
    assert "not found" in exc.value.message


async def test_order_lookup_failure_is_generic(storefront, api):
    api.fail("get_order")
    with pytest.raises(OrderLookupError) as exc:
        await storefront.orders.get_order("1001")
    assert exc.value.message == OrderLookupError.default_message


async def test_order_listing_failure(storefront, api, customer):
    await storefront.reconciliation.login(authenticator(customer))
    api.fail("list_customer_orders")

    with pytest.raises(OrderLookupError):
        await storefront.orders.list_customer_orders()
