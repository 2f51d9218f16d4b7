# tests/test_pricing.py
from decimal import Decimal

import pytest

from storefront_cart.domain.errors import PriceUnavailableError
from storefront_cart.domain.schemas import LineItem, PricingConfig, Product
from storefront_cart.services.pricing_service import (
    amount_to_free_shipping,
    compute_totals,
    round_half_away_from_zero,
)

from conftest import CART_PAGE_PRICING, CHECKOUT_PRICING

CATALOG = {
    1: Product(id=1, price=79900),
    2: Product(id=2, price=1000),
}


def test_checkout_example_over_free_shipping_threshold():
    items = [LineItem(product_id=1, quantity=2)]

    totals = compute_totals(items, CATALOG, CHECKOUT_PRICING)

    assert totals.subtotal == 159800
    assert totals.shipping == 0
    assert totals.tax == 7990
    assert totals.total == 167790


def test_same_inputs_same_totals_and_inputs_untouched():
    items = [LineItem(product_id=1, quantity=2, gift_pack_id=7, gift_pack_price=29900)]
    catalog = dict(CATALOG)
    before_items = [i.model_dump() for i in items]

    first = compute_totals(items, catalog, CHECKOUT_PRICING)
    second = compute_totals(items, catalog, CHECKOUT_PRICING)

    assert first == second
    assert [i.model_dump() for i in items] == before_items
    assert catalog == CATALOG


def test_gift_pack_price_is_added_per_unit():
    items = [LineItem(product_id=2, quantity=3, gift_pack_id=1, gift_pack_price=500)]

    totals = compute_totals(items, CATALOG, CART_PAGE_PRICING)

    assert totals.subtotal == (1000 + 500) * 3


def test_cart_page_pair_charges_shipping_below_threshold():
    items = [LineItem(product_id=2, quantity=2)]

    totals = compute_totals(items, CATALOG, CART_PAGE_PRICING)

    assert totals.subtotal == 2000
    assert totals.shipping == 1500
    assert totals.tax == 200
    assert totals.total == 3700


def test_subtotal_equal_to_threshold_ships_free():
    pricing = PricingConfig(free_shipping_threshold=2000, shipping_charge=1500, tax_rate=Decimal("0"))
    totals = compute_totals([LineItem(product_id=2, quantity=2)], CATALOG, pricing)
    assert totals.shipping == 0


def test_tax_rounds_half_away_from_zero():
    pricing = PricingConfig(free_shipping_threshold=0, shipping_charge=0, tax_rate=Decimal("0.05"))
    catalog = {9: Product(id=9, price=30)}

    totals = compute_totals([LineItem(product_id=9, quantity=1)], catalog, pricing)

    #30 * 0.05 = 1.5
    assert totals.tax == 2
    assert round_half_away_from_zero(Decimal("-1.5")) == -2
    assert round_half_away_from_zero(Decimal("2.4999")) == 2


def test_product_missing_from_catalog_is_not_priced_as_free():
    items = [
        LineItem(product_id=1, quantity=1),
        LineItem(product_id=99, quantity=1, gift_pack_id=3, gift_pack_price=19900),
    ]

    with pytest.raises(PriceUnavailableError) as exc:
        compute_totals(items, CATALOG, CHECKOUT_PRICING)

    assert exc.value.product_id == 99


def test_empty_cart():
    totals = compute_totals([], CATALOG, CHECKOUT_PRICING)
    assert totals.subtotal == 0
    assert totals.shipping == CHECKOUT_PRICING.shipping_charge
    assert totals.tax == 0


def test_amount_to_free_shipping():
    assert amount_to_free_shipping(45000, CHECKOUT_PRICING) == 5000
    assert amount_to_free_shipping(60000, CHECKOUT_PRICING) == 0
