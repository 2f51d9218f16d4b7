# storefront_cart/services/pricing_service.py
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from storefront_cart.domain.errors import PriceUnavailableError
from storefront_cart.domain.schemas import LineItem, PricingConfig, Product, Totals


def round_half_away_from_zero(value: Decimal) -> int:
    #ROUND_HALF_UP in decimal rounds .5 away from zero for negatives too
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def unit_price(item: LineItem, product: Product | None) -> int:
    """Catalog price plus the gift pack snapshot."""
    if product is None:
        #never price a line we have no catalog entry for
        raise PriceUnavailableError(item.product_id)
    return product.price_minor_units + (item.gift_pack_price or 0)


def compute_subtotal(line_items: Iterable[LineItem], catalog: Mapping[int, Product]) -> int:
    return sum(unit_price(item, catalog.get(item.product_id)) * item.quantity for item in line_items)


def compute_totals(
    line_items: Iterable[LineItem],
    catalog: Mapping[int, Product],
    pricing: PricingConfig,
) -> Totals:
    """
    Pure totals over a cart and a catalog snapshot, all in minor units.
    Inputs are only read.
    """
    subtotal = compute_subtotal(line_items, catalog)
    shipping = 0 if subtotal >= pricing.free_shipping_threshold else pricing.shipping_charge
    tax = round_half_away_from_zero(Decimal(subtotal) * pricing.tax_rate)

    return Totals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
    )


def amount_to_free_shipping(subtotal: int, pricing: PricingConfig) -> int:
    return max(pricing.free_shipping_threshold - subtotal, 0)
