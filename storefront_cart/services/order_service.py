# storefront_cart/services/order_service.py
from typing import Iterable, List, Mapping

from storefront_cart.domain.errors import AuthRequiredError, OrderLookupError, StorefrontApiError
from storefront_cart.domain.schemas import (
    CheckoutRequest,
    CustomerProfile,
    LineItem,
    OrderLine,
    OrderOut,
    OrderPayload,
    PaymentIntent,
    Product,
    Totals,
)
from storefront_cart.services.identity_service import IdentityResolver
from storefront_cart.services.pricing_service import unit_price
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


class OrderService:
    """
    Order side of checkout: builds the order record with price snapshots,
    submits it, and reads orders back for the logged-in customer.
    """

    def __init__(self, client, identity: IdentityResolver):
        self.client = client
        self.identity = identity

    @staticmethod
    def build_order(
        customer: CustomerProfile,
        request: CheckoutRequest,
        items: Iterable[LineItem],
        catalog: Mapping[int, Product],
        totals: Totals,
        intent: PaymentIntent,
    ) -> OrderPayload:
        """
        Prices are captured here (catalog price + gift pack) and never
        recomputed once the order exists.
        """
        lines = []
        for item in items:
            product = catalog.get(item.product_id)
            price = unit_price(item, product)
            lines.append(OrderLine(
                product_id=item.product_id,
                product_name=product.name if product is not None else "",
                quantity=item.quantity,
                size=item.size,
                color=item.color,
                gift_pack_id=item.gift_pack_id,
                unit_price=price,
                line_total=price * item.quantity,
            ))

        return OrderPayload(
            customer_id=customer.id,
            customer_name=request.contact.name,
            customer_email=request.contact.email or customer.email,
            customer_phone=request.contact.phone,
            shipping_address=request.shipping.address,
            shipping_city=request.shipping.city,
            shipping_state=request.shipping.state,
            shipping_zip=request.shipping.zip_code,
            shipping_country=request.shipping.country,
            items=lines,
            subtotal=totals.subtotal,
            shipping=totals.shipping,
            tax=totals.tax,
            total=totals.total,
            currency=intent.currency,
            payment_intent_id=intent.id,
        )

    async def submit(self, order: OrderPayload) -> OrderOut:
        #StorefrontApiError goes up untouched, checkout decides how bad it is
        created = await self.client.create_order(order)
        logger.info(f"Order {created.id} created for customer {order.customer_id}, total {order.total}")
        return created

    async def get_order(self, order_id: str) -> OrderOut:
        try:
            return await self.client.get_order(order_id)
        except StorefrontApiError as e:
            logger.warning(f"Order {order_id} lookup failed: {e}")
            if e.status_code == 404:
                raise OrderLookupError(f"Order {order_id} was not found.") from e
            raise OrderLookupError() from e

    async def list_customer_orders(self) -> List[OrderOut]:
        customer = self.identity.customer
        if customer is None:
            raise AuthRequiredError("Please log in to see your orders.")
        try:
            return await self.client.list_customer_orders(customer.id)
        except StorefrontApiError as e:
            logger.warning(f"Listing orders of customer {customer.id} failed: {e}")
            raise OrderLookupError("We couldn't load your orders right now.") from e
