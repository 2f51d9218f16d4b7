# tests/conftest.py
import asyncio
import itertools
from typing import Dict, List, Optional

import pytest

from storefront_cart.domain.errors import StorefrontApiError
from storefront_cart.domain.schemas import (
    CartRow,
    CheckoutRequest,
    CustomerContact,
    CustomerOwner,
    CustomerProfile,
    LineItem,
    OrderOut,
    PaymentAuthorization,
    PaymentConfirmation,
    PaymentIntent,
    PricingConfig,
    Product,
    ShippingAddress,
)
from storefront_cart.main import create_storefront
from storefront_cart.repos.storage import MemoryStorage

CHECKOUT_PRICING = PricingConfig(free_shipping_threshold=50000, shipping_charge=5000, tax_rate="0.05")
CART_PAGE_PRICING = PricingConfig(free_shipping_threshold=5000, shipping_charge=1500, tax_rate="0.10")


class FakeStorefrontApi:
    """
    In-memory server-of-record with the same coroutine interface as StorefrontClient.
    `fail(op, times)` makes the next `times` calls of `op` raise (times=None: always).
    """

    def __init__(self, products: List[Product]):
        self.products: Dict[int, Product] = {p.id: p for p in products}
        self.carts: Dict[str, List[CartRow]] = {}
        self.orders: Dict[str, OrderOut] = {}
        self.submitted = []
        self.calls: List[tuple] = []
        self.verified = True
        self._failures: Dict[str, Optional[int]] = {}
        self._row_ids = itertools.count(1)
        self._order_ids = itertools.count(1001)
        self._intent_ids = itertools.count(1)

    # helpers for tests

    def fail(self, op: str, times: Optional[int] = None) -> None:
        self._failures[op] = times

    def heal(self, op: str) -> None:
        self._failures.pop(op, None)

    def cart_of(self, owner) -> Dict[tuple, int]:
        return {row.natural_key: row.quantity for row in self.carts.get(self._owner_id(owner), [])}

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    @staticmethod
    def _owner_id(owner) -> str:
        if isinstance(owner, CustomerOwner):
            return f"customer:{owner.customer_id}"
        return f"guest:{owner.session_token}"

    async def _enter(self, op: str, *args) -> None:
        #a real network round trip is a suspension point
        await asyncio.sleep(0)
        self.calls.append((op,) + args)
        if op in self._failures:
            remaining = self._failures[op]
            if remaining is None:
                raise StorefrontApiError(f"{op} failed", status_code=500)
            if remaining > 0:
                self._failures[op] = remaining - 1
                raise StorefrontApiError(f"{op} failed", status_code=500)

    # cart

    async def get_cart(self, owner) -> List[CartRow]:
        await self._enter("get_cart", owner)
        return [row.model_copy() for row in self.carts.get(self._owner_id(owner), [])]

    async def add_item(self, owner, item: LineItem) -> None:
        await self._enter("add_item", owner, item)
        rows = self.carts.setdefault(self._owner_id(owner), [])
        for idx, row in enumerate(rows):
            if row.natural_key == item.natural_key:
                rows[idx] = row.model_copy(update={"quantity": row.quantity + item.quantity})
                return
        rows.append(CartRow(id=next(self._row_ids), **item.model_dump()))

    async def update_item(self, owner, row_id: int, quantity: int) -> None:
        await self._enter("update_item", owner, row_id, quantity)
        rows = self.carts.get(self._owner_id(owner), [])
        for idx, row in enumerate(rows):
            if row.id == row_id:
                rows[idx] = row.model_copy(update={"quantity": quantity})
                return
        raise StorefrontApiError("Cart item not found", status_code=404)

    async def remove_item(self, owner, row_id: int) -> None:
        await self._enter("remove_item", owner, row_id)
        key = self._owner_id(owner)
        self.carts[key] = [row for row in self.carts.get(key, []) if row.id != row_id]

    async def clear_cart(self, owner) -> None:
        await self._enter("clear_cart", owner)
        self.carts[self._owner_id(owner)] = []

    # catalog

    async def list_products(self) -> List[Product]:
        await self._enter("list_products")
        return list(self.products.values())

    async def get_product(self, product_id: int) -> Product:
        await self._enter("get_product", product_id)
        if product_id not in self.products:
            raise StorefrontApiError("Product not found", status_code=404)
        return self.products[product_id]

    # payments

    async def create_payment_intent(self, amount: int, receipt: str, notes=None) -> PaymentIntent:
        await self._enter("create_payment_intent", amount, receipt)
        return PaymentIntent(id=f"order_{next(self._intent_ids)}", amount=amount, currency="INR", receipt=receipt)

    async def verify_payment(self, intent, authorization, order) -> PaymentConfirmation:
        await self._enter("verify_payment", intent.id, authorization.payment_id)
        return PaymentConfirmation(verified=self.verified, payment_id=authorization.payment_id,
                                   message="" if self.verified else "Invalid signature")

    # orders

    async def create_order(self, order) -> OrderOut:
        await self._enter("create_order", order)
        created = OrderOut(id=str(next(self._order_ids)), status="PROCESSING", total=order.total,
                           customer_id=order.customer_id)
        self.orders[created.id] = created
        self.submitted.append(order)
        return created

    async def get_order(self, order_id: str) -> OrderOut:
        await self._enter("get_order", order_id)
        if order_id not in self.orders:
            raise StorefrontApiError("Order not found", status_code=404)
        return self.orders[order_id]

    async def list_customer_orders(self, customer_id: int) -> List[OrderOut]:
        await self._enter("list_customer_orders", customer_id)
        return [o for o in self.orders.values() if getattr(o, "customer_id", None) == customer_id]


def authenticator(profile: CustomerProfile):
    async def _authenticate() -> CustomerProfile:
        return profile
    return _authenticate


def authorizer(payment_id: str = "pay_123"):
    async def _authorize(intent: PaymentIntent) -> PaymentAuthorization:
        return PaymentAuthorization(payment_id=payment_id, signature="sig")
    return _authorize


@pytest.fixture
def products():
    return [
        Product(id=1, name="Frock", price=79900, quantity=10),
        Product(id=2, name="Romper", price=49900, quantity=5, size_stock={"S": 0, "M": 3}),
        Product(id=3, name="Sold out bib", price=9900, quantity=0),
        Product(id=4, name="Socks", price=1000, quantity=50),
    ]


@pytest.fixture
def api(products):
    return FakeStorefrontApi(products)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def storefront(api, storage):
    return create_storefront(client=api, storage=storage, pricing=CHECKOUT_PRICING, replay_delay=0)


@pytest.fixture
def customer():
    return CustomerProfile(id=42, email="asha@example.com", name="Asha")


@pytest.fixture
def checkout_request():
    return CheckoutRequest(
        contact=CustomerContact(name="Asha Rao", email="asha@example.com", phone="9876543210"),
        shipping=ShippingAddress(address="12 MG Road", city="Bengaluru", state="KA", zip_code="560001"),
    )
