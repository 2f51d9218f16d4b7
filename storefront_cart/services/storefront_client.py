# storefront_cart/services/storefront_client.py
import asyncio
from typing import Any, Dict, List, Optional

import requests
from requests import RequestException

from storefront_cart.domain.errors import StorefrontApiError
from storefront_cart.domain.schemas import (
    CartRow,
    CustomerOwner,
    GuestOwner,
    LineItem,
    OrderOut,
    OrderPayload,
    OwnerKey,
    PaymentAuthorization,
    PaymentConfirmation,
    PaymentIntent,
    Product,
)
from storefront_cart.utils.retry import http_retry
from storefront_cart.utils.settings import CURRENCY, HTTP_TIMEOUT_SECONDS, STOREFRONT_API_URL
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


def _error_message(resp: requests.Response) -> str:
    message = f"Request failed with status {resp.status_code}"
    try:
        body = resp.json()
    except ValueError:
        text = resp.text or ""
        if "<!DOCTYPE" in text or "<html" in text:
            return "Server returned an HTML error page"
        return text[:200] or message
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or message
    return message


class StorefrontClient:
    """
    Client of the storefront REST API (cart, catalog, payments, orders).
    HTTP runs on requests in a worker thread so callers can await it.
    Every failure leaves as StorefrontApiError.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 session: requests.Session | None = None):
        self.base_url = (base_url or STOREFRONT_API_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    @http_retry()
    def _send(self, method: str, url: str, payload: Optional[dict]) -> requests.Response:
        return self.session.request(method, url, json=payload, timeout=self.timeout)

    def _request_sync(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.info(f"StorefrontClient {method} {url}")

        try:
            resp = self._send(method, url, payload)
        except RequestException as e:
            raise StorefrontApiError(f"{method} {path} failed: {e}", path=path) from e

        if not resp.ok:
            raise StorefrontApiError(_error_message(resp), status_code=resp.status_code, path=path)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StorefrontApiError(f"Expected JSON from {path}", status_code=resp.status_code, path=path) from e

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        return await asyncio.to_thread(self._request_sync, method, path, payload)

    # cart (server-of-record)

    async def get_cart(self, owner: OwnerKey) -> List[CartRow]:
        if isinstance(owner, CustomerOwner):
            data = await self._request("GET", f"/cart/{owner.customer_id}")
        else:
            data = await self._request("GET", f"/cart/session/{owner.session_token}")
        return [CartRow.model_validate(row) for row in data or []]

    async def add_item(self, owner: OwnerKey, item: LineItem) -> None:
        """Server-side upsert: a row with the same natural key gets its quantity increased."""
        body: Dict[str, Any] = item.model_dump()
        if isinstance(owner, CustomerOwner):
            body["customer_id"] = owner.customer_id
            await self._request("POST", "/cart/add", body)
        else:
            body["session_id"] = owner.session_token
            await self._request("POST", "/cart/guest/add", body)

    async def update_item(self, owner: OwnerKey, row_id: int, quantity: int) -> None:
        prefix = "/cart" if isinstance(owner, CustomerOwner) else "/cart/guest"
        await self._request("PUT", f"{prefix}/{row_id}", {"quantity": quantity})

    async def remove_item(self, owner: OwnerKey, row_id: int) -> None:
        prefix = "/cart" if isinstance(owner, CustomerOwner) else "/cart/guest"
        await self._request("DELETE", f"{prefix}/{row_id}")

    async def clear_cart(self, owner: CustomerOwner) -> None:
        if isinstance(owner, GuestOwner):
            raise ValueError("Guest carts have no clear endpoint")
        await self._request("DELETE", f"/cart/clear/{owner.customer_id}")

    # catalog

    async def list_products(self) -> List[Product]:
        data = await self._request("GET", "/products")
        return [Product.model_validate(p) for p in data or []]

    async def get_product(self, product_id: int) -> Product:
        data = await self._request("GET", f"/products/{product_id}")
        return Product.model_validate(data)

    # payments

    async def create_payment_intent(self, amount: int, receipt: str, notes: Optional[dict] = None) -> PaymentIntent:
        data = await self._request("POST", "/payments/create-order", {
            "amount": amount,
            "currency": CURRENCY,
            "receipt": receipt,
            "notes": notes or {},
        })
        return PaymentIntent.model_validate(data)

    async def verify_payment(self, intent: PaymentIntent, authorization: PaymentAuthorization,
                             order: OrderPayload) -> PaymentConfirmation:
        data = await self._request("POST", "/payments/verify-payment", {
            "razorpay_order_id": intent.id,
            "razorpay_payment_id": authorization.payment_id,
            "razorpay_signature": authorization.signature,
            "orderData": order.model_dump(),
        })
        data = data or {}
        return PaymentConfirmation(
            verified=bool(data.get("success", data.get("verified", False))),
            payment_id=data.get("payment_id") or authorization.payment_id,
            message=data.get("message", ""),
        )

    # orders

    async def create_order(self, order: OrderPayload) -> OrderOut:
        data = await self._request("POST", "/orders", order.model_dump())
        return OrderOut.model_validate(data)

    async def get_order(self, order_id: str) -> OrderOut:
        data = await self._request("GET", f"/orders/{order_id}")
        return OrderOut.model_validate(data)

    async def list_customer_orders(self, customer_id: int) -> List[OrderOut]:
        data = await self._request("GET", f"/orders/customer/{customer_id}")
        return [OrderOut.model_validate(o) for o in data or []]

    def close(self) -> None:
        self.session.close()
