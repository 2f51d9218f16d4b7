# storefront_cart/domain/schemas.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

NaturalKey = Tuple[int, str, str, Optional[int]]


def natural_key(
    product_id: int,
    size: Optional[str] = None,
    color: Optional[str] = None,
    gift_pack_id: Optional[int] = None,
) -> NaturalKey:
    """Omitted size/color/gift pack mean "unspecified", never "any"."""
    return (product_id, size or "", color or "", gift_pack_id or None)


class GuestOwner(BaseModel):
    """Cart addressed by the browser's guest session token."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["guest"] = "guest"
    session_token: str = Field(..., min_length=1)


class CustomerOwner(BaseModel):
    """Cart addressed by the authenticated customer id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["customer"] = "customer"
    customer_id: int = Field(..., gt=0)


OwnerKey = Union[GuestOwner, CustomerOwner]


class LineItem(BaseModel):
    """Schema for one purchasable configuration in a cart."""

    product_id: int = Field(..., gt=0, description="Catalog product id")
    quantity: int = Field(..., ge=1, description="Units of this configuration")
    size: str = Field("", description="'' means unspecified")
    color: str = Field("", description="'' means unspecified")
    gift_pack_id: Optional[int] = Field(None, gt=0)
    gift_pack_price: Optional[int] = Field(None, ge=0, description="Gift pack price captured at add time (minor units)")

    @field_validator("size", "color", mode="before")
    @classmethod
    def _blank_when_missing(cls, value):
        return "" if value is None else value

    @property
    def natural_key(self) -> NaturalKey:
        return natural_key(self.product_id, self.size, self.color, self.gift_pack_id)


class CartRow(LineItem):
    """Line item as stored by the server-of-record, with its row id."""

    model_config = ConfigDict(extra="ignore")

    id: int

    def as_line_item(self) -> LineItem:
        return LineItem(**self.model_dump(exclude={"id"}))


class Product(BaseModel):
    """Catalog entry. Read only for the cart core."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    name: str = ""
    price_minor_units: int = Field(..., ge=0, alias="price")
    available_quantity: Optional[int] = Field(None, alias="quantity")
    size_stock: Optional[Dict[str, int]] = None

    def in_stock(self, size: str = "") -> bool:
        if self.available_quantity is not None and self.available_quantity <= 0:
            return False
        if size and self.size_stock:
            remaining = self.size_stock.get(size.strip())
            if remaining is not None and remaining <= 0:
                return False
        return True


class CustomerProfile(BaseModel):
    """Snapshot of the authenticated customer returned by the identity provider."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., gt=0)
    email: str = ""
    name: str = ""
    phone: Optional[str] = None


class PendingCartOperation(BaseModel):
    """Add refused with AuthRequiredError, replayed after login."""

    item: LineItem
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PricingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    free_shipping_threshold: int = Field(..., ge=0)
    shipping_charge: int = Field(..., ge=0)
    tax_rate: Decimal = Field(..., ge=0)


class Totals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: int
    shipping: int
    tax: int
    total: int


class CustomerContact(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=1)


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = "India"


class CheckoutRequest(BaseModel):
    """What the checkout form collects."""

    contact: CustomerContact
    shipping: ShippingAddress


class PaymentIntent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"


class PaymentAuthorization(BaseModel):
    """What the gateway UI hands back after the customer pays."""

    payment_id: str
    signature: str


class PaymentConfirmation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    verified: bool
    payment_id: str
    message: str = ""


class OrderLine(BaseModel):
    product_id: int
    product_name: str = ""
    quantity: int
    size: str = ""
    color: str = ""
    gift_pack_id: Optional[int] = None
    unit_price: int = Field(..., description="Product price + gift pack price at submit time")
    line_total: int


class OrderPayload(BaseModel):
    """Order record submitted after the gateway confirms payment."""

    customer_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_zip: str
    shipping_country: str
    items: List[OrderLine]
    subtotal: int
    shipping: int
    tax: int
    total: int
    currency: str
    payment_intent_id: str
    payment_id: Optional[str] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    status: str = "PROCESSING"
    total: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class CheckoutResult(BaseModel):
    order_id: str
    payment_id: str
    totals: Totals
    cart_cleared: bool = True
