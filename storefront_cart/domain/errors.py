# storefront_cart/domain/errors.py
from typing import Any, Dict, List, Optional

from storefront_cart.utils.currency import format_rupees


class StorefrontError(Exception):
    """
    Base for every error the cart core surfaces to the UI.
    `message` is user facing, `internal_message` goes to the logs.
    """

    default_message = "Something went wrong with your cart."
    error_code = "STOREFRONT_ERROR"
    urgent = False

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.internal_message = internal_message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.message,
                "urgent": self.urgent,
                "details": self.details,
            },
        }


class StorefrontApiError(Exception):
    """Transport level failure of the storefront REST API (never shown to users)."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: Optional[str] = None):
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class AuthRequiredError(StorefrontError):
    default_message = "Please log in to continue."
    error_code = "AUTH_REQUIRED"


class CartError(StorefrontError):
    default_message = "We couldn't update your cart. Please try again."
    error_code = "CART_ERROR"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None, **kwargs):
        self.cause = cause
        if cause is not None and "internal_message" not in kwargs:
            kwargs["internal_message"] = f"{message or self.default_message} ({cause})"
        super().__init__(message, **kwargs)


class OutOfStockError(CartError):
    default_message = "This product is currently out of stock."
    error_code = "OUT_OF_STOCK"


class MergeError(StorefrontError):
    """Non-fatal: some lines could not be carried between guest and customer carts."""

    default_message = "Some items from your previous cart could not be carried over."
    error_code = "CART_MERGE_FAILED"

    def __init__(self, failed_items: List[Any], message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.failed_items = list(failed_items)
        self.cause = cause
        super().__init__(
            message,
            details={"failed_items": len(self.failed_items)},
            internal_message=f"cart reconciliation failed for {len(self.failed_items)} item(s): {cause}",
        )


class PaymentFailure(StorefrontError):
    default_message = "Payment could not be processed. Your cart is unchanged, please try again."
    error_code = "PAYMENT_FAILED"

    def __init__(self, message: Optional[str] = None, cancelled: bool = False, cause: Optional[BaseException] = None):
        self.cancelled = cancelled
        self.cause = cause
        if cancelled and message is None:
            message = "You cancelled the payment. Your cart is unchanged."
        super().__init__(
            message,
            details={"cancelled": cancelled},
            internal_message=f"payment failed (cancelled={cancelled}): {cause or message}",
        )


class OrderSubmissionFailure(StorefrontError):
    """Payment confirmed by the gateway but the order record was not persisted."""

    default_message = (
        "Your payment was received but we could not record your order. "
        "Please contact support with your payment reference. Do not pay again."
    )
    error_code = "ORDER_SUBMISSION_FAILED"
    urgent = True

    def __init__(self, payment_reference: str, amount: int, message: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        self.payment_reference = payment_reference
        self.amount = amount
        self.cause = cause
        if message is None:
            message = (
                f"Your payment of {format_rupees(amount)} (reference {payment_reference}) was received "
                "but we could not record your order. Please contact support and do not pay again."
            )
        super().__init__(
            message,
            details={"payment_reference": payment_reference, "amount": amount},
            internal_message=f"order submission failed after payment {payment_reference}: {cause}",
        )


class OrderLookupError(StorefrontError):
    default_message = "We couldn't load your order details right now."
    error_code = "ORDER_LOOKUP_FAILED"


class PriceUnavailableError(CartError):
    """A line's product has no catalog entry, so the cart cannot be priced."""

    default_message = "We couldn't load current prices. Please try again."
    error_code = "PRICE_UNAVAILABLE"

    def __init__(self, product_id: int, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.product_id = product_id
        super().__init__(
            message,
            cause=cause,
            details={"product_id": product_id},
            internal_message=f"no catalog price for product {product_id}",
        )
