# storefront_cart/services/reconciliation_service.py
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from storefront_cart.domain.errors import (
    AuthRequiredError,
    CartError,
    MergeError,
    OrderSubmissionFailure,
    OutOfStockError,
    PaymentFailure,
    StorefrontApiError,
    StorefrontError,
)
from storefront_cart.domain.schemas import (
    CheckoutRequest,
    CheckoutResult,
    CustomerOwner,
    CustomerProfile,
    GuestOwner,
    LineItem,
    PaymentAuthorization,
    PaymentIntent,
    PendingCartOperation,
    PricingConfig,
)
from storefront_cart.services.cart_service import CartStore
from storefront_cart.services.catalog_service import CatalogService
from storefront_cart.services.identity_service import IdentityResolver
from storefront_cart.services.lock_service import LockService
from storefront_cart.services.order_service import OrderService
from storefront_cart.services.pricing_service import compute_totals
from storefront_cart.utils.settings import PENDING_REPLAY_DELAY_SECONDS
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)

Authenticator = Callable[[], Awaitable[CustomerProfile]]
PaymentAuthorizer = Callable[[PaymentIntent], Awaitable[PaymentAuthorization]]


class CartState(str, Enum):
    GUEST = "GUEST"
    AUTHENTICATING = "AUTHENTICATING"
    CUSTOMER = "CUSTOMER"


@dataclass
class PendingCheckout:
    request: CheckoutRequest
    authorizer: PaymentAuthorizer


@dataclass
class LoginResult:
    customer: CustomerProfile
    merge_error: Optional[MergeError] = None
    replay_errors: List[CartError] = field(default_factory=list)
    checkout: Optional[CheckoutResult] = None
    checkout_error: Optional[StorefrontError] = None


@dataclass
class LogoutResult:
    carry_over_error: Optional[MergeError] = None


def _replayable(exc: BaseException) -> bool:
    return isinstance(exc, CartError) and not isinstance(exc, OutOfStockError)


class ReconciliationEngine:
    """
    Owns the GUEST -> AUTHENTICATING -> CUSTOMER -> GUEST transitions.

    Login merges the guest cart into the customer cart and replays adds that
    were refused for lack of login. Logout demotes the customer cart back to a
    guest cart. Checkout commits the cart to an order and clears it only once
    the order exists. Identity transitions always complete, cart problems come
    back as MergeError / CartError inside the result.
    """

    def __init__(
        self,
        identity: IdentityResolver,
        store: CartStore,
        orders: OrderService,
        client,
        catalog: CatalogService,
        lock_service: LockService,
        pricing: PricingConfig,
        replay_delay: float = PENDING_REPLAY_DELAY_SECONDS,
    ):
        self.identity = identity
        self.store = store
        self.orders = orders
        self.client = client
        self.catalog = catalog
        self.lock_service = lock_service
        self.pricing = pricing
        self.replay_delay = replay_delay
        self.state = CartState.CUSTOMER if identity.is_authenticated else CartState.GUEST
        self._pending: List[PendingCartOperation] = []
        self._pending_checkout: Optional[PendingCheckout] = None

    @property
    def pending_operations(self) -> List[PendingCartOperation]:
        return list(self._pending)

    @property
    def pending_checkout(self) -> Optional[PendingCheckout]:
        return self._pending_checkout

    async def add_item(self, item: LineItem, require_auth: bool = False) -> None:
        """Cart add that remembers a login-gated add so login can replay it."""
        try:
            await self.store.add_item(item, require_auth=require_auth)
        except AuthRequiredError:
            self._pending.append(PendingCartOperation(item=item))
            logger.info(f"Queued add of product {item.product_id} until login")
            raise

    # =====================================================
    # LOGIN: GUEST -> CUSTOMER
    # =====================================================
    async def login(self, authenticate: Authenticator) -> LoginResult:
        if self.state == CartState.CUSTOMER:
            raise RuntimeError("A customer is already logged in")

        self.state = CartState.AUTHENTICATING
        try:
            profile = await authenticate()
        except Exception:
            self.state = CartState.GUEST
            logger.info("Authentication failed, staying guest")
            raise

        result = LoginResult(customer=profile)

        async with self.lock_service.reconciliation():
            guest_token = self.identity.peek_session_token()
            self.identity.set_customer(profile)
            self.state = CartState.CUSTOMER
            logger.info(f"Customer {profile.id} logged in, merging guest session {guest_token}")

            try:
                result.merge_error = await self._merge_guest_cart(guest_token, CustomerOwner(customer_id=profile.id))
            finally:
                #merged or not, this token is never used again
                self.identity.discard_session_token()

            result.replay_errors = await self._replay_pending()

        if self._pending_checkout is not None:
            result.checkout, result.checkout_error = await self._replay_checkout()

        return result

    async def _merge_guest_cart(self, guest_token: Optional[str], customer: CustomerOwner) -> Optional[MergeError]:
        try:
            customer_items = await self.store.remote_items(customer)
        except CartError as e:
            logger.warning(f"Could not read cart of customer {customer.customer_id}: {e.internal_message}")
            customer_items = []

        if guest_token is None:
            guest_items: List[LineItem] = []
        else:
            try:
                guest_items = await self.store.remote_items(GuestOwner(session_token=guest_token))
            except CartError as e:
                logger.warning(f"Could not read guest cart {guest_token}: {e.internal_message}")
                await self._refresh_mirror(customer_items)
                return MergeError(self.store.items(), cause=e)

        merged, failed = [], []
        last_error: Optional[CartError] = None
        for item in guest_items:
            try:
                await self.store.push_item(customer, item)
                merged.append(item)
            except CartError as e:
                logger.warning(f"Merging {item.natural_key} into customer {customer.customer_id} failed")
                failed.append(item)
                last_error = e

        await self._refresh_mirror(customer_items + merged)

        if failed:
            #guest cart on the server is left as it was
            error = MergeError(failed, cause=last_error)
            logger.warning(error.internal_message)
            return error

        logger.info(f"Merged {len(merged)} guest lines into customer {customer.customer_id}")
        return None

    async def _refresh_mirror(self, expected: List[LineItem]) -> None:
        try:
            await self.store.reload()
        except CartError as e:
            logger.warning(f"Mirror reload failed, using locally merged view: {e.internal_message}")
            self.store.reset_mirror(expected)
            await self.store.ensure_prices()

    async def _replay_pending(self) -> List[CartError]:
        ops, self._pending = self._pending, []
        errors: List[CartError] = []

        for op in ops:
            try:
                async for attempt in AsyncRetrying(
                    reraise=True,
                    stop=stop_after_attempt(2),
                    wait=wait_fixed(self.replay_delay),
                    retry=retry_if_exception(_replayable),
                ):
                    with attempt:
                        await self.store.apply_add(op.item)
                logger.info(f"Replayed pending add of product {op.item.product_id}")
            except CartError as e:
                logger.warning(f"Pending add of product {op.item.product_id} failed: {e.internal_message}")
                errors.append(e)

        return errors

    async def _replay_checkout(self):
        pending, self._pending_checkout = self._pending_checkout, None
        logger.info("Replaying checkout requested before login")
        try:
            return await self.checkout(pending.request, pending.authorizer), None
        except StorefrontError as e:
            logger.warning(f"Replayed checkout failed: {e.internal_message}")
            return None, e

    # =====================================================
    # LOGOUT: CUSTOMER -> GUEST
    # =====================================================
    async def logout(self) -> LogoutResult:
        result = LogoutResult()

        if not self.identity.is_authenticated:
            self.state = CartState.GUEST
            return result

        async with self.lock_service.reconciliation():
            customer = self.identity.current_owner()
            try:
                result.carry_over_error = await self._carry_over(customer)
            finally:
                #logout happens even if carry-over blew up
                self.identity.clear_customer()
                self.state = CartState.GUEST
                self._pending_checkout = None

            try:
                await self.store.reload()
            except CartError as e:
                logger.warning(f"Guest cart reload after logout failed: {e.internal_message}")
                self.store.reset_mirror()

        logger.info(f"Customer {customer.customer_id} logged out")
        return result

    async def _carry_over(self, customer: CustomerOwner) -> Optional[MergeError]:
        try:
            items = await self.store.remote_items(customer)
        except CartError as e:
            logger.warning(f"Could not read cart of customer {customer.customer_id} at logout: {e.internal_message}")
            return MergeError(self.store.items(), cause=e)

        guest = GuestOwner(session_token=self.identity.get_session_token())
        carried, failed = [], []
        last_error: Optional[CartError] = None

        for item in items:
            try:
                await self.store.push_item(guest, item)
                carried.append(item)
            except CartError as e:
                failed.append(item)
                last_error = e

        if not failed:
            try:
                await self.store.clear_remote(customer)
                logger.info(f"Carried {len(carried)} lines to guest session {guest.session_token}")
                return None
            except CartError as e:
                failed, last_error = list(items), e

        #customer cart stays authoritative, guest copy is undone so nothing doubles up on next login
        await self._undo_carry_over(guest, carried)
        error = MergeError(failed, cause=last_error)
        logger.warning(error.internal_message)
        return error

    async def _undo_carry_over(self, guest: GuestOwner, carried: List[LineItem]) -> None:
        for item in carried:
            try:
                await self.store.trim_remote(guest, item)
            except CartError as e:
                logger.error(f"Could not undo carry-over of {item.natural_key}: {e.internal_message}")

    # =====================================================
    # CHECKOUT COMMIT
    # =====================================================
    async def checkout(self, request: CheckoutRequest, authorizer: PaymentAuthorizer) -> CheckoutResult:
        customer = self.identity.customer
        if customer is None:
            self._pending_checkout = PendingCheckout(request=request, authorizer=authorizer)
            logger.info("Checkout queued until login")
            raise AuthRequiredError("Please log in to place your order.")

        items = self.store.items()
        if not items:
            raise CartError("Your cart is empty.")

        try:
            #prices as of now, not as cached when the lines were added
            catalog = await self.catalog.refresh_products(item.product_id for item in items)
        except StorefrontApiError as e:
            raise CartError("We couldn't load current prices. Please try again.", cause=e) from e

        totals = compute_totals(items, catalog, self.pricing)
        receipt = f"receipt_{int(time.time() * 1000)}"

        try:
            intent = await self.client.create_payment_intent(totals.total, receipt, {"cart_items": len(items)})
        except StorefrontApiError as e:
            logger.warning(f"Payment intent creation failed: {e}")
            raise PaymentFailure("We couldn't start the payment. Please try again.", cause=e) from e

        order = self.orders.build_order(customer, request, items, catalog, totals, intent)

        try:
            authorization = await authorizer(intent)
        except PaymentFailure as e:
            logger.info(f"Payment {intent.id} not completed: {e.internal_message}")
            raise
        except Exception as e:
            logger.warning(f"Payment authorizer for {intent.id} crashed: {e}")
            raise PaymentFailure(cause=e) from e

        try:
            confirmation = await self.client.verify_payment(intent, authorization, order)
        except StorefrontApiError as e:
            logger.warning(f"Verification of payment {authorization.payment_id} failed: {e}")
            raise PaymentFailure("We couldn't confirm your payment. Please try again.", cause=e) from e

        if not confirmation.verified:
            raise PaymentFailure(confirmation.message or None)

        order = order.model_copy(update={"payment_id": confirmation.payment_id})

        try:
            created = await self.orders.submit(order)
        except StorefrontApiError as e:
            #money moved, keep the cart and hand it to support, never retry here
            logger.critical(
                f"Order submission failed after confirmed payment {confirmation.payment_id} "
                f"of {totals.total} for customer {customer.id}: {e}"
            )
            raise OrderSubmissionFailure(
                payment_reference=confirmation.payment_id,
                amount=totals.total,
                cause=e,
            ) from e

        cart_cleared = True
        try:
            await self.store.clear()
        except CartError as e:
            logger.warning(f"Order {created.id} placed but cart clear failed: {e.internal_message}")
            cart_cleared = False

        logger.info(f"Checkout complete, order {created.id}")
        return CheckoutResult(
            order_id=created.id,
            payment_id=confirmation.payment_id,
            totals=totals,
            cart_cleared=cart_cleared,
        )
