# storefront_cart/services/cart_service.py
from typing import Iterable, List, Optional

from storefront_cart.domain.errors import AuthRequiredError, CartError, OutOfStockError, StorefrontApiError
from storefront_cart.domain.schemas import (
    CartRow,
    CustomerOwner,
    LineItem,
    NaturalKey,
    OwnerKey,
    PricingConfig,
    Totals,
    natural_key,
)
from storefront_cart.services.catalog_service import CatalogService
from storefront_cart.services.identity_service import IdentityResolver
from storefront_cart.services.lock_service import LockService
from storefront_cart.services.pricing_service import amount_to_free_shipping, compute_totals
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


class CartStore:
    """
    Single owner of the local cart mirror.

    Commands talk to the server-of-record for the current owner and then update
    the mirror. add_item applies optimistically and rolls the line back on
    failure; remove_item is always honoured locally, even when the server call
    fails. Queries only read the mirror.
    """

    def __init__(
        self,
        client,
        identity: IdentityResolver,
        catalog: CatalogService,
        lock_service: LockService,
        pricing: PricingConfig,
    ):
        self.client = client
        self.identity = identity
        self.catalog = catalog
        self.lock_service = lock_service
        self.pricing = pricing
        self._items: List[LineItem] = []

    # =====================================================
    # QUERY
    # =====================================================
    def items(self) -> List[LineItem]:
        return [item.model_copy() for item in self._items]

    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def totals(self, pricing: PricingConfig | None = None) -> Totals:
        return compute_totals(tuple(self._items), self.catalog.snapshot(), pricing or self.pricing)

    def total(self) -> int:
        return self.totals().total

    def amount_to_free_shipping(self) -> int:
        return amount_to_free_shipping(self.totals().subtotal, self.pricing)

    # =====================================================
    # COMMANDS
    # =====================================================
    async def add_item(self, item: LineItem, require_auth: bool = False) -> None:
        async with self.lock_service.mutation():
            if require_auth and not self.identity.is_authenticated:
                #nothing touched, caller logs in and resubmits the same payload
                logger.info(f"Add of product {item.product_id} refused, login required")
                raise AuthRequiredError("Please log in to add this item to your cart.")
            await self.apply_add(item)

    async def remove_item(
        self,
        product_id: int,
        size: Optional[str] = None,
        color: Optional[str] = None,
        gift_pack_id: Optional[int] = None,
    ) -> None:
        key = natural_key(product_id, size, color, gift_pack_id)

        async with self.lock_service.mutation():
            owner = self.identity.current_owner()
            async with self.lock_service.key_lock(owner, key):
                self._drop_local(key)
                try:
                    row = await self._remote_row(owner, key)
                    if row is not None:
                        await self.client.remove_item(owner, row.id)
                except StorefrontApiError as e:
                    #removed item stays removed in the UI
                    logger.warning(f"Server removal of {key} failed, kept local removal: {e}")
                    raise CartError("The item was removed, but we couldn't sync your cart.", cause=e) from e

        logger.info(f"Removed {key} from cart of {owner.kind}")

    async def update_quantity(
        self,
        product_id: int,
        quantity: int,
        size: Optional[str] = None,
        color: Optional[str] = None,
        gift_pack_id: Optional[int] = None,
    ) -> None:
        if quantity <= 0:
            await self.remove_item(product_id, size, color, gift_pack_id)
            return

        key = natural_key(product_id, size, color, gift_pack_id)

        async with self.lock_service.mutation():
            owner = self.identity.current_owner()
            async with self.lock_service.key_lock(owner, key):
                local = self._line(key)
                try:
                    #re-read the server row instead of trusting in-flight state
                    row = await self._remote_row(owner, key)
                    if row is not None:
                        await self.client.update_item(owner, row.id, quantity)
                    elif local is not None:
                        logger.warning(f"Server lost line {key}, re-creating it")
                        await self.client.add_item(owner, local.model_copy(update={"quantity": quantity}))
                    else:
                        logger.info(f"No cart line {key} to update")
                        return
                except StorefrontApiError as e:
                    logger.warning(f"Quantity update of {key} failed: {e}")
                    raise CartError("We couldn't update the quantity. Please try again.", cause=e) from e

                self._set_local_quantity(key, quantity, fallback=row)

        logger.info(f"Quantity of {key} set to {quantity}")

    async def clear(self) -> None:
        async with self.lock_service.mutation():
            owner = self.identity.current_owner()
            if isinstance(owner, CustomerOwner):
                try:
                    await self.client.clear_cart(owner)
                except StorefrontApiError as e:
                    logger.warning(f"Clearing cart of customer {owner.customer_id} failed: {e}")
                    raise CartError("We couldn't clear your cart. Please try again.", cause=e) from e
            #guest carts are ephemeral, only the mirror is emptied
            self._items = []

        logger.info(f"Cart of {owner.kind} cleared")

    # =====================================================
    # RECONCILIATION INTERFACE
    # callers hold the reconciliation gate, so none of these wait on it
    # =====================================================
    async def apply_add(self, item: LineItem) -> None:
        """Add for the current owner: optimistic mirror merge, server upsert, line rollback on failure."""
        await self._check_stock(item)

        owner = self.identity.current_owner()
        key = item.natural_key

        async with self.lock_service.key_lock(owner, key):
            previous = self._merge_local(item)
            try:
                await self.client.add_item(owner, item)
            except StorefrontApiError as e:
                self._restore_line(key, previous)
                logger.warning(f"Add of {key} failed, rolled back: {e}")
                raise CartError("Failed to add item to cart.", cause=e) from e

        logger.info(f"Added {item.quantity} x {key} to cart of {owner.kind}")

    async def remote_items(self, owner: OwnerKey) -> List[LineItem]:
        try:
            rows = await self.client.get_cart(owner)
        except StorefrontApiError as e:
            raise CartError("We couldn't load your cart.", cause=e) from e
        return [row.as_line_item() for row in rows]

    async def push_item(self, owner: OwnerKey, item: LineItem) -> None:
        try:
            await self.client.add_item(owner, item)
        except StorefrontApiError as e:
            raise CartError("Failed to add item to cart.", cause=e) from e

    async def trim_remote(self, owner: OwnerKey, item: LineItem) -> None:
        """Take `item.quantity` back out of the matching server line."""
        try:
            row = await self._remote_row(owner, item.natural_key)
            if row is None:
                return
            remaining = row.quantity - item.quantity
            if remaining > 0:
                await self.client.update_item(owner, row.id, remaining)
            else:
                await self.client.remove_item(owner, row.id)
        except StorefrontApiError as e:
            raise CartError("We couldn't update your cart.", cause=e) from e

    async def clear_remote(self, owner: CustomerOwner) -> None:
        try:
            await self.client.clear_cart(owner)
        except StorefrontApiError as e:
            raise CartError("We couldn't clear your cart.", cause=e) from e

    async def reload(self) -> List[LineItem]:
        """Replace the mirror with the server cart of the current owner."""
        owner = self.identity.current_owner()
        items = await self.remote_items(owner)
        self.reset_mirror(items)
        logger.info(f"Cart mirror reloaded for {owner.kind}, {len(self._items)} lines")
        await self.ensure_prices()
        return self.items()

    async def ensure_prices(self) -> bool:
        """Load catalog entries for every mirrored line. False if some could not be fetched."""
        try:
            await self.catalog.ensure(item.product_id for item in self._items)
        except StorefrontApiError as e:
            #totals() raises PriceUnavailableError until the catalog is reachable again
            logger.warning(f"Catalog entries for cart lines not loaded: {e}")
            return False
        return True

    def reset_mirror(self, items: Iterable[LineItem] = ()) -> None:
        self._items = []
        for item in items:
            self._merge_local(item)

    # =====================================================
    # helpers
    # =====================================================
    async def _check_stock(self, item: LineItem) -> None:
        try:
            product = await self.catalog.get_product(item.product_id)
        except StorefrontApiError as e:
            raise CartError("This product is not available right now.", cause=e) from e

        if not product.in_stock(item.size):
            logger.info(f"Product {item.product_id} size '{item.size}' out of stock")
            raise OutOfStockError()

    async def _remote_row(self, owner: OwnerKey, key: NaturalKey) -> Optional[CartRow]:
        rows = await self.client.get_cart(owner)
        return next((row for row in rows if row.natural_key == key), None)

    def _index(self, key: NaturalKey) -> Optional[int]:
        return next((i for i, line in enumerate(self._items) if line.natural_key == key), None)

    def _line(self, key: NaturalKey) -> Optional[LineItem]:
        idx = self._index(key)
        return None if idx is None else self._items[idx]

    def _merge_local(self, item: LineItem) -> Optional[LineItem]:
        """Same natural key sums quantities, otherwise appends. Returns the line as it was before."""
        idx = self._index(item.natural_key)
        if idx is None:
            self._items.append(item.model_copy())
            return None

        previous = self._items[idx]
        self._items[idx] = previous.model_copy(update={"quantity": previous.quantity + item.quantity})
        return previous

    def _restore_line(self, key: NaturalKey, previous: Optional[LineItem]) -> None:
        idx = self._index(key)
        if idx is None:
            if previous is not None:
                self._items.append(previous)
            return
        if previous is None:
            del self._items[idx]
        else:
            self._items[idx] = previous

    def _drop_local(self, key: NaturalKey) -> None:
        self._items = [line for line in self._items if line.natural_key != key]

    def _set_local_quantity(self, key: NaturalKey, quantity: int, fallback: Optional[CartRow] = None) -> None:
        idx = self._index(key)
        if idx is not None:
            self._items[idx] = self._items[idx].model_copy(update={"quantity": quantity})
        elif fallback is not None:
            self._items.append(fallback.as_line_item().model_copy(update={"quantity": quantity}))
