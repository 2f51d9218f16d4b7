# storefront_cart/main.py
from dataclasses import dataclass

from storefront_cart.domain.errors import CartError, StorefrontApiError
from storefront_cart.domain.schemas import PricingConfig
from storefront_cart.repos.session_repo import SessionRepo
from storefront_cart.repos.storage import build_storage
from storefront_cart.services.cart_service import CartStore
from storefront_cart.services.catalog_service import CatalogService
from storefront_cart.services.identity_service import IdentityResolver
from storefront_cart.services.lock_service import LockService
from storefront_cart.services.order_service import OrderService
from storefront_cart.services.reconciliation_service import CartState, ReconciliationEngine
from storefront_cart.services.storefront_client import StorefrontClient
from storefront_cart.utils.settings import (
    FREE_SHIPPING_THRESHOLD,
    PENDING_REPLAY_DELAY_SECONDS,
    SHIPPING_CHARGE,
    STORAGE_BACKEND,
    TAX_RATE,
)
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)

PRICING = PricingConfig(
    free_shipping_threshold=FREE_SHIPPING_THRESHOLD,
    shipping_charge=SHIPPING_CHARGE,
    tax_rate=TAX_RATE,
)


@dataclass
class Storefront:
    """Everything one browsing context needs, wired once."""

    identity: IdentityResolver
    catalog: CatalogService
    cart: CartStore
    orders: OrderService
    reconciliation: ReconciliationEngine

    async def start(self) -> None:
        """Restore a persisted customer (if any) and load the matching cart."""
        customer = self.identity.restore()
        self.reconciliation.state = CartState.CUSTOMER if customer else CartState.GUEST
        logger.info(f"Starting as {'customer ' + str(customer.id) if customer else 'guest'}")

        try:
            await self.catalog.refresh()
        except StorefrontApiError as e:
            logger.warning(f"Catalog not loaded at start: {e}")

        try:
            await self.cart.reload()
        except CartError as e:
            logger.warning(f"Cart not loaded at start: {e.internal_message}")


def create_storefront(
    client=None,
    storage=None,
    pricing: PricingConfig | None = None,
    replay_delay: float = PENDING_REPLAY_DELAY_SECONDS,
) -> Storefront:
    client = client or StorefrontClient()
    storage = storage or build_storage(STORAGE_BACKEND)
    pricing = pricing or PRICING

    identity = IdentityResolver(SessionRepo(storage))
    catalog = CatalogService(client)
    lock_service = LockService()
    cart = CartStore(client, identity, catalog, lock_service, pricing)
    orders = OrderService(client, identity)
    reconciliation = ReconciliationEngine(
        identity=identity,
        store=cart,
        orders=orders,
        client=client,
        catalog=catalog,
        lock_service=lock_service,
        pricing=pricing,
        replay_delay=replay_delay,
    )

    return Storefront(
        identity=identity,
        catalog=catalog,
        cart=cart,
        orders=orders,
        reconciliation=reconciliation,
    )
