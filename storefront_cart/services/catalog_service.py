# storefront_cart/services/catalog_service.py
from typing import Dict, Iterable, Mapping

from storefront_cart.domain.schemas import Product
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogService:
    """Local snapshot of the product catalog used for pricing and stock checks."""

    def __init__(self, client):
        self.client = client
        self._products: Dict[int, Product] = {}

    def snapshot(self) -> Mapping[int, Product]:
        #copy, pricing must never see a catalog changing under it
        return dict(self._products)

    async def refresh(self) -> Mapping[int, Product]:
        products = await self.client.list_products()
        self._products = {p.id: p for p in products}
        logger.info(f"Catalog refreshed, {len(self._products)} products")
        return self.snapshot()

    async def get_product(self, product_id: int, fresh: bool = False) -> Product:
        if fresh or product_id not in self._products:
            logger.info(f"Fetching product {product_id}")
            self._products[product_id] = await self.client.get_product(product_id)
        return self._products[product_id]

    async def ensure(self, product_ids: Iterable[int]) -> Mapping[int, Product]:
        for product_id in set(product_ids):
            if product_id not in self._products:
                await self.get_product(product_id)
        return self.snapshot()

    async def refresh_products(self, product_ids: Iterable[int]) -> Mapping[int, Product]:
        """Re-read the given products from the catalog, ignoring the cache."""
        for product_id in sorted(set(product_ids)):
            await self.get_product(product_id, fresh=True)
        return self.snapshot()
