"""
catalog.py — Catalog Cache and Catalog Service

The cache holds fetched product records together with the pagination metadata
of the last full list fetch. Entries and the `loaded` flag have independent
lifetimes:

    set_all()                 full replace, loaded = True
    upsert_one() / remove_one()   point edit applied immediately, loaded = False

A point edit can change page counts, so after one the metadata is no longer
authoritative and the next list render refetches. The service below performs
that refetch and the other remote catalog calls.
"""

import logging
from typing import Dict, Iterable, List, Optional

import httpx

from .clients import OrderApiClient
from .errors import CacheStalenessError
from .models import MetaData, Product, ProductParams

log = logging.getLogger(__name__)


class CatalogCache:
    def __init__(self):
        self._products: Dict[int, Product] = {}
        self.loaded = False
        self.meta_data: Optional[MetaData] = None
        self.product_params = ProductParams()
        self.brands: List[str] = []
        self.types: List[str] = []
        self.filters_loaded = False
        self.status = "idle"

    @property
    def products(self) -> List[Product]:
        return list(self._products.values())

    def get(self, product_id: int) -> Optional[Product]:
        return self._products.get(product_id)

    @property
    def authoritative_meta_data(self) -> Optional[MetaData]:
        """Pagination metadata, or None while the cache is stale."""
        return self.meta_data if self.loaded else None

    def require_loaded(self) -> MetaData:
        """
        Returns metadata that is safe to render.
        Raises:
            CacheStalenessError: If a refetch is required first.
        """
        if not self.loaded or self.meta_data is None:
            raise CacheStalenessError("Catalog list must be refetched")
        return self.meta_data

    def set_all(self, items: Iterable[Product], meta_data: MetaData):
        self._products = {item.id: item for item in items}
        self.meta_data = meta_data
        self.loaded = True

    def upsert_one(self, item: Product):
        self._products[item.id] = item
        self.loaded = False

    def remove_one(self, product_id: int):
        self._products.pop(product_id, None)
        self.loaded = False

    def mark_stale(self):
        self.loaded = False

    def set_product_params(self, **params):
        """Merges new query parameters; any filter change restarts at page 1."""
        merged = {**self.product_params.model_dump(), **params, "pageNumber": 1}
        self.product_params = ProductParams.model_validate(merged)
        self.loaded = False

    def set_page_number(self, page_number: int):
        self.product_params = self.product_params.model_copy(update={"pageNumber": page_number})
        self.loaded = False

    def reset_product_params(self):
        self.product_params = ProductParams()

    def set_filters(self, brands: List[str], types: List[str]):
        self.brands = list(brands)
        self.types = list(types)
        self.filters_loaded = True


class CatalogService:
    """
    Remote catalog operations on top of a CatalogCache.

    Fetch failures leave the cache as it was; they are logged and re-raised
    as httpx exceptions for the caller.
    """
    def __init__(self, api: OrderApiClient, cache: CatalogCache):
        self.api = api
        self.cache = cache

    async def products_for_render(self):
        """
        Returns (products, metaData) for the list view, refetching when stale.
        """
        try:
            return self.cache.products, self.cache.require_loaded()
        except CacheStalenessError:
            await self.fetch_products()
        return self.cache.products, self.cache.meta_data

    async def fetch_products(self):
        params = self.cache.product_params
        self.cache.status = "pendingFetchProducts"
        try:
            page = await self.api.list_products(params)
        except httpx.HTTPError as e:
            log.error(f"[Catalog] Product list fetch failed: {e}")
            raise
        finally:
            self.cache.status = "idle"
        self.cache.set_all(page.items, page.metaData)
        log.info(f"[Catalog] Loaded page {page.metaData.currentPage}/{page.metaData.totalPages} "
                 f"({len(page.items)} products).")
        return page

    async def fetch_product(self, product_id: int) -> Product:
        cached = self.cache.get(product_id)
        if cached is not None:
            return cached
        self.cache.status = "pendingFetchProduct"
        try:
            product = await self.api.fetch_product(product_id)
        except httpx.HTTPError as e:
            log.error(f"[Catalog] Product {product_id} fetch failed: {e}")
            raise
        finally:
            self.cache.status = "idle"
        self.cache.upsert_one(product)
        return product

    async def fetch_filters(self):
        if self.cache.filters_loaded:
            return self.cache.brands, self.cache.types
        self.cache.status = "pendingFetchFilters"
        try:
            filters = await self.api.fetch_filters()
        except httpx.HTTPError as e:
            log.error(f"[Catalog] Filter fetch failed: {e}")
            raise
        finally:
            self.cache.status = "idle"
        self.cache.set_filters(filters.brands, filters.types)
        return self.cache.brands, self.cache.types
