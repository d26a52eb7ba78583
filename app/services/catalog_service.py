from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from app.errors import DecodeMiss, NotFound, StorageUnavailable
from app.models import ProductCategory
from app.services.inventory_store import InventoryStore, Product
from app.services.sort_utils import catalog_sort_key, normalize_sort_text

logger = logging.getLogger(__name__)


class StockStatus(str, Enum):
    OUT = 'out'
    LOW = 'low'
    GOOD = 'good'


def stock_status(product: Product) -> StockStatus:
    if product.stock == 0:
        return StockStatus.OUT
    if product.stock <= product.low_stock_threshold:
        return StockStatus.LOW
    return StockStatus.GOOD


@dataclass(frozen=True)
class ProductFilter:
    text: str | None = None
    category: ProductCategory | None = None
    stock_status: StockStatus | None = None
    provider_id: str | None = None
    important_only: bool = False
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_stock: Decimal | None = None
    max_stock: Decimal | None = None


@dataclass(frozen=True)
class CatalogStats:
    total: int
    low_stock_count: int
    out_of_stock_count: int
    good_stock_count: int
    important_count: int
    total_sale_value: Decimal
    total_cost_value: Decimal


@dataclass(frozen=True)
class CategorySummary:
    category: ProductCategory
    count: int
    sale_value: Decimal
    low_stock_count: int
    out_of_stock_count: int


def _matches_text(product: Product, needle: str) -> bool:
    haystacks = (product.name, product.brand, product.barcode, product.sku)
    return any(needle in normalize_sort_text(value) for value in haystacks)


def _matches(product: Product, criteria: ProductFilter) -> bool:
    needle = normalize_sort_text(criteria.text)
    if needle and not _matches_text(product, needle):
        return False
    if criteria.category is not None and product.category != criteria.category:
        return False
    if criteria.stock_status is not None and stock_status(product) != criteria.stock_status:
        return False
    if criteria.provider_id is not None and product.provider_id != criteria.provider_id:
        return False
    if criteria.important_only and not product.important:
        return False
    if criteria.min_price is not None and product.sale_price < criteria.min_price:
        return False
    if criteria.max_price is not None and product.sale_price > criteria.max_price:
        return False
    if criteria.min_stock is not None and product.stock < criteria.min_stock:
        return False
    if criteria.max_stock is not None and product.stock > criteria.max_stock:
        return False
    return True


class ProductCatalog:
    """In-memory reflection of the products collection.

    The product tuple is swapped whole on every snapshot; readers never see a
    partially applied update and nothing mutates it in place.
    """

    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products: tuple[Product, ...] = ()
        self._unsubscribe: Callable[[], None] | None = None
        self.stale = False
        self.replace(products)

    def replace(self, snapshot: Iterable[Product]) -> None:
        self._products = tuple(sorted(snapshot, key=catalog_sort_key))
        self.stale = False

    def _on_snapshot(self, snapshot: list[Product] | None) -> None:
        if snapshot is None:
            self.stale = True
            logger.warning('store could not reload products; serving last known snapshot of %s', len(self._products))
            return
        self.replace(snapshot)

    async def attach(self, store: InventoryStore) -> None:
        self.detach()
        self._unsubscribe = store.subscribe_products(self._on_snapshot)
        try:
            self.replace(await store.load_products())
        except StorageUnavailable:
            self.stale = True
            logger.warning('catalog load failed; serving last known snapshot of %s products', len(self._products))

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def list(self) -> list[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Product:
        for product in self._products:
            if product.id == product_id:
                return product
        raise NotFound('Product not found')

    def filter(self, criteria: ProductFilter) -> list[Product]:
        return [product for product in self._products if _matches(product, criteria)]

    def find_by_code(self, code: str) -> Product:
        needle = (code or '').strip()
        if needle:
            for field_name in ('barcode', 'sku', 'upc'):
                for product in self._products:
                    if getattr(product, field_name) == needle:
                        return product
        raise DecodeMiss(f'No product matches code {needle or "(empty)"}')

    def search(self, term: str, *, limit: int) -> list[Product]:
        needle = normalize_sort_text(term)
        matches = [
            product
            for product in self._products
            if needle in normalize_sort_text(product.name)
            or needle in normalize_sort_text(product.brand)
            or needle in product.category.value
        ]
        return matches[:limit]

    def stats(self) -> CatalogStats:
        statuses = [stock_status(product) for product in self._products]
        return CatalogStats(
            total=len(self._products),
            low_stock_count=statuses.count(StockStatus.LOW),
            out_of_stock_count=statuses.count(StockStatus.OUT),
            good_stock_count=statuses.count(StockStatus.GOOD),
            important_count=sum(1 for product in self._products if product.important),
            total_sale_value=sum((p.sale_price * p.stock for p in self._products), Decimal('0')),
            total_cost_value=sum((p.purchase_price * p.stock for p in self._products), Decimal('0')),
        )

    def category_breakdown(self) -> list[CategorySummary]:
        summaries: list[CategorySummary] = []
        for category in ProductCategory:
            items = [product for product in self._products if product.category == category]
            if not items:
                continue
            summaries.append(
                CategorySummary(
                    category=category,
                    count=len(items),
                    sale_value=sum((p.sale_price * p.stock for p in items), Decimal('0')),
                    low_stock_count=sum(1 for p in items if stock_status(p) == StockStatus.LOW),
                    out_of_stock_count=sum(1 for p in items if stock_status(p) == StockStatus.OUT),
                )
            )
        summaries.sort(key=lambda summary: summary.count, reverse=True)
        return summaries

    def critical_products(self) -> list[Product]:
        return [
            product
            for product in self._products
            if stock_status(product) == StockStatus.OUT
            or (stock_status(product) == StockStatus.LOW and product.important)
        ]
