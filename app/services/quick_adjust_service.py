from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Protocol

from app.auth import Principal
from app.config import settings
from app.errors import Conflict, InvalidQuantity, InventoryError, NotFound
from app.services.catalog_service import ProductCatalog
from app.services.inventory_store import InventoryStore, Product
from app.services.stock_ledger_service import StockUpdate, update_stock

logger = logging.getLogger(__name__)


class QuickAdjustState(str, Enum):
    IDLE = 'idle'
    SEARCHING = 'searching'
    PRODUCT_SELECTED = 'product_selected'
    COMMITTING = 'committing'


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class CommitOutcome:
    update: StockUpdate | None = None
    error: InventoryError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RankingStorage(Protocol):
    def load(self) -> dict: ...

    def save(self, data: dict) -> None: ...


class MemoryRankingStorage:
    def __init__(self) -> None:
        self._data: dict = {}

    def load(self) -> dict:
        return json.loads(json.dumps(self._data))

    def save(self, data: dict) -> None:
        self._data = json.loads(json.dumps(data))


class JsonRankingStorage:
    """Rankings kept in one JSON file, rewritten through an atomic rename."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict:
        try:
            with self.path.open('r', encoding='utf-8') as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning('ignoring unreadable adjustment rankings at %s: %s', self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.rankings-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                json.dump(data, handle)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def default_ranking_storage() -> RankingStorage:
    if settings.adjustment_rankings_path:
        return JsonRankingStorage(settings.adjustment_rankings_path)
    return MemoryRankingStorage()


class AdjustmentRankings:
    def __init__(
        self,
        storage: RankingStorage | None = None,
        *,
        recent_limit: int | None = None,
        frequent_limit: int | None = None,
    ) -> None:
        self.storage = storage or MemoryRankingStorage()
        self.recent_limit = recent_limit or settings.quick_adjust_recent_limit
        self.frequent_limit = frequent_limit or settings.quick_adjust_frequent_limit

    def _load(self) -> tuple[list[str], dict[str, int]]:
        data = self.storage.load()
        recent = [str(item) for item in data.get('recent', []) if item]
        counts = {str(key): int(value) for key, value in dict(data.get('frequent', {})).items()}
        return recent, counts

    def record(self, product_id: str, *, known_ids: Collection[str] | None = None) -> None:
        """Count one adjustment; ids missing from ``known_ids`` are dropped."""
        recent, counts = self._load()
        if known_ids is not None:
            recent = [item for item in recent if item in known_ids]
            counts = {key: value for key, value in counts.items() if key in known_ids}
        recent = [product_id] + [item for item in recent if item != product_id]
        counts[product_id] = counts.get(product_id, 0) + 1
        self.storage.save({'recent': recent[: self.recent_limit], 'frequent': counts})

    def recent_ids(self) -> list[str]:
        recent, _ = self._load()
        return recent[: self.recent_limit]

    def frequent_ids(self) -> list[str]:
        _, counts = self._load()
        ranked = sorted(counts.items(), key=lambda pair: pair[1], reverse=True)
        return [product_id for product_id, _ in ranked[: self.frequent_limit]]

    def usage_count(self, product_id: str) -> int:
        _, counts = self._load()
        return counts.get(product_id, 0)


def resolve_products(product_ids: Iterable[str], catalog: ProductCatalog) -> list[Product]:
    products: list[Product] = []
    for product_id in product_ids:
        try:
            products.append(catalog.get(product_id))
        except NotFound:
            continue
    return products


def _to_decimal(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidQuantity('Quantity is required')
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidQuantity(f'Invalid quantity: {value}') from exc
    if not parsed.is_finite():
        raise InvalidQuantity(f'Invalid quantity: {value}')
    return parsed


class QuickAdjustSession:
    """One search -> select -> adjust -> commit interaction.

    Transitions are synchronous; only ``commit`` awaits the store. The working
    value never drops below zero and survives a failed commit.
    """

    def __init__(
        self,
        *,
        catalog: ProductCatalog,
        store: InventoryStore,
        principal: Principal,
        rankings: AdjustmentRankings | None = None,
        min_search_chars: int | None = None,
        max_results: int | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.principal = principal
        self.rankings = rankings or AdjustmentRankings()
        self.min_search_chars = min_search_chars or settings.quick_adjust_min_search_chars
        self.max_results = max_results or settings.quick_adjust_max_results

        self.state = QuickAdjustState.IDLE
        self.results: list[Product] = []
        self.selected: Product | None = None
        self.working_value: Decimal | None = None
        self.last_error: InventoryError | None = None

    def _require(self, *states: QuickAdjustState) -> None:
        if self.state not in states:
            raise InvalidTransition(f'Cannot do that while {self.state.value}')

    def _reset(self) -> None:
        self.state = QuickAdjustState.IDLE
        self.results = []
        self.selected = None
        self.working_value = None

    def search(self, term: str) -> list[Product]:
        self._require(QuickAdjustState.IDLE, QuickAdjustState.SEARCHING)
        cleaned = (term or '').strip()
        if len(cleaned) < self.min_search_chars:
            self.state = QuickAdjustState.IDLE
            self.results = []
            return []
        self.results = self.catalog.search(cleaned, limit=self.max_results)
        self.state = QuickAdjustState.SEARCHING
        return list(self.results)

    def scan(self, code: str) -> Product:
        self._require(QuickAdjustState.IDLE, QuickAdjustState.SEARCHING)
        try:
            product = self.catalog.find_by_code(code)
        except NotFound as exc:
            self._reset()
            self.last_error = exc
            raise
        return self._select(product)

    def select(self, product_id: str) -> Product:
        self._require(QuickAdjustState.IDLE, QuickAdjustState.SEARCHING)
        return self._select(self.catalog.get(product_id))

    def _select(self, product: Product) -> Product:
        self.selected = product
        self.working_value = product.stock
        self.results = []
        self.last_error = None
        self.state = QuickAdjustState.PRODUCT_SELECTED
        return product

    def adjust(self, delta) -> Decimal:
        self._require(QuickAdjustState.PRODUCT_SELECTED)
        self.working_value = max(Decimal('0'), self.working_value + _to_decimal(delta))
        return self.working_value

    def set_value(self, value) -> Decimal:
        self._require(QuickAdjustState.PRODUCT_SELECTED)
        self.working_value = max(Decimal('0'), _to_decimal(value))
        return self.working_value

    async def commit(self) -> CommitOutcome:
        self._require(QuickAdjustState.PRODUCT_SELECTED)
        self.state = QuickAdjustState.COMMITTING
        product = self.selected
        try:
            update = await update_stock(
                self.store,
                self.principal,
                product.id,
                self.working_value,
                expected_version=product.version,
            )
        except InventoryError as exc:
            self.last_error = exc
            if isinstance(exc, Conflict):
                await self._refresh_selected()
            self.state = QuickAdjustState.PRODUCT_SELECTED
            return CommitOutcome(error=exc)

        # The stock write has committed; ranking failures are only logged.
        try:
            known_ids = None if self.catalog.stale else {item.id for item in self.catalog.list()}
            self.rankings.record(product.id, known_ids=known_ids)
        except (OSError, ValueError) as exc:
            logger.warning('could not record adjustment ranking for %s: %s', product.id, exc)
        finally:
            self.last_error = None
            self._reset()
        return CommitOutcome(update=update)

    async def _refresh_selected(self) -> None:
        try:
            latest = await self.store.get_product(self.selected.id)
        except InventoryError as exc:
            logger.warning('could not reload product %s after conflict: %s', self.selected.id, exc)
            return
        if latest is not None:
            self.selected = latest

    def cancel(self) -> None:
        if self.state == QuickAdjustState.COMMITTING:
            raise InvalidTransition('A commit in flight cannot be cancelled')
        self._reset()
        self.last_error = None

    def recent_products(self) -> list[Product]:
        return resolve_products(self.rankings.recent_ids(), self.catalog)

    def frequent_products(self) -> list[Product]:
        return resolve_products(self.rankings.frequent_ids(), self.catalog)
