from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from app.auth import Principal
from app.config import settings
from app.models import HistoryAction
from app.services.inventory_store import HistoryEntry, InventoryStore, Product, utcnow
from app.services.role_policy import Capability, require_capability

MAX_HISTORY_LIMIT = 500
DEFAULT_HISTORY_LIMIT = 50


def _format_quantity(value: Decimal) -> str:
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal('1')))
    return format(normalized, 'f')


def default_details(action: HistoryAction, product: Product, extra: dict | None = None) -> str:
    extra = extra or {}
    if action == HistoryAction.CREATE:
        return 'Product created'
    if action == HistoryAction.EDIT:
        return 'Product edited'
    if action == HistoryAction.DELETE:
        return 'Product deleted from inventory'
    if action == HistoryAction.MARK_IMPORTANT:
        if extra.get('important', product.important):
            return 'Product marked as important'
        return 'Product unmarked as important'
    return (
        f'Stock updated from {_format_quantity(extra["previous_stock"])} '
        f'to {_format_quantity(extra["new_stock"])}'
    )


def record(
    action: HistoryAction,
    product: Product,
    actor: str,
    details: str | None = None,
    extra: dict | None = None,
    *,
    timestamp: datetime | None = None,
) -> HistoryEntry:
    """Build the audit entry for one mutating action.

    The entry is persisted by the store together with the product write it
    describes, so a failed write never leaves an orphan entry behind.
    Stock values are carried only on ``stock_update`` entries.
    """
    extra = extra or {}
    if action == HistoryAction.STOCK_UPDATE and ('previous_stock' not in extra or 'new_stock' not in extra):
        raise ValueError('Stock update history requires previous_stock and new_stock')

    is_stock_update = action == HistoryAction.STOCK_UPDATE
    return HistoryEntry(
        product_name=product.name,
        actor=actor,
        action=action,
        timestamp=timestamp or utcnow(),
        details=details or default_details(action, product, extra),
        previous_stock=extra['previous_stock'] if is_stock_update else None,
        new_stock=extra['new_stock'] if is_stock_update else None,
        domain=product.domain or settings.history_domain,
    )


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_HISTORY_LIMIT
    return max(1, min(int(limit), MAX_HISTORY_LIMIT))


async def query_history(
    store: InventoryStore,
    principal: Principal,
    *,
    action: HistoryAction | None = None,
    actor: str | None = None,
    limit: int | None = DEFAULT_HISTORY_LIMIT,
) -> list[HistoryEntry]:
    require_capability(principal, Capability.READ)
    return await store.query_history(
        domain=settings.history_domain,
        action=action,
        actor=actor.strip().lower() if actor and actor.strip() else None,
        limit=clamp_limit(limit),
    )
