from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.auth import Principal
from app.errors import Conflict, InvalidQuantity, NotFound
from app.models import HistoryAction
from app.services import history_service
from app.services.inventory_store import HistoryEntry, InventoryStore, Product, utcnow
from app.services.role_policy import Capability, require_capability

logger = logging.getLogger(__name__)

# Stock columns are Numeric(12, 3).
STOCK_STEP = Decimal('0.001')
MAX_STOCK = Decimal('999999999.999')


@dataclass(frozen=True)
class StockUpdate:
    product: Product
    history_entry: HistoryEntry


def parse_quantity(value) -> Decimal:
    """Parse a requested stock value from direct numeric entry.

    Negative values are rejected rather than clamped; clamping only happens
    on the quick-adjust working value before it reaches the ledger.
    """
    if value is None or isinstance(value, bool):
        raise InvalidQuantity('Quantity is required')
    raw = str(value).strip()
    if raw == '':
        raise InvalidQuantity('Quantity is required')
    try:
        qty = Decimal(raw)
    except InvalidOperation as exc:
        raise InvalidQuantity(f'Invalid quantity: {raw}') from exc
    if not qty.is_finite():
        raise InvalidQuantity(f'Invalid quantity: {raw}')
    if qty < 0:
        raise InvalidQuantity('Quantity cannot be negative')
    if qty > MAX_STOCK:
        raise InvalidQuantity(f'Quantity cannot exceed {MAX_STOCK}')
    if qty.as_tuple().exponent < STOCK_STEP.as_tuple().exponent:
        qty = qty.quantize(STOCK_STEP, rounding=ROUND_HALF_UP)
    return qty


def apply_stock(product: Product, new_stock: Decimal, *, actor: str) -> Product:
    return replace(
        product,
        previous_stock=product.stock,
        stock=new_stock,
        updated_by=actor,
        updated_at=utcnow(),
    )


async def update_stock(
    store: InventoryStore,
    principal: Principal,
    product_id: str,
    requested_value,
    *,
    expected_version: int | None = None,
) -> StockUpdate:
    require_capability(principal, Capability.ADJUST_STOCK)
    new_stock = parse_quantity(requested_value)

    current = await store.get_product(product_id)
    if current is None:
        raise NotFound('Product no longer exists')
    if expected_version is not None and current.version != expected_version:
        raise Conflict(f'{current.name} was changed by someone else; reload and retry')

    updated = apply_stock(current, new_stock, actor=principal.email)
    entry = history_service.record(
        HistoryAction.STOCK_UPDATE,
        updated,
        principal.email,
        extra={'previous_stock': current.stock, 'new_stock': new_stock},
        timestamp=updated.updated_at,
    )
    saved, stored_entry = await store.replace_product(updated, entry, expected_version=current.version)
    logger.info(
        'stock updated product_id=%s actor=%s previous=%s new=%s',
        product_id,
        principal.email,
        current.stock,
        new_stock,
    )
    return StockUpdate(product=saved, history_entry=stored_entry)
