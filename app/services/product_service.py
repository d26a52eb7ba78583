from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from app.auth import Principal
from app.config import settings
from app.errors import Conflict, NotFound, ValidationFailed
from app.models import HistoryAction
from app.services import history_service
from app.services.inventory_store import (
    InventoryStore,
    Product,
    as_decimal,
    parse_category,
    parse_unit,
    utcnow,
)
from app.services.role_policy import Capability, require_capability
from app.services.stock_ledger_service import parse_quantity

logger = logging.getLogger(__name__)

_NON_NEGATIVE_FIELDS = ('salePrice', 'purchasePrice', 'lowStockThreshold')
_CATEGORY_FIELDS = ('category', 'tipo')
_UNIT_FIELDS = ('unit', 'unidad_medida')
_READ_ONLY_FIELDS = {'id', 'version', 'createdAt', 'createdBy', 'updatedAt', 'updatedBy', 'previousStock', 'domain'}


def _validate_payload(data: dict[str, Any], *, creating: bool) -> None:
    if creating or 'name' in data:
        if not str(data.get('name') or '').strip():
            raise ValidationFailed('Product name is required')
    if 'stock' in data:
        data['stock'] = parse_quantity(data['stock'])
    for key in _CATEGORY_FIELDS:
        if data.get(key) not in (None, ''):
            parse_category(data[key], strict=True)
    for key in _UNIT_FIELDS:
        if data.get(key) not in (None, ''):
            parse_unit(data[key], strict=True)
    for key in _NON_NEGATIVE_FIELDS:
        if key not in data or data[key] in (None, ''):
            continue
        value = as_decimal(data[key])
        if value is None or value < 0:
            raise ValidationFailed(f'{key} must be a number greater than or equal to zero')


def _writable(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in _READ_ONLY_FIELDS}


async def _load(store: InventoryStore, product_id: str, expected_version: int | None) -> Product:
    current = await store.get_product(product_id)
    if current is None:
        raise NotFound('Product no longer exists')
    if expected_version is not None and current.version != expected_version:
        raise Conflict(f'{current.name} was changed by someone else; reload and retry')
    return current


async def create_product(store: InventoryStore, principal: Principal, data: dict[str, Any]) -> Product:
    require_capability(principal, Capability.EDIT_PRODUCT)
    payload = _writable(data)
    _validate_payload(payload, creating=True)

    now = utcnow()
    product = replace(
        Product.from_document(payload),
        id=None,
        previous_stock=None,
        created_by=principal.email,
        updated_by=principal.email,
        created_at=now,
        updated_at=now,
        version=1,
        domain=settings.history_domain,
    )
    entry = history_service.record(HistoryAction.CREATE, product, principal.email, timestamp=now)
    stored = await store.insert_product(product, entry)
    logger.info('product created product_id=%s actor=%s', stored.id, principal.email)
    return stored


async def edit_product(
    store: InventoryStore,
    principal: Principal,
    product_id: str,
    changes: dict[str, Any],
    *,
    expected_version: int | None = None,
) -> Product:
    require_capability(principal, Capability.EDIT_PRODUCT)
    payload = _writable(changes)
    _validate_payload(payload, creating=False)
    current = await _load(store, product_id, expected_version)

    merged = Product.from_document({**current.to_document(), **payload}, product_id=current.id)
    updated = replace(
        merged,
        previous_stock=current.stock,
        created_by=current.created_by,
        created_at=current.created_at,
        updated_by=principal.email,
        updated_at=utcnow(),
        version=current.version,
        domain=current.domain,
    )
    entry = history_service.record(HistoryAction.EDIT, updated, principal.email, timestamp=updated.updated_at)
    stored, _ = await store.replace_product(updated, entry, expected_version=current.version)
    return stored


async def toggle_important(
    store: InventoryStore,
    principal: Principal,
    product_id: str,
    *,
    expected_version: int | None = None,
) -> Product:
    require_capability(principal, Capability.EDIT_PRODUCT)
    current = await _load(store, product_id, expected_version)

    updated = replace(
        current,
        important=not current.important,
        previous_stock=current.stock,
        updated_by=principal.email,
        updated_at=utcnow(),
    )
    entry = history_service.record(
        HistoryAction.MARK_IMPORTANT,
        updated,
        principal.email,
        extra={'important': updated.important},
        timestamp=updated.updated_at,
    )
    stored, _ = await store.replace_product(updated, entry, expected_version=current.version)
    return stored


async def delete_product(
    store: InventoryStore,
    principal: Principal,
    product_id: str,
    *,
    confirmed: bool,
    expected_version: int | None = None,
) -> Product:
    require_capability(principal, Capability.DELETE_PRODUCT)
    if not confirmed:
        raise ValidationFailed('Deleting a product must be confirmed')
    current = await _load(store, product_id, expected_version)

    entry = history_service.record(HistoryAction.DELETE, current, principal.email)
    await store.remove_product(product_id, entry, expected_version=current.version)
    logger.info('product deleted product_id=%s actor=%s', product_id, principal.email)
    return current
