from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import BaseModel

from app.auth import Principal, get_current_principal
from app.dependencies import get_catalog, get_store, require_capability
from app.errors import ValidationFailed
from app.models import ProductCategory
from app.security.csrf import verify_csrf
from app.services import product_service
from app.services.catalog_service import CatalogStats, ProductCatalog, ProductFilter, StockStatus
from app.services.inventory_store import InventoryStore, Product, as_decimal
from app.services.notification_service import announce_product_change, stock_notice_action
from app.services.role_policy import Capability
from app.services.stock_ledger_service import update_stock

router = APIRouter(prefix='/inventory', tags=['inventory'], dependencies=[Depends(verify_csrf)])


class StockRequest(BaseModel):
    value: Any = None
    expectedVersion: int | None = None


class VersionRequest(BaseModel):
    expectedVersion: int | None = None


def _decimal_param(name: str, value: str | None) -> Decimal | None:
    if value is None or value.strip() == '':
        return None
    parsed = as_decimal(value)
    if parsed is None:
        raise ValidationFailed(f'{name} must be a number')
    return parsed


def _enum_param(enum_cls, name: str, value: str | None):
    if not value:
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError as exc:
        raise ValidationFailed(f'Unknown {name}: {value}') from exc


def _version(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed('expectedVersion must be a whole number') from exc


def _stats_document(stats: CatalogStats) -> dict:
    return {
        'total': stats.total,
        'lowStock': stats.low_stock_count,
        'outOfStock': stats.out_of_stock_count,
        'goodStock': stats.good_stock_count,
        'important': stats.important_count,
        'totalSaleValue': float(stats.total_sale_value),
        'totalCostValue': float(stats.total_cost_value),
    }


async def _announce(request: Request, product: Product, action: str) -> None:
    await announce_product_change(request.app.state.alert_sink, product, action)


@router.get('')
def list_inventory(
    q: str | None = None,
    category: str | None = None,
    status: str | None = None,
    provider_id: str | None = Query(default=None, alias='providerId'),
    important: bool = False,
    min_price: str | None = Query(default=None, alias='minPrice'),
    max_price: str | None = Query(default=None, alias='maxPrice'),
    min_stock: str | None = Query(default=None, alias='minStock'),
    max_stock: str | None = Query(default=None, alias='maxStock'),
    catalog: ProductCatalog = Depends(get_catalog),
    _: Principal = Depends(require_capability(Capability.READ)),
):
    criteria = ProductFilter(
        text=q,
        category=_enum_param(ProductCategory, 'category', category),
        stock_status=_enum_param(StockStatus, 'stock status', status),
        provider_id=provider_id or None,
        important_only=important,
        min_price=_decimal_param('minPrice', min_price),
        max_price=_decimal_param('maxPrice', max_price),
        min_stock=_decimal_param('minStock', min_stock),
        max_stock=_decimal_param('maxStock', max_stock),
    )
    return {
        'items': [product.to_document() for product in catalog.filter(criteria)],
        'stale': catalog.stale,
    }


@router.get('/stats')
def inventory_stats(
    catalog: ProductCatalog = Depends(get_catalog),
    _: Principal = Depends(require_capability(Capability.READ)),
):
    return {
        'stats': _stats_document(catalog.stats()),
        'categories': [
            {
                'category': summary.category.value,
                'count': summary.count,
                'saleValue': float(summary.sale_value),
                'lowStock': summary.low_stock_count,
                'outOfStock': summary.out_of_stock_count,
            }
            for summary in catalog.category_breakdown()
        ],
        'critical': [product.to_document() for product in catalog.critical_products()],
    }


@router.get('/lookup/{code}')
def lookup_code(
    code: str,
    catalog: ProductCatalog = Depends(get_catalog),
    _: Principal = Depends(require_capability(Capability.READ)),
):
    return catalog.find_by_code(code).to_document()


@router.get('/{product_id}')
def get_product(
    product_id: str,
    catalog: ProductCatalog = Depends(get_catalog),
    _: Principal = Depends(require_capability(Capability.READ)),
):
    return catalog.get(product_id).to_document()


@router.post('', status_code=201)
async def create_product(
    request: Request,
    data: dict[str, Any] = Body(...),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    product = await product_service.create_product(store, principal, data)
    await _announce(request, product, 'added')
    return product.to_document()


@router.patch('/{product_id}')
async def edit_product(
    request: Request,
    product_id: str,
    data: dict[str, Any] = Body(...),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    expected_version = data.pop('expectedVersion', None)
    product = await product_service.edit_product(
        store,
        principal,
        product_id,
        data,
        expected_version=_version(expected_version),
    )
    await _announce(request, product, 'updated')
    return product.to_document()


@router.delete('/{product_id}')
async def delete_product(
    request: Request,
    product_id: str,
    confirm: bool = False,
    expected_version: int | None = Query(default=None, alias='expectedVersion'),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    product = await product_service.delete_product(
        store,
        principal,
        product_id,
        confirmed=confirm,
        expected_version=expected_version,
    )
    await _announce(request, product, 'deleted')
    return {'deleted': product_id}


@router.post('/{product_id}/stock')
async def set_stock(
    request: Request,
    product_id: str,
    body: StockRequest,
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    result = await update_stock(store, principal, product_id, body.value, expected_version=body.expectedVersion)
    await _announce(request, result.product, stock_notice_action(result.product))
    return {
        'product': result.product.to_document(),
        'history': result.history_entry.to_document(),
    }


@router.post('/{product_id}/important')
async def toggle_important(
    product_id: str,
    body: VersionRequest | None = None,
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    product = await product_service.toggle_important(
        store,
        principal,
        product_id,
        expected_version=body.expectedVersion if body else None,
    )
    return product.to_document()
