from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.auth import Principal, get_current_principal
from app.dependencies import get_catalog, get_rankings, get_store, require_capability
from app.errors import ValidationFailed
from app.security.csrf import verify_csrf
from app.services.catalog_service import ProductCatalog
from app.services.inventory_store import InventoryStore
from app.services.quick_adjust_service import AdjustmentRankings, QuickAdjustSession
from app.services.role_policy import Capability

router = APIRouter(prefix='/quick-adjust', tags=['quick-adjust'], dependencies=[Depends(verify_csrf)])


class QuickAdjustRequest(BaseModel):
    productId: str | None = None
    code: str | None = None
    delta: Any = None
    value: Any = None


@router.get('/rankings')
def rankings(
    catalog: ProductCatalog = Depends(get_catalog),
    store: InventoryStore = Depends(get_store),
    ranking_store: AdjustmentRankings = Depends(get_rankings),
    principal: Principal = Depends(require_capability(Capability.READ)),
):
    session = QuickAdjustSession(catalog=catalog, store=store, principal=principal, rankings=ranking_store)
    return {
        'recent': [product.to_document() for product in session.recent_products()],
        'frequent': [
            {**product.to_document(), 'uses': ranking_store.usage_count(product.id)}
            for product in session.frequent_products()
        ],
    }


@router.get('/search')
def search(
    q: str = '',
    catalog: ProductCatalog = Depends(get_catalog),
    store: InventoryStore = Depends(get_store),
    ranking_store: AdjustmentRankings = Depends(get_rankings),
    principal: Principal = Depends(require_capability(Capability.READ)),
):
    session = QuickAdjustSession(catalog=catalog, store=store, principal=principal, rankings=ranking_store)
    return {'items': [product.to_document() for product in session.search(q)]}


@router.post('/commit')
async def commit(
    body: QuickAdjustRequest,
    catalog: ProductCatalog = Depends(get_catalog),
    store: InventoryStore = Depends(get_store),
    ranking_store: AdjustmentRankings = Depends(get_rankings),
    principal: Principal = Depends(get_current_principal),
):
    if (body.delta is None) == (body.value is None):
        raise ValidationFailed('Send exactly one of delta or value')
    session = QuickAdjustSession(catalog=catalog, store=store, principal=principal, rankings=ranking_store)
    if body.code:
        session.scan(body.code)
    elif body.productId:
        session.select(body.productId)
    else:
        raise ValidationFailed('Send a productId or a scanned code')

    if body.delta is not None:
        session.adjust(body.delta)
    else:
        session.set_value(body.value)

    outcome = await session.commit()
    if not outcome.ok:
        return JSONResponse(
            {
                'error': outcome.error.code,
                'detail': outcome.error.message,
                'product': session.selected.to_document(),
                'workingValue': float(session.working_value),
            },
            status_code=outcome.error.status_code,
        )
    return {
        'product': outcome.update.product.to_document(),
        'history': outcome.update.history_entry.to_document(),
    }
