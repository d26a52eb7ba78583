from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from app.auth import Principal
from app.dependencies import get_catalog, require_capability
from app.security.csrf import verify_csrf
from app.services.catalog_service import ProductCatalog
from app.services.notification_service import AlertPreferences, evaluate_stock_alerts
from app.services.role_policy import Capability

router = APIRouter(prefix='/notifications', tags=['notifications'], dependencies=[Depends(verify_csrf)])


@router.get('/settings')
def get_settings(
    request: Request,
    _: Principal = Depends(require_capability(Capability.READ)),
):
    return request.app.state.alert_preferences.to_document()


@router.put('/settings')
async def update_settings(
    request: Request,
    data: dict[str, Any] = Body(...),
    catalog: ProductCatalog = Depends(get_catalog),
    _: Principal = Depends(require_capability(Capability.EDIT_PRODUCT)),
):
    state = request.app.state
    preferences = AlertPreferences.from_document(data, current=state.alert_preferences)

    await state.scheduler.stop()
    state.alert_preferences = preferences
    state.scheduler = preferences.scheduler(catalog, state.alert_sink)
    if preferences.enabled:
        state.scheduler.start()
    return preferences.to_document()


@router.post('/check')
async def check_now(
    request: Request,
    catalog: ProductCatalog = Depends(get_catalog),
    _: Principal = Depends(require_capability(Capability.READ)),
):
    preferences: AlertPreferences = request.app.state.alert_preferences
    alerts = evaluate_stock_alerts(
        catalog.list(),
        include_out=preferences.include_out,
        include_low=preferences.include_low,
    )
    sink = request.app.state.alert_sink
    delivered = bool(alerts) and await sink.request_permission()
    if delivered:
        for alert in alerts:
            await sink.show(alert.title, alert.body, alert.tag)
    return {
        'delivered': delivered,
        'alerts': [
            {
                'kind': alert.kind.value,
                'title': alert.title,
                'body': alert.body,
                'tag': alert.tag,
                'count': alert.count,
                'products': list(alert.product_names),
            }
            for alert in alerts
        ],
    }
