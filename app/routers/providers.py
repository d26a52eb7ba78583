from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from app.auth import Principal, get_current_principal
from app.dependencies import get_store
from app.security.csrf import verify_csrf
from app.services import provider_service
from app.services.inventory_store import InventoryStore

router = APIRouter(prefix='/providers', tags=['providers'], dependencies=[Depends(verify_csrf)])


@router.get('')
async def list_providers(
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    providers = await provider_service.list_providers(store, principal)
    return {'items': [provider.to_document() for provider in providers]}


@router.post('', status_code=201)
async def create_provider(
    data: dict[str, Any] = Body(...),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    provider = await provider_service.save_provider(store, principal, data)
    return provider.to_document()


@router.put('/{provider_id}')
async def update_provider(
    provider_id: str,
    data: dict[str, Any] = Body(...),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    provider = await provider_service.save_provider(store, principal, data, provider_id=provider_id)
    return provider.to_document()


@router.delete('/{provider_id}')
async def delete_provider(
    provider_id: str,
    confirm: bool = False,
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    await provider_service.delete_provider(store, principal, provider_id, confirmed=confirm)
    return {'deleted': provider_id}
