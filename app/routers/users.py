from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from app.auth import Principal, get_current_principal
from app.dependencies import get_store
from app.security.csrf import verify_csrf
from app.services import user_service
from app.services.inventory_store import InventoryStore

router = APIRouter(prefix='/users', tags=['users'], dependencies=[Depends(verify_csrf)])


async def _refresh_sessions(request: Request, store: InventoryStore, email: str) -> None:
    principal = await user_service.resolve_principal(store, email)
    request.app.state.sessions.refresh_principal(principal)


@router.get('')
async def list_users(
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    users = await user_service.list_users(store, principal)
    return {'items': [user.to_document() for user in users]}


@router.post('', status_code=201)
async def create_user(
    request: Request,
    data: dict[str, Any] = Body(...),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    user = await user_service.save_user(store, principal, data)
    await _refresh_sessions(request, store, user.email)
    return user.to_document()


@router.put('/{email}')
async def update_user(
    request: Request,
    email: str,
    data: dict[str, Any] = Body(...),
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    user = await user_service.save_user(store, principal, data, existing_email=email)
    await _refresh_sessions(request, store, user.email)
    return user.to_document()


@router.delete('/{email}')
async def delete_user(
    request: Request,
    email: str,
    confirm: bool = False,
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    await user_service.delete_user(store, principal, email, confirmed=confirm)
    await _refresh_sessions(request, store, email)
    return {'deleted': email}
