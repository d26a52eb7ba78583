from __future__ import annotations

from fastapi import APIRouter, Depends

from app.auth import Principal, get_current_principal
from app.dependencies import get_store
from app.errors import ValidationFailed
from app.models import HistoryAction
from app.services.history_service import DEFAULT_HISTORY_LIMIT, query_history
from app.services.inventory_store import InventoryStore

router = APIRouter(prefix='/history', tags=['history'])


@router.get('')
async def list_history(
    action: str | None = None,
    actor: str | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
    store: InventoryStore = Depends(get_store),
    principal: Principal = Depends(get_current_principal),
):
    parsed_action = None
    if action:
        try:
            parsed_action = HistoryAction(action.strip().lower())
        except ValueError as exc:
            raise ValidationFailed(f'Unknown history action: {action}') from exc

    entries = await query_history(store, principal, action=parsed_action, actor=actor, limit=limit)
    return {'items': [entry.to_document() for entry in entries]}
