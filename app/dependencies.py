from collections.abc import Callable

from fastapi import Depends, Request

from app.auth import Principal, get_current_principal
from app.services import role_policy
from app.services.catalog_service import ProductCatalog
from app.services.identity_service import IdentityProvider
from app.services.inventory_store import InventoryStore
from app.services.quick_adjust_service import AdjustmentRankings
from app.services.role_policy import Capability


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_store(request: Request) -> InventoryStore:
    return request.app.state.store


def get_catalog(request: Request) -> ProductCatalog:
    return request.app.state.catalog


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_rankings(request: Request) -> AdjustmentRankings:
    return request.app.state.rankings


def require_capability(capability: Capability) -> Callable[..., Principal]:
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        role_policy.require_capability(principal, capability)
        return principal

    return dependency
