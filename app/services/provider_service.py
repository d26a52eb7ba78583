from __future__ import annotations

from dataclasses import replace
from typing import Any

from app.auth import Principal
from app.errors import ValidationFailed
from app.services.inventory_store import InventoryStore, Product, ProviderRecord
from app.services.role_policy import Capability, require_capability
from app.services.sort_utils import provider_sort_key

NO_PROVIDER = 'No provider'


async def list_providers(store: InventoryStore, principal: Principal) -> list[ProviderRecord]:
    require_capability(principal, Capability.READ)
    providers = [provider for provider in await store.list_providers() if provider.company_name.strip()]
    return sorted(providers, key=provider_sort_key)


async def save_provider(
    store: InventoryStore,
    principal: Principal,
    data: dict[str, Any],
    *,
    provider_id: str | None = None,
) -> ProviderRecord:
    require_capability(principal, Capability.MANAGE_PROVIDERS)
    provider = ProviderRecord.from_document(data, provider_id=provider_id)
    if not provider.company_name:
        raise ValidationFailed('Company name is required')
    provider = replace(
        provider,
        id=provider_id,
        created_by=None if provider_id else principal.email,
        updated_by=principal.email,
    )
    return await store.save_provider(provider)


async def delete_provider(
    store: InventoryStore,
    principal: Principal,
    provider_id: str,
    *,
    confirmed: bool,
) -> None:
    require_capability(principal, Capability.MANAGE_PROVIDERS)
    if not confirmed:
        raise ValidationFailed('Deleting a provider must be confirmed')
    await store.delete_provider(provider_id)


def provider_name_for(product: Product, providers: list[ProviderRecord]) -> str:
    if not product.provider_id:
        return NO_PROVIDER
    for provider in providers:
        if provider.id == product.provider_id:
            return provider.company_name
    return NO_PROVIDER
