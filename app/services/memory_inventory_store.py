from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace

from app.errors import Conflict, NotFound
from app.models import HistoryAction
from app.services.inventory_store import (
    HistoryEntry,
    ProductListener,
    Product,
    ProviderRecord,
    UserRecord,
    utcnow,
)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


class MemoryInventoryStore:
    """Process-local store used for development and tests.

    Writes complete without awaiting, so each one is applied whole before
    any other coroutine can observe the collections.
    """

    def __init__(
        self,
        *,
        products: Iterable[Product] = (),
        providers: Iterable[ProviderRecord] = (),
        users: Iterable[UserRecord] = (),
    ) -> None:
        self._products: dict[str, Product] = {}
        self._history: list[HistoryEntry] = []
        self._providers: dict[str, ProviderRecord] = {}
        self._users: dict[str, UserRecord] = {}
        self._listeners: list[ProductListener] = []

        for product in products:
            product_id = product.id or _new_id()
            self._products[product_id] = replace(product, id=product_id)
        for provider in providers:
            provider_id = provider.id or _new_id()
            self._providers[provider_id] = replace(provider, id=provider_id)
        for user in users:
            self._users[user.email.lower()] = replace(user, id=user.id or _new_id())

    def _notify(self) -> None:
        snapshot = list(self._products.values())
        for listener in list(self._listeners):
            listener(list(snapshot))

    def _append_history(self, entry: HistoryEntry) -> HistoryEntry:
        stored = replace(entry, id=_new_id())
        self._history.append(stored)
        return stored

    async def load_products(self) -> list[Product]:
        return list(self._products.values())

    async def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    async def insert_product(self, product: Product, entry: HistoryEntry) -> Product:
        now = utcnow()
        stored = replace(
            product,
            id=product.id or _new_id(),
            version=1,
            created_at=product.created_at or now,
            updated_at=product.updated_at or now,
        )
        self._products[stored.id] = stored
        self._append_history(entry)
        self._notify()
        return stored

    async def replace_product(
        self, product: Product, entry: HistoryEntry, *, expected_version: int
    ) -> tuple[Product, HistoryEntry]:
        current = self._products.get(product.id or '')
        if current is None:
            raise NotFound('Product no longer exists')
        if current.version != expected_version:
            raise Conflict(f'{current.name} was changed by someone else; reload and retry')

        stored = replace(product, version=expected_version + 1, created_at=current.created_at)
        self._products[stored.id] = stored
        stored_entry = self._append_history(entry)
        self._notify()
        return stored, stored_entry

    async def remove_product(self, product_id: str, entry: HistoryEntry, *, expected_version: int | None = None) -> None:
        current = self._products.get(product_id)
        if current is None:
            raise NotFound('Product no longer exists')
        if expected_version is not None and current.version != expected_version:
            raise Conflict(f'{current.name} was changed by someone else; reload and retry')

        del self._products[product_id]
        self._append_history(entry)
        self._notify()

    async def query_history(
        self,
        *,
        domain: str,
        action: HistoryAction | None = None,
        actor: str | None = None,
        limit: int,
    ) -> list[HistoryEntry]:
        indexed = [
            (position, entry)
            for position, entry in enumerate(self._history)
            if entry.domain == domain
            and (action is None or entry.action == action)
            and (actor is None or entry.actor.lower() == actor.lower())
        ]
        indexed.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        return [entry for _, entry in indexed[:limit]]

    async def list_providers(self) -> list[ProviderRecord]:
        return list(self._providers.values())

    async def get_provider(self, provider_id: str) -> ProviderRecord | None:
        return self._providers.get(provider_id)

    async def save_provider(self, provider: ProviderRecord) -> ProviderRecord:
        if provider.id and provider.id not in self._providers:
            raise NotFound('Provider not found')
        stored = replace(provider, id=provider.id or _new_id())
        if provider.id:
            stored = replace(stored, created_by=self._providers[provider.id].created_by)
        self._providers[stored.id] = stored
        return stored

    async def delete_provider(self, provider_id: str) -> None:
        if self._providers.pop(provider_id, None) is None:
            raise NotFound('Provider not found')

    async def find_user(self, email: str) -> UserRecord | None:
        return self._users.get(email.strip().lower())

    async def list_users(self) -> list[UserRecord]:
        return list(self._users.values())

    async def save_user(self, user: UserRecord) -> UserRecord:
        key = user.email.strip().lower()
        existing = self._users.get(key)
        stored = replace(
            user,
            id=user.id or (existing.id if existing else _new_id()),
            password_hash=user.password_hash or (existing.password_hash if existing else None),
        )
        self._users[key] = stored
        return stored

    async def delete_user(self, email: str) -> None:
        if self._users.pop(email.strip().lower(), None) is None:
            raise NotFound('User not found')

    def subscribe_products(self, listener: ProductListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
