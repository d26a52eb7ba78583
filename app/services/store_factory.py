from __future__ import annotations

from functools import lru_cache

from app.config import settings
from app.services.inventory_store import InventoryStore
from app.services.memory_inventory_store import MemoryInventoryStore
from app.services.sql_inventory_store import SqlInventoryStore


@lru_cache(maxsize=1)
def get_inventory_store() -> InventoryStore:
    backend = settings.inventory_store.strip().lower()
    if backend == 'sql':
        store = SqlInventoryStore()
        store.create_schema()
        return store
    return MemoryInventoryStore()
