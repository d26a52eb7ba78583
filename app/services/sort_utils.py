from __future__ import annotations

from app.services.inventory_store import Product, ProviderRecord


def normalize_sort_text(value: str | None) -> str:
    return (value or '').strip().lower()


def catalog_sort_key(product: Product) -> tuple[int, str]:
    """Important products first, then brand + name, case-insensitive."""
    return (0 if product.important else 1, normalize_sort_text(product.display_name))


def provider_sort_key(provider: ProviderRecord) -> str:
    return normalize_sort_text(provider.company_name)
