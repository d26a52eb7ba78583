from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from app.auth import Role
from app.config import settings
from app.errors import ValidationFailed
from app.models import HistoryAction, ProductCategory, UnitOfMeasure

# Receives the full product snapshot, or None when it could not be reloaded.
ProductListener = Callable[[list['Product'] | None], None]

# Keys accepted on read for documents written by earlier revisions of the app.
_LEGACY_PRODUCT_KEYS = {
    'nombre': 'name',
    'marca': 'brand',
    'tipo': 'category',
    'umbral_low': 'lowStockThreshold',
    'unidad_medida': 'unit',
    'precio_venta': 'salePrice',
    'precio_compra': 'purchasePrice',
    'proveedor_id': 'providerId',
    'importante': 'important',
    'notas': 'notes',
    'previous_stock': 'previousStock',
    'low_stock_threshold': 'lowStockThreshold',
    'sale_price': 'salePrice',
    'purchase_price': 'purchasePrice',
    'provider_id': 'providerId',
    'created_by': 'createdBy',
    'updated_by': 'updatedBy',
    'created_at': 'createdAt',
    'updated_at': 'updatedAt',
}

_LEGACY_CATEGORIES = {
    'licor': ProductCategory.LIQUOR,
    'vino': ProductCategory.WINE,
    'cerveza': ProductCategory.BEER,
    'ron': ProductCategory.RUM,
}

_LEGACY_UNITS = {
    'botella': UnitOfMeasure.BOTTLE,
    'litro': UnitOfMeasure.LITER,
    'mililitro': UnitOfMeasure.MILLILITER,
    'unidad': UnitOfMeasure.UNIT,
    'caja': UnitOfMeasure.BOX,
    'kilogramo': UnitOfMeasure.KILOGRAM,
    'gramo': UnitOfMeasure.GRAM,
}


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return default
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not parsed.is_finite():
        return default
    return parsed


def _text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def parse_category(value: Any, *, strict: bool = False) -> ProductCategory:
    """Resolve a category; unknown values fall back to the default unless ``strict``."""
    raw = (str(value or '')).strip().lower()
    if raw in _LEGACY_CATEGORIES:
        return _LEGACY_CATEGORIES[raw]
    try:
        return ProductCategory(raw)
    except ValueError:
        if strict:
            raise ValidationFailed(f'Unknown category: {value}') from None
        return ProductCategory(settings.default_category)


def parse_unit(value: Any, *, strict: bool = False) -> UnitOfMeasure:
    raw = (str(value or '')).strip().lower()
    if raw in _LEGACY_UNITS:
        return _LEGACY_UNITS[raw]
    try:
        return UnitOfMeasure(raw)
    except ValueError:
        if strict:
            raise ValidationFailed(f'Unknown unit of measure: {value}') from None
        return UnitOfMeasure(settings.default_unit)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _number(value: Decimal | None) -> float | int | None:
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class Product:
    id: str | None
    name: str
    brand: str | None = None
    category: ProductCategory = ProductCategory.LIQUOR
    stock: Decimal = Decimal('0')
    low_stock_threshold: Decimal = Decimal('5')
    unit: UnitOfMeasure = UnitOfMeasure.BOTTLE
    sale_price: Decimal = Decimal('0')
    purchase_price: Decimal = Decimal('0')
    provider_id: str | None = None
    barcode: str | None = None
    sku: str | None = None
    upc: str | None = None
    important: bool = False
    notes: str = ''
    previous_stock: Decimal | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1
    domain: str = field(default_factory=lambda: settings.history_domain)

    @property
    def display_name(self) -> str:
        if self.brand:
            return f'{self.brand} {self.name}'
        return self.name

    @classmethod
    def from_document(cls, document: dict[str, Any], *, product_id: str | None = None) -> 'Product':
        """Build a product from a stored or submitted document.

        Missing and legacy fields are resolved here, once, so callers never
        need ad hoc fallbacks: threshold defaults to 5, unit to bottle, and
        negative or unreadable stock to zero.
        """
        data = {_LEGACY_PRODUCT_KEYS.get(key, key): value for key, value in document.items()}
        default_threshold = Decimal(settings.default_low_stock_threshold)

        stock = as_decimal(data.get('stock'), Decimal('0'))
        threshold = as_decimal(data.get('lowStockThreshold'), default_threshold)
        return cls(
            id=product_id or _text(data.get('id')),
            name=_text(data.get('name')) or '',
            brand=_text(data.get('brand')),
            category=parse_category(data.get('category')),
            stock=stock if stock >= 0 else Decimal('0'),
            low_stock_threshold=threshold if threshold >= 0 else default_threshold,
            unit=parse_unit(data.get('unit')),
            sale_price=as_decimal(data.get('salePrice'), Decimal('0')),
            purchase_price=as_decimal(data.get('purchasePrice'), Decimal('0')),
            provider_id=_text(data.get('providerId')),
            barcode=_text(data.get('barcode')),
            sku=_text(data.get('sku')),
            upc=_text(data.get('upc')),
            important=bool(data.get('important', False)),
            notes=str(data.get('notes') or ''),
            previous_stock=as_decimal(data.get('previousStock')),
            created_by=_text(data.get('createdBy')),
            updated_by=_text(data.get('updatedBy')),
            created_at=data.get('createdAt') if isinstance(data.get('createdAt'), datetime) else None,
            updated_at=data.get('updatedAt') if isinstance(data.get('updatedAt'), datetime) else None,
            version=int(data.get('version') or 1),
            domain=_text(data.get('domain')) or settings.history_domain,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'brand': self.brand,
            'category': self.category.value,
            'stock': _number(self.stock),
            'lowStockThreshold': _number(self.low_stock_threshold),
            'unit': self.unit.value,
            'salePrice': _number(self.sale_price),
            'purchasePrice': _number(self.purchase_price),
            'providerId': self.provider_id,
            'barcode': self.barcode,
            'sku': self.sku,
            'upc': self.upc,
            'important': self.important,
            'notes': self.notes,
            'previousStock': _number(self.previous_stock),
            'createdBy': self.created_by,
            'updatedBy': self.updated_by,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'version': self.version,
        }


@dataclass(frozen=True)
class HistoryEntry:
    product_name: str
    actor: str
    action: HistoryAction
    timestamp: datetime
    details: str
    previous_stock: Decimal | None = None
    new_stock: Decimal | None = None
    domain: str = field(default_factory=lambda: settings.history_domain)
    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            'id': self.id,
            'productName': self.product_name,
            'actor': self.actor,
            'action': self.action.value,
            'timestamp': _iso(self.timestamp),
            'details': self.details,
        }
        if self.action == HistoryAction.STOCK_UPDATE:
            document['previousStock'] = _number(self.previous_stock)
            document['newStock'] = _number(self.new_stock)
        return document


@dataclass(frozen=True)
class ProviderRecord:
    id: str | None
    company_name: str
    contact_person: str = ''
    phone: str = ''
    email: str = ''
    address: str = ''
    notes: str = ''
    created_by: str | None = None
    updated_by: str | None = None

    @classmethod
    def from_document(cls, document: dict[str, Any], *, provider_id: str | None = None) -> 'ProviderRecord':
        company = document.get('companyName') or document.get('name') or document.get('empresa') or ''
        return cls(
            id=provider_id or _text(document.get('id')),
            company_name=str(company).strip(),
            contact_person=str(document.get('contactPerson') or document.get('contacto') or '').strip(),
            phone=str(document.get('phone') or document.get('telefono') or '').strip(),
            email=str(document.get('email') or '').strip(),
            address=str(document.get('address') or document.get('direccion') or '').strip(),
            notes=str(document.get('notes') or document.get('notas') or '').strip(),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'companyName': self.company_name,
            'contactPerson': self.contact_person,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'notes': self.notes,
        }


@dataclass(frozen=True)
class UserRecord:
    email: str
    display_name: str
    role: Role = Role.GUEST
    active: bool = True
    password_hash: str | None = None
    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'displayName': self.display_name,
            'role': self.role.value,
            'active': self.active,
        }


class InventoryStore(Protocol):
    """Async gateway to the hosted document collections.

    Product writes always travel with their history entry and are applied
    all-or-nothing. ``expected_version`` guards against lost updates.
    """

    async def load_products(self) -> list[Product]: ...

    async def get_product(self, product_id: str) -> Product | None: ...

    async def insert_product(self, product: Product, entry: HistoryEntry) -> Product: ...

    async def replace_product(
        self, product: Product, entry: HistoryEntry, *, expected_version: int
    ) -> tuple[Product, HistoryEntry]: ...

    async def remove_product(self, product_id: str, entry: HistoryEntry, *, expected_version: int | None = None) -> None: ...

    async def query_history(
        self,
        *,
        domain: str,
        action: HistoryAction | None = None,
        actor: str | None = None,
        limit: int,
    ) -> list[HistoryEntry]: ...

    async def list_providers(self) -> list[ProviderRecord]: ...

    async def get_provider(self, provider_id: str) -> ProviderRecord | None: ...

    async def save_provider(self, provider: ProviderRecord) -> ProviderRecord: ...

    async def delete_provider(self, provider_id: str) -> None: ...

    async def find_user(self, email: str) -> UserRecord | None: ...

    async def list_users(self) -> list[UserRecord]: ...

    async def save_user(self, user: UserRecord) -> UserRecord: ...

    async def delete_user(self, email: str) -> None: ...

    def subscribe_products(self, listener: ProductListener) -> Callable[[], None]: ...
