from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    ADMIN = 'admin'
    MANAGER = 'manager'
    BARTENDER = 'bartender'
    GUEST = 'guest'


class ProductCategory(str, Enum):
    LIQUOR = 'liquor'
    WINE = 'wine'
    BEER = 'beer'
    WHISKY = 'whisky'
    VODKA = 'vodka'
    GIN = 'gin'
    RUM = 'rum'
    TEQUILA = 'tequila'


class UnitOfMeasure(str, Enum):
    BOTTLE = 'bottle'
    LITER = 'liter'
    MILLILITER = 'milliliter'
    UNIT = 'unit'
    BOX = 'box'
    KILOGRAM = 'kilogram'
    GRAM = 'gram'


class HistoryAction(str, Enum):
    CREATE = 'create'
    EDIT = 'edit'
    STOCK_UPDATE = 'stock_update'
    DELETE = 'delete'
    MARK_IMPORTANT = 'mark_important'


class InventoryItem(Base):
    __tablename__ = 'inventory'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='inventory_stock_non_negative'),
        CheckConstraint('sale_price >= 0', name='inventory_sale_price_non_negative'),
        CheckConstraint('purchase_price >= 0', name='inventory_purchase_price_non_negative'),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    domain: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    brand: Mapped[str | None] = mapped_column(Text)
    category: Mapped[ProductCategory] = mapped_column(
        SQLEnum(ProductCategory, name='product_category'), nullable=False
    )
    stock: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'))
    previous_stock: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    low_stock_threshold: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('5'))
    unit: Mapped[UnitOfMeasure] = mapped_column(SQLEnum(UnitOfMeasure, name='unit_of_measure'), nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    provider_id: Mapped[str | None] = mapped_column(String(64))
    barcode: Mapped[str | None] = mapped_column(Text, index=True)
    sku: Mapped[str | None] = mapped_column(Text, index=True)
    upc: Mapped[str | None] = mapped_column(Text, index=True)
    important: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default='')
    created_by: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {'version_id_col': version}


class HistoryRecord(Base):
    __tablename__ = 'historial'
    __table_args__ = (Index('historial_domain_timestamp_idx', 'domain', 'timestamp'),)

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True)
    domain: Mapped[str] = mapped_column(String(32), nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[HistoryAction] = mapped_column(SQLEnum(HistoryAction, name='history_action'), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    previous_stock: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    new_stock: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Provider(Base):
    __tablename__ = 'providers'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_person: Mapped[str] = mapped_column(Text, nullable=False, default='')
    phone: Mapped[str] = mapped_column(Text, nullable=False, default='')
    email: Mapped[str] = mapped_column(Text, nullable=False, default='')
    address: Mapped[str] = mapped_column(Text, nullable=False, default='')
    notes: Mapped[str] = mapped_column(Text, nullable=False, default='')
    created_by: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DirectoryUser(Base):
    __tablename__ = 'users'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole, name='user_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    password_hash: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
