from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from starlette.concurrency import run_in_threadpool

from app.auth import Role
from app.errors import Conflict, NotFound, StorageUnavailable
from app.models import Base, DirectoryUser, HistoryAction, HistoryRecord, InventoryItem, Provider, UserRole
from app.services.inventory_store import (
    HistoryEntry,
    Product,
    ProductListener,
    ProviderRecord,
    UserRecord,
    utcnow,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


def _to_product(row: InventoryItem) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        brand=row.brand,
        category=row.category,
        stock=Decimal(row.stock),
        low_stock_threshold=Decimal(row.low_stock_threshold),
        unit=row.unit,
        sale_price=Decimal(row.sale_price),
        purchase_price=Decimal(row.purchase_price),
        provider_id=row.provider_id,
        barcode=row.barcode,
        sku=row.sku,
        upc=row.upc,
        important=row.important,
        notes=row.notes or '',
        previous_stock=Decimal(row.previous_stock) if row.previous_stock is not None else None,
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
        domain=row.domain,
    )


def _apply_product(row: InventoryItem, product: Product) -> None:
    row.domain = product.domain
    row.name = product.name
    row.brand = product.brand
    row.category = product.category
    row.stock = product.stock
    row.previous_stock = product.previous_stock
    row.low_stock_threshold = product.low_stock_threshold
    row.unit = product.unit
    row.sale_price = product.sale_price
    row.purchase_price = product.purchase_price
    row.provider_id = product.provider_id
    row.barcode = product.barcode
    row.sku = product.sku
    row.upc = product.upc
    row.important = product.important
    row.notes = product.notes
    row.updated_by = product.updated_by
    row.updated_at = product.updated_at or utcnow()


def _history_row(entry: HistoryEntry) -> HistoryRecord:
    return HistoryRecord(
        domain=entry.domain,
        product_name=entry.product_name,
        actor=entry.actor,
        action=entry.action,
        details=entry.details,
        previous_stock=entry.previous_stock,
        new_stock=entry.new_stock,
        timestamp=entry.timestamp,
    )


def _to_entry(row: HistoryRecord) -> HistoryEntry:
    return HistoryEntry(
        id=str(row.id),
        product_name=row.product_name,
        actor=row.actor,
        action=row.action,
        timestamp=row.timestamp,
        details=row.details,
        previous_stock=Decimal(row.previous_stock) if row.previous_stock is not None else None,
        new_stock=Decimal(row.new_stock) if row.new_stock is not None else None,
        domain=row.domain,
    )


def _to_provider(row: Provider) -> ProviderRecord:
    return ProviderRecord(
        id=row.id,
        company_name=row.company_name,
        contact_person=row.contact_person,
        phone=row.phone,
        email=row.email,
        address=row.address,
        notes=row.notes,
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


def _to_user(row: DirectoryUser) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        role=Role(row.role.value if hasattr(row.role, 'value') else row.role),
        active=row.active,
        password_hash=row.password_hash,
    )


class SqlInventoryStore:
    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        if session_factory is None:
            from app.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._listeners: list[ProductListener] = []

    def create_schema(self) -> None:
        with self._session_factory() as db:
            Base.metadata.create_all(bind=db.get_bind())

    async def _run(self, operation: Callable[[Session], object]):
        def _call():
            with self._session_factory() as db:
                try:
                    return operation(db)
                except StaleDataError as exc:
                    db.rollback()
                    raise Conflict('Product was changed by someone else; reload and retry') from exc
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.warning('inventory store call failed: %s', exc)
                    raise StorageUnavailable('Inventory database is unavailable') from exc

        return await run_in_threadpool(_call)

    async def _publish(self) -> None:
        if not self._listeners:
            return
        try:
            snapshot = await self.load_products()
        except StorageUnavailable as exc:
            # The write is already committed; listeners keep their last snapshot.
            logger.warning('product snapshot reload failed after write: %s', exc)
            snapshot = None
        for listener in list(self._listeners):
            listener(list(snapshot) if snapshot is not None else None)

    async def load_products(self) -> list[Product]:
        def _op(db: Session) -> list[Product]:
            rows = db.execute(select(InventoryItem)).scalars().all()
            return [_to_product(row) for row in rows]

        return await self._run(_op)

    async def get_product(self, product_id: str) -> Product | None:
        def _op(db: Session) -> Product | None:
            row = db.get(InventoryItem, product_id)
            return _to_product(row) if row else None

        return await self._run(_op)

    async def insert_product(self, product: Product, entry: HistoryEntry) -> Product:
        def _op(db: Session) -> Product:
            now = utcnow()
            row = InventoryItem(
                id=product.id or _new_id(),
                created_by=product.created_by,
                created_at=product.created_at or now,
            )
            _apply_product(row, product)
            db.add(row)
            db.add(_history_row(entry))
            db.commit()
            return _to_product(row)

        stored = await self._run(_op)
        await self._publish()
        return stored

    async def replace_product(
        self, product: Product, entry: HistoryEntry, *, expected_version: int
    ) -> tuple[Product, HistoryEntry]:
        def _op(db: Session) -> tuple[Product, HistoryEntry]:
            row = db.get(InventoryItem, product.id)
            if row is None:
                raise NotFound('Product no longer exists')
            if row.version != expected_version:
                raise Conflict(f'{row.name} was changed by someone else; reload and retry')
            _apply_product(row, product)
            history_row = _history_row(entry)
            db.add(history_row)
            db.commit()
            return _to_product(row), _to_entry(history_row)

        stored = await self._run(_op)
        await self._publish()
        return stored

    async def remove_product(self, product_id: str, entry: HistoryEntry, *, expected_version: int | None = None) -> None:
        def _op(db: Session) -> None:
            row = db.get(InventoryItem, product_id)
            if row is None:
                raise NotFound('Product no longer exists')
            if expected_version is not None and row.version != expected_version:
                raise Conflict(f'{row.name} was changed by someone else; reload and retry')
            db.delete(row)
            db.add(_history_row(entry))
            db.commit()

        await self._run(_op)
        await self._publish()

    async def query_history(
        self,
        *,
        domain: str,
        action: HistoryAction | None = None,
        actor: str | None = None,
        limit: int,
    ) -> list[HistoryEntry]:
        def _op(db: Session) -> list[HistoryEntry]:
            stmt = select(HistoryRecord).where(HistoryRecord.domain == domain)
            if action is not None:
                stmt = stmt.where(HistoryRecord.action == action)
            if actor is not None:
                stmt = stmt.where(func.lower(HistoryRecord.actor) == actor.lower())
            stmt = stmt.order_by(HistoryRecord.timestamp.desc(), HistoryRecord.id.desc()).limit(limit)
            return [_to_entry(row) for row in db.execute(stmt).scalars().all()]

        return await self._run(_op)

    async def list_providers(self) -> list[ProviderRecord]:
        def _op(db: Session) -> list[ProviderRecord]:
            return [_to_provider(row) for row in db.execute(select(Provider)).scalars().all()]

        return await self._run(_op)

    async def get_provider(self, provider_id: str) -> ProviderRecord | None:
        def _op(db: Session) -> ProviderRecord | None:
            row = db.get(Provider, provider_id)
            return _to_provider(row) if row else None

        return await self._run(_op)

    async def save_provider(self, provider: ProviderRecord) -> ProviderRecord:
        def _op(db: Session) -> ProviderRecord:
            if provider.id:
                row = db.get(Provider, provider.id)
                if row is None:
                    raise NotFound('Provider not found')
            else:
                row = Provider(id=_new_id(), created_by=provider.created_by)
                db.add(row)
            row.company_name = provider.company_name
            row.contact_person = provider.contact_person
            row.phone = provider.phone
            row.email = provider.email
            row.address = provider.address
            row.notes = provider.notes
            row.updated_by = provider.updated_by
            row.updated_at = utcnow()
            db.commit()
            return _to_provider(row)

        return await self._run(_op)

    async def delete_provider(self, provider_id: str) -> None:
        def _op(db: Session) -> None:
            result = db.execute(delete(Provider).where(Provider.id == provider_id))
            if result.rowcount == 0:
                raise NotFound('Provider not found')
            db.commit()

        await self._run(_op)

    async def find_user(self, email: str) -> UserRecord | None:
        def _op(db: Session) -> UserRecord | None:
            row = db.execute(
                select(DirectoryUser).where(func.lower(DirectoryUser.email) == email.strip().lower())
            ).scalar_one_or_none()
            return _to_user(row) if row else None

        return await self._run(_op)

    async def list_users(self) -> list[UserRecord]:
        def _op(db: Session) -> list[UserRecord]:
            rows = db.execute(select(DirectoryUser).order_by(DirectoryUser.email.asc())).scalars().all()
            return [_to_user(row) for row in rows]

        return await self._run(_op)

    async def save_user(self, user: UserRecord) -> UserRecord:
        def _op(db: Session) -> UserRecord:
            row = db.execute(
                select(DirectoryUser).where(func.lower(DirectoryUser.email) == user.email.strip().lower())
            ).scalar_one_or_none()
            if row is None:
                row = DirectoryUser(id=user.id or _new_id(), email=user.email.strip())
                db.add(row)
            row.display_name = user.display_name
            row.role = UserRole(user.role.value)
            row.active = user.active
            if user.password_hash:
                row.password_hash = user.password_hash
            row.updated_at = utcnow()
            db.commit()
            return _to_user(row)

        return await self._run(_op)

    async def delete_user(self, email: str) -> None:
        def _op(db: Session) -> None:
            result = db.execute(
                delete(DirectoryUser).where(func.lower(DirectoryUser.email) == email.strip().lower())
            )
            if result.rowcount == 0:
                raise NotFound('User not found')
            db.commit()

        await self._run(_op)

    def subscribe_products(self, listener: ProductListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
