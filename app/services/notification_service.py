from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Protocol

from app.config import settings
from app.errors import ValidationFailed
from app.services.catalog_service import ProductCatalog, StockStatus, stock_status
from app.services.inventory_store import Product

logger = logging.getLogger(__name__)

ALLOWED_INTERVAL_MINUTES = (15, 30, 60, 120, 240)
MAX_NAMED_PRODUCTS = 3
WEEKLY_TOLERANCE = timedelta(minutes=1)
WEEKLY_POLL_SECONDS = 30
INTERVAL_SLACK = timedelta(seconds=1)


class ScheduleMode(str, Enum):
    INTERVAL = 'interval'
    WEEKLY = 'weekly'


@dataclass(frozen=True)
class StockAlert:
    kind: StockStatus
    title: str
    body: str
    tag: str
    count: int
    product_names: tuple[str, ...]


class AlertSink(Protocol):
    async def request_permission(self) -> bool: ...

    async def show(self, title: str, body: str, tag: str) -> None: ...


class LoggingAlertSink:
    async def request_permission(self) -> bool:
        return True

    async def show(self, title: str, body: str, tag: str) -> None:
        logger.info('stock alert tag=%s title=%s body=%s', tag, title, body)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def _named(products: list[Product]) -> str:
    names = ', '.join(product.name for product in products[:MAX_NAMED_PRODUCTS])
    if len(products) > MAX_NAMED_PRODUCTS:
        names += '...'
    return names


def _alert(kind: StockStatus, products: list[Product]) -> StockAlert:
    count = len(products)
    if kind == StockStatus.OUT:
        title = 'Products out of stock'
        body = f'{count} {_plural(count, "product", "products")} out of stock: {_named(products)}'
        tag = 'out-of-stock'
    else:
        title = 'Low stock detected'
        body = f'{count} {_plural(count, "product", "products")} with low stock: {_named(products)}'
        tag = 'low-stock'
    return StockAlert(
        kind=kind,
        title=title,
        body=body,
        tag=tag,
        count=count,
        product_names=tuple(product.name for product in products[:MAX_NAMED_PRODUCTS]),
    )


def evaluate_stock_alerts(
    products: Iterable[Product],
    *,
    include_out: bool = True,
    include_low: bool = True,
) -> list[StockAlert]:
    """One alert per non-empty partition, never one per product."""
    items = list(products)
    alerts: list[StockAlert] = []
    out = [product for product in items if stock_status(product) == StockStatus.OUT]
    low = [product for product in items if stock_status(product) == StockStatus.LOW]
    if include_out and out:
        alerts.append(_alert(StockStatus.OUT, out))
    if include_low and low:
        alerts.append(_alert(StockStatus.LOW, low))
    return alerts


def product_update_notice(product: Product, action: str) -> tuple[str, str, str] | None:
    notices = {
        'added': ('Product added', f'{product.name} was added to the inventory'),
        'updated': ('Product updated', f'{product.name} - Stock: {product.stock}'),
        'deleted': ('Product deleted', f'{product.name} was removed from the inventory'),
        'low-stock': ('Low stock', f'{product.name} has only {product.stock} left'),
        'out-of-stock': ('Out of stock', f'{product.name} has run out'),
    }
    if action not in notices:
        return None
    title, body = notices[action]
    return title, body, f'product-{product.id}-{action}'


def _parse_time(value: str | time) -> time:
    if isinstance(value, time):
        return value
    try:
        hours, minutes = (int(part) for part in str(value).strip().split(':', 1))
        return time(hour=hours, minute=minutes)
    except ValueError as exc:
        raise ValidationFailed(f'Invalid alert time: {value}') from exc


@dataclass(frozen=True)
class AlertSchedule:
    mode: ScheduleMode = ScheduleMode.INTERVAL
    interval_minutes: int = 60
    weekday: int = 0
    at: time = field(default_factory=lambda: time(9, 0))

    def __post_init__(self) -> None:
        if self.mode == ScheduleMode.INTERVAL and self.interval_minutes not in ALLOWED_INTERVAL_MINUTES:
            raise ValidationFailed(f'Interval must be one of {ALLOWED_INTERVAL_MINUTES} minutes')
        if self.mode == ScheduleMode.WEEKLY and not 0 <= self.weekday <= 6:
            raise ValidationFailed('Weekday must be between 0 (Monday) and 6 (Sunday)')

    @classmethod
    def build(cls, *, mode: str, interval_minutes: int, weekday: int, at: str | time) -> 'AlertSchedule':
        try:
            parsed_mode = ScheduleMode(str(mode).strip().lower())
        except ValueError as exc:
            raise ValidationFailed(f'Unknown alert mode: {mode}') from exc
        try:
            interval_minutes, weekday = int(interval_minutes), int(weekday)
        except (TypeError, ValueError) as exc:
            raise ValidationFailed('Interval and weekday must be whole numbers') from exc
        return cls(mode=parsed_mode, interval_minutes=interval_minutes, weekday=weekday, at=_parse_time(at))

    @classmethod
    def from_settings(cls) -> 'AlertSchedule':
        return cls.build(
            mode=settings.alert_mode,
            interval_minutes=settings.alert_interval_minutes,
            weekday=settings.alert_weekday,
            at=settings.alert_time,
        )

    def is_due(self, now: datetime, last_run: datetime | None) -> bool:
        if self.mode == ScheduleMode.INTERVAL:
            return last_run is None or now - last_run >= timedelta(minutes=self.interval_minutes) - INTERVAL_SLACK

        if now.weekday() != self.weekday:
            return False
        target = now.replace(hour=self.at.hour, minute=self.at.minute, second=0, microsecond=0)
        if abs(now - target) > WEEKLY_TOLERANCE:
            return False
        # One run per weekly window even though several polls land inside it.
        return last_run is None or now - last_run > 2 * WEEKLY_TOLERANCE

    @property
    def poll_seconds(self) -> float:
        if self.mode == ScheduleMode.INTERVAL:
            return self.interval_minutes * 60
        return WEEKLY_POLL_SECONDS


class StockAlertScheduler:
    """Periodic low/out-of-stock evaluation bound to one owning session.

    ``stop()`` must be called on logout or shutdown; the background task is
    otherwise kept alive by the event loop.
    """

    def __init__(
        self,
        catalog: ProductCatalog,
        sink: AlertSink,
        schedule: AlertSchedule,
        *,
        include_out: bool = True,
        include_low: bool = True,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.catalog = catalog
        self.sink = sink
        self.schedule = schedule
        self.include_out = include_out
        self.include_low = include_low
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self.last_run: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> list[StockAlert]:
        self.last_run = self._clock()
        alerts = evaluate_stock_alerts(
            self.catalog.list(),
            include_out=self.include_out,
            include_low=self.include_low,
        )
        if not alerts:
            return []
        if not await self.sink.request_permission():
            logger.info('stock alerts skipped: notification permission not granted')
            return []
        for alert in alerts:
            await self.sink.show(alert.title, alert.body, alert.tag)
        return alerts

    async def _loop(self) -> None:
        while True:
            if self.schedule.is_due(self._clock(), self.last_run):
                try:
                    await self.run_once()
                except Exception:
                    logger.exception('stock alert evaluation failed')
            await self._sleep(self.schedule.poll_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info('stock alert scheduler started mode=%s', self.schedule.mode.value)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info('stock alert scheduler stopped')


def stock_notice_action(product: Product) -> str:
    status = stock_status(product)
    if status == StockStatus.OUT:
        return 'out-of-stock'
    if status == StockStatus.LOW:
        return 'low-stock'
    return 'updated'


async def announce_product_change(sink: AlertSink, product: Product, action: str) -> bool:
    notice = product_update_notice(product, action)
    if notice is None:
        return False
    if not await sink.request_permission():
        return False
    await sink.show(*notice)
    return True


@dataclass(frozen=True)
class AlertPreferences:
    enabled: bool
    include_out: bool
    include_low: bool
    schedule: AlertSchedule

    @classmethod
    def from_settings(cls) -> 'AlertPreferences':
        return cls(
            enabled=settings.alerts_enabled,
            include_out=settings.alerts_out_of_stock,
            include_low=settings.alerts_low_stock,
            schedule=AlertSchedule.from_settings(),
        )

    @classmethod
    def from_document(cls, document: dict, *, current: 'AlertPreferences') -> 'AlertPreferences':
        schedule = current.schedule
        return cls(
            enabled=bool(document.get('enabled', current.enabled)),
            include_out=bool(document.get('outOfStock', current.include_out)),
            include_low=bool(document.get('lowStock', current.include_low)),
            schedule=AlertSchedule.build(
                mode=document.get('mode', schedule.mode.value),
                interval_minutes=document.get('intervalMinutes', schedule.interval_minutes),
                weekday=document.get('weekday', schedule.weekday),
                at=document.get('time', schedule.at),
            ),
        )

    def to_document(self) -> dict:
        return {
            'enabled': self.enabled,
            'outOfStock': self.include_out,
            'lowStock': self.include_low,
            'mode': self.schedule.mode.value,
            'intervalMinutes': self.schedule.interval_minutes,
            'weekday': self.schedule.weekday,
            'time': self.schedule.at.strftime('%H:%M'),
        }

    def scheduler(self, catalog: ProductCatalog, sink: AlertSink) -> StockAlertScheduler:
        return StockAlertScheduler(
            catalog,
            sink,
            self.schedule,
            include_out=self.include_out,
            include_low=self.include_low,
        )
