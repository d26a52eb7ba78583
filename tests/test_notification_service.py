from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, time, timedelta
from decimal import Decimal

from app.errors import ValidationFailed
from app.services.catalog_service import ProductCatalog, StockStatus
from app.services.inventory_store import Product
from app.services.notification_service import (
    AlertPreferences,
    AlertSchedule,
    ScheduleMode,
    StockAlertScheduler,
    announce_product_change,
    evaluate_stock_alerts,
    product_update_notice,
    stock_notice_action,
)


def _product(product_id: str, name: str, stock: str) -> Product:
    return Product(id=product_id, name=name, stock=Decimal(stock))


SAMPLE = [
    _product('a', 'Reposado', '0'),
    _product('b', 'Blue Label', '2'),
    _product('c', 'London Dry', '6'),
    _product('d', 'Aperol', '0'),
    _product('e', 'Old No. 7', '10'),
]


class RecordingSink:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.shown: list[tuple[str, str, str]] = []

    async def request_permission(self) -> bool:
        return self.granted

    async def show(self, title: str, body: str, tag: str) -> None:
        self.shown.append((title, body, tag))


class EvaluateStockAlertsTests(unittest.TestCase):
    def test_one_alert_per_partition(self) -> None:
        alerts = evaluate_stock_alerts(SAMPLE)
        self.assertEqual([alert.kind for alert in alerts], [StockStatus.OUT, StockStatus.LOW])
        out, low = alerts
        self.assertEqual(out.count, 2)
        self.assertEqual(out.tag, 'out-of-stock')
        self.assertEqual(out.title, 'Products out of stock')
        self.assertEqual(out.body, '2 products out of stock: Reposado, Aperol')
        self.assertEqual(low.count, 1)
        self.assertEqual(low.body, '1 product with low stock: Blue Label')

    def test_only_three_products_are_named(self) -> None:
        empty = [_product(str(index), f'P{index}', '0') for index in range(5)]
        alert = evaluate_stock_alerts(empty)[0]
        self.assertEqual(alert.product_names, ('P0', 'P1', 'P2'))
        self.assertTrue(alert.body.endswith('...'))

    def test_kinds_can_be_switched_off(self) -> None:
        alerts = evaluate_stock_alerts(SAMPLE, include_out=False)
        self.assertEqual([alert.kind for alert in alerts], [StockStatus.LOW])
        self.assertEqual(evaluate_stock_alerts([_product('x', 'Full', '50')]), [])


class ProductNoticeTests(unittest.IsolatedAsyncioTestCase):
    async def test_notice_content(self) -> None:
        title, body, tag = product_update_notice(SAMPLE[1], 'low-stock')
        self.assertEqual(title, 'Low stock')
        self.assertEqual(tag, 'product-b-low-stock')
        self.assertIn('Blue Label', body)
        self.assertIsNone(product_update_notice(SAMPLE[1], 'renamed'))

    async def test_stock_notice_action_follows_status(self) -> None:
        self.assertEqual(stock_notice_action(SAMPLE[0]), 'out-of-stock')
        self.assertEqual(stock_notice_action(SAMPLE[1]), 'low-stock')
        self.assertEqual(stock_notice_action(SAMPLE[2]), 'updated')

    async def test_announce_respects_permission(self) -> None:
        denied = RecordingSink(granted=False)
        self.assertFalse(await announce_product_change(denied, SAMPLE[0], 'deleted'))
        self.assertEqual(denied.shown, [])

        sink = RecordingSink()
        self.assertTrue(await announce_product_change(sink, SAMPLE[0], 'deleted'))
        self.assertEqual(sink.shown[0][0], 'Product deleted')


class AlertScheduleTests(unittest.TestCase):
    def test_interval_must_be_an_allowed_value(self) -> None:
        with self.assertRaises(ValidationFailed):
            AlertSchedule(mode=ScheduleMode.INTERVAL, interval_minutes=45)
        with self.assertRaises(ValidationFailed):
            AlertSchedule.build(mode='hourly', interval_minutes=60, weekday=0, at='09:00')
        with self.assertRaises(ValidationFailed):
            AlertSchedule.build(mode='weekly', interval_minutes=60, weekday=0, at='9am')

    def test_interval_due(self) -> None:
        schedule = AlertSchedule(mode=ScheduleMode.INTERVAL, interval_minutes=15)
        now = datetime(2024, 5, 6, 12, 0)
        self.assertTrue(schedule.is_due(now, None))
        self.assertFalse(schedule.is_due(now, now - timedelta(minutes=10)))
        self.assertTrue(schedule.is_due(now, now - timedelta(minutes=15)))
        self.assertEqual(schedule.poll_seconds, 900)

    def test_weekly_fires_within_one_minute_of_target(self) -> None:
        schedule = AlertSchedule.build(mode='weekly', interval_minutes=60, weekday=0, at='09:00')
        monday = datetime(2024, 5, 6, 9, 0, 40)
        self.assertEqual(monday.weekday(), 0)
        self.assertTrue(schedule.is_due(monday, None))
        self.assertFalse(schedule.is_due(monday.replace(minute=5), None))
        self.assertFalse(schedule.is_due(monday + timedelta(days=1), None))
        self.assertFalse(schedule.is_due(monday + timedelta(seconds=30), monday))
        self.assertTrue(schedule.is_due(monday, monday - timedelta(days=7)))

    def test_preferences_round_trip_through_documents(self) -> None:
        current = AlertPreferences(
            enabled=True,
            include_out=True,
            include_low=True,
            schedule=AlertSchedule(),
        )
        updated = AlertPreferences.from_document({'mode': 'weekly', 'weekday': 4, 'time': '18:30', 'lowStock': False}, current=current)
        self.assertEqual(updated.schedule.mode, ScheduleMode.WEEKLY)
        self.assertEqual(updated.schedule.at, time(18, 30))
        self.assertFalse(updated.include_low)
        self.assertEqual(updated.to_document()['time'], '18:30')


class StockAlertSchedulerTests(unittest.IsolatedAsyncioTestCase):
    async def test_run_once_delivers_partition_alerts(self) -> None:
        sink = RecordingSink()
        scheduler = StockAlertScheduler(ProductCatalog(SAMPLE), sink, AlertSchedule())
        alerts = await scheduler.run_once()
        self.assertEqual(len(alerts), 2)
        self.assertEqual([tag for _, _, tag in sink.shown], ['out-of-stock', 'low-stock'])
        self.assertIsNotNone(scheduler.last_run)

    async def test_nothing_is_shown_without_permission(self) -> None:
        sink = RecordingSink(granted=False)
        scheduler = StockAlertScheduler(ProductCatalog(SAMPLE), sink, AlertSchedule())
        self.assertEqual(await scheduler.run_once(), [])
        self.assertEqual(sink.shown, [])

    async def test_start_and_stop_cancel_the_background_task(self) -> None:
        sink = RecordingSink()
        scheduler = StockAlertScheduler(ProductCatalog(SAMPLE), sink, AlertSchedule(interval_minutes=15))
        scheduler.start()
        self.assertTrue(scheduler.running)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await scheduler.stop()
        self.assertFalse(scheduler.running)
        self.assertEqual(len(sink.shown), 2)


if __name__ == '__main__':
    unittest.main()
