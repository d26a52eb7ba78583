from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.auth import Principal, Role
from app.models import HistoryAction
from app.services import history_service
from app.services.inventory_store import Product
from app.services.memory_inventory_store import MemoryInventoryStore

GUEST = Principal(email='guest@bar.example', display_name='Guest', role=Role.GUEST)
PRODUCT = Product(id='p1', name='Reposado', brand='Don Julio', stock=Decimal('3'))


class HistoryRecordTests(unittest.TestCase):
    def test_default_details_per_action(self) -> None:
        self.assertEqual(history_service.default_details(HistoryAction.CREATE, PRODUCT), 'Product created')
        self.assertEqual(history_service.default_details(HistoryAction.EDIT, PRODUCT), 'Product edited')
        self.assertEqual(
            history_service.default_details(HistoryAction.DELETE, PRODUCT),
            'Product deleted from inventory',
        )
        self.assertEqual(
            history_service.default_details(HistoryAction.MARK_IMPORTANT, PRODUCT, {'important': False}),
            'Product unmarked as important',
        )

    def test_stock_update_entry_carries_both_values(self) -> None:
        entry = history_service.record(
            HistoryAction.STOCK_UPDATE,
            PRODUCT,
            'bartender@bar.example',
            extra={'previous_stock': Decimal('3'), 'new_stock': Decimal('1.5')},
        )
        self.assertEqual(entry.details, 'Stock updated from 3 to 1.5')
        self.assertEqual(entry.previous_stock, Decimal('3'))
        self.assertEqual(entry.new_stock, Decimal('1.5'))
        self.assertEqual(entry.product_name, 'Reposado')
        self.assertEqual(entry.domain, 'bar')
        self.assertIn('newStock', entry.to_document())

    def test_stock_update_without_values_is_a_programming_error(self) -> None:
        with self.assertRaises(ValueError):
            history_service.record(HistoryAction.STOCK_UPDATE, PRODUCT, 'someone')

    def test_non_stock_entries_omit_stock_values(self) -> None:
        entry = history_service.record(HistoryAction.EDIT, PRODUCT, 'manager@bar.example', details='Renamed')
        self.assertEqual(entry.details, 'Renamed')
        self.assertIsNone(entry.previous_stock)
        self.assertNotIn('previousStock', entry.to_document())

    def test_clamp_limit(self) -> None:
        self.assertEqual(history_service.clamp_limit(None), history_service.DEFAULT_HISTORY_LIMIT)
        self.assertEqual(history_service.clamp_limit(0), 1)
        self.assertEqual(history_service.clamp_limit(10_000), history_service.MAX_HISTORY_LIMIT)


class HistoryQueryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = MemoryInventoryStore(products=[PRODUCT])
        start = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)
        entries = [
            history_service.record(HistoryAction.EDIT, PRODUCT, 'Manager@bar.example', timestamp=start),
            history_service.record(
                HistoryAction.STOCK_UPDATE,
                PRODUCT,
                'bartender@bar.example',
                extra={'previous_stock': Decimal('3'), 'new_stock': Decimal('2')},
                timestamp=start + timedelta(minutes=5),
            ),
            history_service.record(
                HistoryAction.STOCK_UPDATE,
                PRODUCT,
                'bartender@bar.example',
                extra={'previous_stock': Decimal('2'), 'new_stock': Decimal('1')},
                timestamp=start + timedelta(minutes=10),
            ),
        ]
        for entry in entries:
            await self.store.replace_product(PRODUCT, entry, expected_version=(await self.store.get_product('p1')).version)

    async def test_newest_first(self) -> None:
        entries = await history_service.query_history(self.store, GUEST)
        self.assertEqual(len(entries), 3)
        self.assertEqual(entries[0].new_stock, Decimal('1'))
        self.assertEqual(entries[-1].action, HistoryAction.EDIT)

    async def test_filters_by_action_and_actor(self) -> None:
        stock_only = await history_service.query_history(self.store, GUEST, action=HistoryAction.STOCK_UPDATE)
        self.assertEqual(len(stock_only), 2)

        by_manager = await history_service.query_history(self.store, GUEST, actor='manager@BAR.example')
        self.assertEqual([entry.action for entry in by_manager], [HistoryAction.EDIT])

    async def test_limit(self) -> None:
        entries = await history_service.query_history(self.store, GUEST, limit=1)
        self.assertEqual(len(entries), 1)


if __name__ == '__main__':
    unittest.main()
