from __future__ import annotations

import unittest
from decimal import Decimal

from app.auth import Principal, Role
from app.errors import Conflict, InvalidQuantity, NotFound, PermissionDenied
from app.models import HistoryAction
from app.services.inventory_store import Product
from app.services.memory_inventory_store import MemoryInventoryStore
from app.services.stock_ledger_service import parse_quantity, update_stock

BARTENDER = Principal(email='bartender@bar.example', display_name='Bartender', role=Role.BARTENDER)
GUEST = Principal(email='guest@bar.example', display_name='Guest', role=Role.GUEST)


def _store() -> MemoryInventoryStore:
    return MemoryInventoryStore(
        products=[
            Product(id='jd', name='Old No. 7', brand="Jack Daniel's", stock=Decimal('12')),
            Product(id='gin', name='London Dry', brand='Tanqueray', stock=Decimal('6')),
        ]
    )


class ParseQuantityTests(unittest.TestCase):
    def test_accepts_integers_decimals_and_numeric_strings(self) -> None:
        self.assertEqual(parse_quantity(4), Decimal('4'))
        self.assertEqual(parse_quantity('2.5'), Decimal('2.5'))
        self.assertEqual(parse_quantity(' 0 '), Decimal('0'))

    def test_rejects_missing_non_numeric_and_negative_values(self) -> None:
        for value in (None, '', 'abc', True, 'NaN', 'Infinity', -1, '-0.5'):
            with self.subTest(value=value):
                with self.assertRaises(InvalidQuantity):
                    parse_quantity(value)

    def test_rounds_to_three_places(self) -> None:
        self.assertEqual(parse_quantity('1.2345'), Decimal('1.235'))
        self.assertEqual(parse_quantity('0.0004'), Decimal('0'))
        self.assertEqual(str(parse_quantity('2.5')), '2.5')

    def test_rejects_values_beyond_storable_range(self) -> None:
        self.assertEqual(parse_quantity('999999999.999'), Decimal('999999999.999'))
        for value in ('1000000000', '1e12', '999999999.9999'):
            with self.subTest(value=value):
                with self.assertRaises(InvalidQuantity):
                    parse_quantity(value)


class UpdateStockTests(unittest.IsolatedAsyncioTestCase):
    async def test_successful_update_writes_product_and_one_history_entry(self) -> None:
        store = _store()
        result = await update_stock(store, BARTENDER, 'jd', 5)

        self.assertEqual(result.product.stock, Decimal('5'))
        self.assertEqual(result.product.previous_stock, Decimal('12'))
        self.assertEqual(result.product.updated_by, BARTENDER.email)
        self.assertEqual(result.product.version, 2)

        entry = result.history_entry
        self.assertEqual(entry.action, HistoryAction.STOCK_UPDATE)
        self.assertEqual(entry.previous_stock, Decimal('12'))
        self.assertEqual(entry.new_stock, Decimal('5'))
        self.assertEqual(entry.actor, BARTENDER.email)
        self.assertEqual(entry.details, 'Stock updated from 12 to 5')

        history = await store.query_history(domain='bar', limit=10)
        self.assertEqual(len(history), 1)
        self.assertEqual((await store.get_product('jd')).stock, Decimal('5'))

    async def test_guest_is_denied_and_nothing_changes(self) -> None:
        store = _store()
        with self.assertRaises(PermissionDenied):
            await update_stock(store, GUEST, 'jd', 3)

        self.assertEqual((await store.get_product('jd')).stock, Decimal('12'))
        self.assertEqual(await store.query_history(domain='bar', limit=10), [])

    async def test_negative_value_is_rejected_without_side_effects(self) -> None:
        store = _store()
        with self.assertRaises(InvalidQuantity):
            await update_stock(store, BARTENDER, 'jd', -3)

        self.assertEqual((await store.get_product('jd')).stock, Decimal('12'))
        self.assertEqual(await store.query_history(domain='bar', limit=10), [])

    async def test_missing_product_raises_not_found(self) -> None:
        store = _store()
        with self.assertRaises(NotFound):
            await update_stock(store, BARTENDER, 'missing', 1)
        self.assertEqual(await store.query_history(domain='bar', limit=10), [])

    async def test_unchanged_value_is_still_recorded(self) -> None:
        store = _store()
        result = await update_stock(store, BARTENDER, 'gin', 6)
        self.assertEqual(result.history_entry.previous_stock, result.history_entry.new_stock)
        self.assertEqual(len(await store.query_history(domain='bar', limit=10)), 1)

    async def test_stale_expected_version_raises_conflict(self) -> None:
        store = _store()
        await update_stock(store, BARTENDER, 'jd', 10, expected_version=1)
        with self.assertRaises(Conflict):
            await update_stock(store, BARTENDER, 'jd', 9, expected_version=1)

        self.assertEqual((await store.get_product('jd')).stock, Decimal('10'))
        self.assertEqual(len(await store.query_history(domain='bar', limit=10)), 1)

    async def test_sequential_updates_chain_previous_values(self) -> None:
        store = _store()
        await update_stock(store, BARTENDER, 'gin', 4)
        second = await update_stock(store, BARTENDER, 'gin', 9)
        self.assertEqual(second.history_entry.previous_stock, Decimal('4'))
        history = await store.query_history(domain='bar', limit=10)
        self.assertEqual([entry.new_stock for entry in history], [Decimal('9'), Decimal('4')])


if __name__ == '__main__':
    unittest.main()
