from __future__ import annotations

import unittest
from decimal import Decimal

from app.auth import Principal, Role
from app.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from app.models import HistoryAction, ProductCategory, UnitOfMeasure
from app.services import product_service
from app.services.memory_inventory_store import MemoryInventoryStore

ADMIN = Principal(email='admin@bar.example', display_name='Admin', role=Role.ADMIN)
MANAGER = Principal(email='manager@bar.example', display_name='Manager', role=Role.MANAGER)
BARTENDER = Principal(email='bartender@bar.example', display_name='Bartender', role=Role.BARTENDER)
GUEST = Principal(email='guest@bar.example', display_name='Guest', role=Role.GUEST)


class ProductServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = MemoryInventoryStore()
        self.product = await product_service.create_product(
            self.store,
            MANAGER,
            {'name': 'Old No. 7', 'brand': "Jack Daniel's", 'tipo': 'whisky', 'stock': 12, 'salePrice': 35},
        )

    async def _history(self):
        return await self.store.query_history(domain='bar', limit=50)

    async def test_create_resolves_defaults_and_records_history(self) -> None:
        self.assertIsNotNone(self.product.id)
        self.assertEqual(self.product.category, ProductCategory.WHISKY)
        self.assertEqual(self.product.unit, UnitOfMeasure.BOTTLE)
        self.assertEqual(self.product.low_stock_threshold, Decimal('5'))
        self.assertEqual(self.product.created_by, MANAGER.email)
        history = await self._history()
        self.assertEqual([entry.action for entry in history], [HistoryAction.CREATE])

    async def test_create_requires_a_name_and_non_negative_numbers(self) -> None:
        with self.assertRaises(ValidationFailed):
            await product_service.create_product(self.store, MANAGER, {'name': '  '})
        with self.assertRaises(ValidationFailed):
            await product_service.create_product(self.store, MANAGER, {'name': 'Fernet', 'salePrice': -1})

    async def test_guest_cannot_create(self) -> None:
        with self.assertRaises(PermissionDenied):
            await product_service.create_product(self.store, GUEST, {'name': 'Fernet'})

    async def test_edit_keeps_identity_and_audit_fields(self) -> None:
        edited = await product_service.edit_product(
            self.store,
            BARTENDER,
            self.product.id,
            {'notes': 'Top shelf', 'createdBy': 'intruder', 'id': 'other'},
        )
        self.assertEqual(edited.id, self.product.id)
        self.assertEqual(edited.notes, 'Top shelf')
        self.assertEqual(edited.created_by, MANAGER.email)
        self.assertEqual(edited.updated_by, BARTENDER.email)
        self.assertEqual(edited.previous_stock, Decimal('12'))
        self.assertEqual(edited.version, 2)

    async def test_edit_with_stale_version_conflicts(self) -> None:
        await product_service.edit_product(self.store, MANAGER, self.product.id, {'notes': 'a'}, expected_version=1)
        with self.assertRaises(Conflict):
            await product_service.edit_product(self.store, MANAGER, self.product.id, {'notes': 'b'}, expected_version=1)

    async def test_edit_rejects_unknown_category_or_unit(self) -> None:
        for changes in ({'category': 'ginn'}, {'tipo': 'mezcal'}, {'unit': 'barrel'}):
            with self.subTest(changes=changes):
                with self.assertRaises(ValidationFailed):
                    await product_service.edit_product(self.store, BARTENDER, self.product.id, changes)

        stored = await self.store.get_product(self.product.id)
        self.assertEqual(stored.category, ProductCategory.WHISKY)
        self.assertEqual(stored.version, 1)
        self.assertEqual(len(await self._history()), 1)

    async def test_edit_accepts_legacy_category_and_unit_names(self) -> None:
        edited = await product_service.edit_product(
            self.store, BARTENDER, self.product.id, {'category': 'ron', 'unit': 'caja'}
        )
        self.assertEqual(edited.category, ProductCategory.RUM)
        self.assertEqual(edited.unit, UnitOfMeasure.BOX)

    async def test_create_rejects_unknown_category(self) -> None:
        with self.assertRaises(ValidationFailed):
            await product_service.create_product(self.store, MANAGER, {'name': 'Fernet', 'category': 'amaro'})

    async def test_toggle_important_records_direction(self) -> None:
        marked = await product_service.toggle_important(self.store, BARTENDER, self.product.id)
        self.assertTrue(marked.important)
        unmarked = await product_service.toggle_important(self.store, BARTENDER, self.product.id)
        self.assertFalse(unmarked.important)
        details = [entry.details for entry in await self._history()][:2]
        self.assertEqual(details, ['Product unmarked as important', 'Product marked as important'])

    async def test_bartender_cannot_delete(self) -> None:
        with self.assertRaises(PermissionDenied):
            await product_service.delete_product(self.store, BARTENDER, self.product.id, confirmed=True)
        self.assertIsNotNone(await self.store.get_product(self.product.id))

    async def test_delete_requires_confirmation(self) -> None:
        with self.assertRaises(ValidationFailed):
            await product_service.delete_product(self.store, MANAGER, self.product.id, confirmed=False)
        self.assertIsNotNone(await self.store.get_product(self.product.id))

    async def test_delete_removes_product_and_logs_it(self) -> None:
        deleted = await product_service.delete_product(self.store, ADMIN, self.product.id, confirmed=True)
        self.assertEqual(deleted.name, 'Old No. 7')
        self.assertIsNone(await self.store.get_product(self.product.id))
        latest = (await self._history())[0]
        self.assertEqual(latest.action, HistoryAction.DELETE)
        self.assertEqual(latest.details, 'Product deleted from inventory')

        with self.assertRaises(NotFound):
            await product_service.delete_product(self.store, ADMIN, self.product.id, confirmed=True)


if __name__ == '__main__':
    unittest.main()
