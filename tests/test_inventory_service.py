from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from db_support import add_company, add_project, make_session
from farmvault.models import (
    Expense,
    ExpenseCategory,
    InventoryCategory,
    InventoryPurchase,
    InventoryUsage,
    NeededItemStatus,
    PackagingType,
    UsageSource,
)
from farmvault.services.inventory_service import (
    add_needed_item,
    create_item,
    deduct_item,
    format_quantity,
    get_item,
    is_low_stock,
    list_items,
    list_needed_items,
    restock_item,
    set_needed_item_status,
)


class InventoryServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.company = add_company(self.db)
        self.project = add_project(self.db, self.company)

    def tearDown(self) -> None:
        self.db.close()

    def _item(self, name='CAN', category=InventoryCategory.FERTILIZER, quantity='10', unit='bags', **kwargs):
        return create_item(
            self.db,
            company_id=self.company.id,
            name=name,
            category=category,
            quantity=Decimal(quantity),
            unit=unit,
            **kwargs,
        )

    def test_format_quantity_drops_trailing_zeros(self) -> None:
        self.assertEqual(format_quantity(Decimal('12.500')), '12.5')
        self.assertEqual(format_quantity(Decimal('100.000')), '100')
        self.assertEqual(format_quantity(3), '3')

    def test_create_item_validates_input(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Item name is required'):
            self._item(name='  ')
        with self.assertRaisesRegex(ValueError, 'Quantity cannot be negative'):
            self._item(quantity='-1')
        with self.assertRaisesRegex(ValueError, 'Units per box is required'):
            self._item(name='Mancozeb', category=InventoryCategory.CHEMICAL, packaging_type=PackagingType.BOX)
        with self.assertRaisesRegex(ValueError, 'Fuel type must be diesel or petrol'):
            self._item(name='Fuel', category=InventoryCategory.FUEL, fuel_type='kerosene')

    def test_create_item_can_count_as_expense(self) -> None:
        item = self._item(
            price_per_unit=Decimal('3500'),
            count_as_expense=True,
            project_id=self.project.id,
            pickup_date=date(2024, 3, 2),
        )
        self.assertEqual(item.quantity, Decimal('10'))
        expense = self.db.execute(select(Expense)).scalar_one()
        self.assertEqual(expense.category, ExpenseCategory.FERTILIZER)
        self.assertEqual(expense.amount, Decimal('35000.00'))
        self.assertEqual(expense.expense_date, date(2024, 3, 2))
        self.assertEqual(expense.description, 'Inventory purchase - CAN')

    def test_restock_adds_stock_and_records_purchase_with_expense(self) -> None:
        item = self._item(name='Diesel', category=InventoryCategory.DIESEL, quantity='20', unit='litres')

        purchase = restock_item(
            self.db,
            company_id=self.company.id,
            item_id=item.id,
            quantity_added=Decimal('40'),
            total_cost=Decimal('7000'),
            purchase_date=date(2024, 4, 1),
            project_id=self.project.id,
        )

        self.assertEqual(item.quantity, Decimal('60'))
        self.assertEqual(purchase.price_per_unit, Decimal('175'))
        expense = self.db.execute(select(Expense).where(Expense.id == purchase.expense_id)).scalar_one()
        self.assertEqual(expense.category, ExpenseCategory.FUEL)
        self.assertEqual(expense.amount, Decimal('7000.00'))
        self.assertEqual(expense.description, 'Restock - Diesel (40 litres)')
        self.assertEqual(len(self.db.execute(select(InventoryPurchase)).scalars().all()), 1)

        with self.assertRaisesRegex(ValueError, 'Total cost must be greater than zero'):
            restock_item(
                self.db,
                company_id=self.company.id,
                item_id=item.id,
                quantity_added=Decimal('1'),
                total_cost=Decimal('0'),
                purchase_date=date(2024, 4, 1),
            )

    def test_deduct_never_takes_stock_below_zero(self) -> None:
        item = self._item(quantity='5')
        with self.assertRaisesRegex(ValueError, 'Cannot deduct 6 bags: only 5 bags in stock'):
            deduct_item(
                self.db, company_id=self.company.id, item_id=item.id, quantity=Decimal('6'), usage_date=date(2024, 4, 1)
            )
        self.assertEqual(item.quantity, Decimal('5'))

        deduct_item(
            self.db,
            company_id=self.company.id,
            item_id=item.id,
            quantity=Decimal('5'),
            usage_date=date(2024, 4, 1),
            reason='Top dressing',
        )
        self.assertEqual(item.quantity, Decimal('0'))
        usage = self.db.execute(select(InventoryUsage)).scalar_one()
        self.assertEqual(usage.source, UsageSource.MANUAL_ADJUSTMENT)

    def test_items_are_scoped_to_their_company(self) -> None:
        item = self._item()
        other = add_company(self.db, name='Other Farm')
        with self.assertRaises(PermissionError):
            get_item(self.db, company_id=other.id, item_id=item.id)
        with self.assertRaisesRegex(ValueError, 'Inventory item not found'):
            get_item(self.db, company_id=self.company.id, item_id=item.id + 100)
        self.assertEqual(list_items(self.db, company_id=other.id), [])

    def test_list_items_filters_by_category_and_search(self) -> None:
        self._item(name='CAN', supplier_name='Agrovet One')
        self._item(name='Mancozeb', category=InventoryCategory.CHEMICAL, unit='kg')
        names = [item.name for item in list_items(self.db, company_id=self.company.id, category=InventoryCategory.CHEMICAL)]
        self.assertEqual(names, ['Mancozeb'])
        names = [item.name for item in list_items(self.db, company_id=self.company.id, search='agrovet')]
        self.assertEqual(names, ['CAN'])

    def test_low_stock_uses_min_threshold(self) -> None:
        item = self._item(quantity='2', min_threshold=Decimal('2'))
        self.assertTrue(is_low_stock(item))
        item.quantity = Decimal('2.5')
        self.assertFalse(is_low_stock(item))
        self.assertFalse(is_low_stock(self._item(name='Seeds', category=InventoryCategory.SEEDS)))

    def test_needed_item_status_only_moves_forward(self) -> None:
        needed = add_needed_item(
            self.db,
            company_id=self.company.id,
            item_name='Copper spray',
            category=InventoryCategory.CHEMICAL,
            quantity=Decimal('2'),
            unit='',
            project_id=self.project.id,
        )
        self.assertEqual(needed.status, NeededItemStatus.PENDING)
        self.assertEqual(needed.unit, 'units')

        set_needed_item_status(
            self.db, company_id=self.company.id, needed_item_id=needed.id, status=NeededItemStatus.RECEIVED
        )
        self.assertEqual(needed.status, NeededItemStatus.RECEIVED)
        self.assertIsNotNone(needed.updated_at)
        with self.assertRaisesRegex(ValueError, 'Cannot move needed item from received back to ordered'):
            set_needed_item_status(
                self.db, company_id=self.company.id, needed_item_id=needed.id, status=NeededItemStatus.ORDERED
            )

        pending = list_needed_items(self.db, company_id=self.company.id, status=NeededItemStatus.PENDING)
        self.assertEqual(pending, [])


if __name__ == '__main__':
    unittest.main()
