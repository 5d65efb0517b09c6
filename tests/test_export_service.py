from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from farmvault.models import InventoryCategory
from farmvault.services.export_service import (
    PICKER_HEADERS,
    picker_rows,
    rows_to_csv,
    safe_csv_filename,
)


class ExportServiceTests(unittest.TestCase):
    def test_safe_csv_filename(self) -> None:
        self.assertEqual(safe_csv_filename('First picking: 1/5'), 'first_picking_1_5.csv')
        self.assertEqual(safe_csv_filename('work-logs'), 'work-logs.csv')
        self.assertEqual(safe_csv_filename(None), 'export.csv')

    def test_rows_to_csv_formats_cells(self) -> None:
        content = rows_to_csv(
            ['Name', 'Category', 'Quantity', 'Low', 'Date', 'Supplier'],
            [['Mancozeb', InventoryCategory.CHEMICAL, Decimal('2.500'), True, date(2024, 3, 1), None]],
        )
        lines = content.splitlines()
        self.assertEqual(lines[0], 'Name,Category,Quantity,Low,Date,Supplier')
        self.assertEqual(lines[1], 'Mancozeb,CHEMICAL,2.500,Yes,2024-03-01,')

    def test_picker_rows_include_trip_counts(self) -> None:
        picker = SimpleNamespace(
            id=3,
            picker_number=12,
            picker_name='Akinyi',
            total_kg=Decimal('12.5'),
            total_pay=Decimal('250'),
            is_paid=False,
            paid_at=None,
        )
        rows = picker_rows([picker], {3: 2})
        self.assertEqual(len(rows[0]), len(PICKER_HEADERS))
        self.assertEqual(rows[0][:3], [12, 'Akinyi', 2])
        self.assertEqual(picker_rows([picker])[0][2], 0)


if __name__ == '__main__':
    unittest.main()
