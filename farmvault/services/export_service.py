from __future__ import annotations

import csv
import re
from decimal import Decimal
from io import StringIO
from typing import Iterable

from farmvault.models import Expense, HarvestPicker, InventoryItem, WorkLog
from farmvault.services.inventory_service import is_low_stock

_UNSAFE_FILENAME_CHARS = re.compile(r'[^a-z0-9_\-]+', re.IGNORECASE)
_REPEATED_UNDERSCORES = re.compile(r'_{2,}')

INVENTORY_HEADERS = ['Name', 'Category', 'Quantity', 'Unit', 'Price Per Unit', 'Supplier', 'Low Stock', 'Last Updated']
PICKER_HEADERS = ['Picker #', 'Name', 'Trips', 'Total Kg', 'Total Pay', 'Paid', 'Paid At']
WORK_LOG_HEADERS = [
    'Date',
    'Stage',
    'Work Category',
    'Work Type',
    'People',
    'Rate Per Person',
    'Total',
    'Employee',
    'Notes',
    'Paid',
]
EXPENSE_HEADERS = ['Date', 'Category', 'Description', 'Amount', 'Stage', 'Paid', 'Paid By']


def safe_csv_filename(name: str | None) -> str:
    base = _UNSAFE_FILENAME_CHARS.sub('_', name or 'export')
    base = _REPEATED_UNDERSCORES.sub('_', base)
    return base.lower() + '.csv'


def _cell(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, Decimal):
        return format(value, 'f')
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'value'):
        return str(value.value)
    return str(value)


def rows_to_csv(headers: list[str], rows: Iterable[list]) -> str:
    sio = StringIO()
    writer = csv.writer(sio)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return sio.getvalue()


def inventory_rows(items: Iterable[InventoryItem]) -> list[list]:
    return [
        [
            item.name,
            item.category,
            item.quantity,
            item.unit,
            item.price_per_unit,
            item.supplier_name,
            is_low_stock(item),
            item.last_updated,
        ]
        for item in items
    ]


def picker_rows(pickers: Iterable[HarvestPicker], trips_by_picker: dict[int, int] | None = None) -> list[list]:
    trips_by_picker = trips_by_picker or {}
    return [
        [
            picker.picker_number,
            picker.picker_name,
            trips_by_picker.get(picker.id, 0),
            picker.total_kg,
            picker.total_pay,
            picker.is_paid,
            picker.paid_at,
        ]
        for picker in pickers
    ]


def work_log_rows(work_logs: Iterable[WorkLog]) -> list[list]:
    return [
        [
            log.log_date,
            log.stage_name,
            log.work_category,
            log.work_type,
            log.number_of_people,
            log.rate_per_person,
            log.total_price,
            log.employee_name,
            log.notes,
            log.paid,
        ]
        for log in work_logs
    ]


def expense_rows(expenses: Iterable[Expense]) -> list[list]:
    return [
        [
            expense.expense_date,
            expense.category,
            expense.description,
            expense.amount,
            expense.stage_name,
            expense.paid,
            expense.paid_by_name,
        ]
        for expense in expenses
    ]
