from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

from farmvault.services.harvest_summary_service import (
    build_payment_groups,
    collection_totals,
    compute_picker_pay,
    next_picker_number,
    next_trip_number,
    search_pickers,
    trip_counts,
)

BASE_TIME = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def picker(number, name, *, pay='100', kg='5', batch=None, paid_minutes=None):
    return SimpleNamespace(
        id=number,
        picker_number=number,
        picker_name=name,
        total_kg=Decimal(kg),
        total_pay=Decimal(pay),
        is_paid=paid_minutes is not None,
        paid_at=BASE_TIME + timedelta(minutes=paid_minutes) if paid_minutes is not None else None,
        payment_batch_id=batch,
    )


class HarvestSummaryServiceTests(unittest.TestCase):
    def test_picker_pay_rounds_half_up_to_whole_units(self) -> None:
        self.assertEqual(compute_picker_pay(Decimal('10.5'), Decimal('20')), Decimal('210'))
        self.assertEqual(compute_picker_pay(Decimal('3.35'), Decimal('15')), Decimal('50'))
        self.assertEqual(compute_picker_pay(Decimal('3.3'), Decimal('15')), Decimal('50'))
        self.assertEqual(compute_picker_pay(Decimal('0.1'), Decimal('4')), Decimal('0'))

    def test_collection_totals(self) -> None:
        pickers = [
            picker(1, 'Akinyi', pay='250', kg='12.5', batch=7, paid_minutes=0),
            picker(2, 'Wanjiru', pay='196', kg='9.8'),
        ]
        totals = collection_totals(pickers)
        self.assertEqual(totals.total_kg, Decimal('22.3'))
        self.assertEqual(totals.total_pay, Decimal('446'))
        self.assertEqual(totals.picker_count, 2)
        self.assertEqual(totals.paid_count, 1)
        self.assertEqual(totals.unpaid_pay, Decimal('196'))

    def test_trip_and_picker_numbers(self) -> None:
        entries = [
            SimpleNamespace(picker_id=1, trip_number=1),
            SimpleNamespace(picker_id=1, trip_number=2),
            SimpleNamespace(picker_id=2, trip_number=1),
        ]
        self.assertEqual(trip_counts(entries), {1: 2, 2: 1})
        self.assertEqual(next_trip_number(entries, 1), 3)
        self.assertEqual(next_trip_number(entries, 9), 1)
        self.assertEqual(next_picker_number([picker(3, 'a'), picker(8, 'b')]), 9)
        self.assertEqual(next_picker_number([]), 1)

    def test_search_matches_number_or_name(self) -> None:
        pickers = [picker(12, 'Otieno'), picker(3, 'Akinyi'), picker(21, 'Wanjiru')]
        self.assertEqual([p.picker_number for p in search_pickers(pickers, '')], [3, 12, 21])
        self.assertEqual([p.picker_number for p in search_pickers(pickers, '2')], [12, 21])
        self.assertEqual([p.picker_name for p in search_pickers(pickers, 'aki')], ['Akinyi'])

    def test_payment_groups_are_lettered_by_first_payment(self) -> None:
        pickers = [
            picker(1, 'A', batch=20, paid_minutes=30),
            picker(2, 'B', batch=20, paid_minutes=30),
            picker(3, 'C', batch=10, paid_minutes=5),
            picker(4, 'D', batch=30, paid_minutes=60),
            picker(5, 'E'),
        ]
        groups = build_payment_groups(pickers)
        self.assertEqual([p.picker_number for p in groups.unpaid], [5])
        self.assertEqual([g.label for g in groups.individuals], ['Individual A', 'Individual C'])
        self.assertEqual([g.label for g in groups.groups], ['Group B'])
        self.assertEqual(groups.groups[0].total_pay, Decimal('200'))

    def test_pickers_paid_without_batch_get_earlier_label(self) -> None:
        pickers = [
            picker(1, 'A', paid_minutes=0),
            picker(2, 'B', paid_minutes=1),
            picker(3, 'C', batch=5, paid_minutes=10),
        ]
        groups = build_payment_groups(pickers)
        self.assertEqual([g.label for g in groups.groups], ['Paid (earlier)'])
        self.assertEqual([g.label for g in groups.individuals], ['Individual B'])

    def test_no_paid_pickers_gives_only_unpaid(self) -> None:
        groups = build_payment_groups([picker(1, 'A'), picker(2, 'B')])
        self.assertEqual(len(groups.unpaid), 2)
        self.assertEqual(groups.groups, [])
        self.assertEqual(groups.individuals, [])


if __name__ == '__main__':
    unittest.main()
