from __future__ import annotations

import string
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

LEGACY_BATCH_KEY = '__legacy__'


@dataclass(frozen=True)
class PaymentGroup:
    label: str
    pickers: list
    is_individual: bool

    @property
    def total_pay(self) -> Decimal:
        return sum((Decimal(picker.total_pay or 0) for picker in self.pickers), Decimal('0'))


@dataclass(frozen=True)
class PaymentGroups:
    unpaid: list = field(default_factory=list)
    groups: list[PaymentGroup] = field(default_factory=list)
    individuals: list[PaymentGroup] = field(default_factory=list)


@dataclass(frozen=True)
class CollectionTotals:
    total_kg: Decimal
    total_pay: Decimal
    picker_count: int
    paid_count: int
    unpaid_pay: Decimal


def compute_picker_pay(total_kg: Decimal, price_per_kg: Decimal) -> Decimal:
    """Picker pay is kg times the picker rate, rounded to whole currency units."""
    return (Decimal(total_kg) * Decimal(price_per_kg)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)


def collection_totals(pickers: Iterable) -> CollectionTotals:
    rows = list(pickers)
    total_kg = sum((Decimal(p.total_kg or 0) for p in rows), Decimal('0'))
    total_pay = sum((Decimal(p.total_pay or 0) for p in rows), Decimal('0'))
    unpaid_pay = sum((Decimal(p.total_pay or 0) for p in rows if not p.is_paid), Decimal('0'))
    return CollectionTotals(
        total_kg=total_kg,
        total_pay=total_pay,
        picker_count=len(rows),
        paid_count=sum(1 for p in rows if p.is_paid),
        unpaid_pay=unpaid_pay,
    )


def trip_counts(entries: Iterable) -> dict[int, int]:
    return dict(Counter(entry.picker_id for entry in entries))


def next_trip_numbers(entries: Iterable) -> dict[int, int]:
    latest: dict[int, int] = {}
    for entry in entries:
        latest[entry.picker_id] = max(latest.get(entry.picker_id, 0), int(entry.trip_number or 0))
    return {picker_id: trip + 1 for picker_id, trip in latest.items()}


def next_trip_number(entries: Iterable, picker_id: int) -> int:
    return next_trip_numbers(entries).get(picker_id, 1)


def next_picker_number(pickers: Iterable) -> int:
    numbers = [int(p.picker_number) for p in pickers if p.picker_number]
    return max(numbers, default=0) + 1


def sort_by_picker_number(pickers: Iterable) -> list:
    return sorted(pickers, key=lambda p: p.picker_number or 0)


def search_pickers(pickers: Iterable, query: str | None) -> list:
    needle = (query or '').strip().lower()
    ordered = sort_by_picker_number(pickers)
    if not needle:
        return ordered
    return [
        p
        for p in ordered
        if needle in str(p.picker_number or '').lower() or needle in (p.picker_name or '').lower()
    ]


def unpaid_first(pickers: Iterable) -> list:
    # sorted() is stable so picker-number order is kept within each half.
    return sorted(pickers, key=lambda p: bool(p.is_paid))


def _paid_at_sort_key(picker) -> float:
    paid_at = picker.paid_at
    if paid_at is None:
        return 0.0
    if isinstance(paid_at, datetime):
        if paid_at.tzinfo is None:
            paid_at = paid_at.replace(tzinfo=timezone.utc)
        return paid_at.timestamp()
    return float(paid_at)


def _group_letter(index: int) -> str:
    letters = string.ascii_uppercase
    return letters[index] if index < len(letters) else str(index + 1)


def build_payment_groups(pickers: Iterable, query: str | None = None) -> PaymentGroups:
    """Split a collection's pickers into the unpaid list and lettered paid groups.

    Paid pickers are bucketed by payment batch and the buckets ordered by
    their earliest payment. Each bucket takes the next letter. Pickers paid
    before batches existed share one bucket labelled as an earlier payment.
    """
    ordered = unpaid_first(search_pickers(pickers, query))
    unpaid = [p for p in ordered if not p.is_paid]
    paid = [p for p in ordered if p.is_paid]
    if not paid:
        return PaymentGroups(unpaid=unpaid)

    by_batch: dict[object, list] = {}
    for picker in paid:
        by_batch.setdefault(picker.payment_batch_id or LEGACY_BATCH_KEY, []).append(picker)

    batches = sorted(
        by_batch.items(),
        key=lambda item: min(_paid_at_sort_key(p) for p in item[1]),
    )

    groups: list[PaymentGroup] = []
    individuals: list[PaymentGroup] = []
    for index, (batch_key, members) in enumerate(batches):
        is_individual = len(members) == 1
        letter = _group_letter(index)
        if batch_key == LEGACY_BATCH_KEY:
            label = 'Individual (earlier)' if is_individual else 'Paid (earlier)'
        else:
            label = f'Individual {letter}' if is_individual else f'Group {letter}'
        group = PaymentGroup(label=label, pickers=members, is_individual=is_individual)
        (individuals if is_individual else groups).append(group)

    return PaymentGroups(unpaid=unpaid, groups=groups, individuals=individuals)
