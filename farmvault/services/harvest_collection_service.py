from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from farmvault.config import settings
from farmvault.models import (
    CollectionCashUsage,
    Harvest,
    HarvestCashPool,
    HarvestCollection,
    HarvestCollectionStatus,
    HarvestPaymentBatch,
    HarvestPicker,
    HarvestWallet,
    PickerWeighEntry,
    Project,
    Sale,
    SaleStatus,
)
from farmvault.services.harvest_summary_service import (
    build_payment_groups,
    collection_totals,
    compute_picker_pay,
    next_picker_number as _next_picker_number,
    next_trip_numbers,
    trip_counts,
)

logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal('0.01')
ZERO = Decimal('0')

CARRY_FORWARD_SOURCE = 'carry-forward'
COLLECTIONS_BUYER_NAME = 'Buyer (collections)'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def _is_wallet_crop(crop_type: str | None) -> bool:
    return settings.uses_wallet(crop_type)


def get_collection(db: Session, *, company_id: int, collection_id: int, for_update: bool = False) -> HarvestCollection:
    stmt = select(HarvestCollection).where(
        HarvestCollection.id == collection_id,
        HarvestCollection.company_id == company_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    collection = db.execute(stmt).scalar_one_or_none()
    if not collection:
        raise ValueError('Harvest collection not found')
    return collection


def list_collections(db: Session, *, company_id: int, project_id: int | None = None) -> list[HarvestCollection]:
    stmt = select(HarvestCollection).where(HarvestCollection.company_id == company_id)
    if project_id is not None:
        stmt = stmt.where(HarvestCollection.project_id == project_id)
    return db.execute(
        stmt.order_by(HarvestCollection.harvest_date.desc(), HarvestCollection.id.desc())
    ).scalars().all()


def list_pickers(db: Session, *, collection_id: int) -> list[HarvestPicker]:
    return db.execute(
        select(HarvestPicker)
        .where(HarvestPicker.collection_id == collection_id)
        .order_by(HarvestPicker.picker_number.asc())
    ).scalars().all()


def list_weigh_entries(db: Session, *, collection_id: int) -> list[PickerWeighEntry]:
    return db.execute(
        select(PickerWeighEntry)
        .where(PickerWeighEntry.collection_id == collection_id)
        .order_by(PickerWeighEntry.recorded_at.asc(), PickerWeighEntry.id.asc())
    ).scalars().all()


def get_cash_pool(db: Session, *, collection_id: int) -> HarvestCashPool | None:
    return db.execute(
        select(HarvestCashPool).where(HarvestCashPool.collection_id == collection_id)
    ).scalar_one_or_none()


def _main_wallet_collection(db: Session, *, company_id: int, project_id: int, exclude_id: int | None) -> HarvestCollection | None:
    # The project's first wallet-crop collection holds the running cash pool.
    candidates = db.execute(
        select(HarvestCollection)
        .where(HarvestCollection.company_id == company_id, HarvestCollection.project_id == project_id)
        .order_by(HarvestCollection.created_at.asc(), HarvestCollection.id.asc())
    ).scalars().all()
    for candidate in candidates:
        if candidate.id != exclude_id and _is_wallet_crop(candidate.crop_type):
            return candidate
    return None


def create_collection(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    name: str,
    harvest_date: date,
    price_per_kg_picker: Decimal,
    created_by_principal_id: int | None = None,
    received_by: str = 'system',
) -> HarvestCollection:
    clean_name = name.strip()
    if not clean_name:
        raise ValueError('Collection name is required')
    if price_per_kg_picker is None or price_per_kg_picker <= 0:
        raise ValueError('Price per kg must be greater than zero')

    project = db.execute(
        select(Project).where(Project.id == project_id, Project.company_id == company_id)
    ).scalar_one_or_none()
    if not project:
        raise ValueError('Project not found')

    collection = HarvestCollection(
        company_id=company_id,
        project_id=project.id,
        crop_type=project.crop_type,
        name=clean_name,
        harvest_date=harvest_date,
        price_per_kg_picker=_money(price_per_kg_picker),
        total_harvest_kg=ZERO,
        total_picker_cost=ZERO,
        status=HarvestCollectionStatus.COLLECTING,
        created_by_principal_id=created_by_principal_id,
    )
    db.add(collection)
    db.flush()

    if _is_wallet_crop(project.crop_type):
        main = _main_wallet_collection(db, company_id=company_id, project_id=project.id, exclude_id=collection.id)
        main_pool = get_cash_pool(db, collection_id=main.id) if main else None
        carried = Decimal(main_pool.remaining_balance or 0) if main_pool else ZERO
        if carried > 0:
            db.add(
                HarvestCashPool(
                    company_id=company_id,
                    project_id=project.id,
                    collection_id=collection.id,
                    crop_type=project.crop_type,
                    cash_received=_money(carried),
                    total_paid_out=ZERO,
                    remaining_balance=_money(carried),
                    source=CARRY_FORWARD_SOURCE,
                    received_by=received_by,
                    received_at=_now(),
                )
            )
            logger.info('Carried %s forward from collection %s into %s', carried, main.id, collection.id)
        db.flush()

    return collection


def add_picker(
    db: Session,
    *,
    company_id: int,
    collection_id: int,
    picker_number: int,
    picker_name: str,
) -> HarvestPicker:
    clean_name = picker_name.strip()
    if not clean_name:
        raise ValueError('Picker name is required')
    if picker_number is None or picker_number <= 0:
        raise ValueError('Picker number must be greater than zero')

    collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    if collection.status == HarvestCollectionStatus.CLOSED:
        raise PermissionError('Collection is closed')

    taken = db.execute(
        select(HarvestPicker.id).where(
            HarvestPicker.collection_id == collection.id,
            HarvestPicker.picker_number == picker_number,
        )
    ).scalar_one_or_none()
    if taken:
        raise ValueError(f'Picker number {picker_number} is already used in this collection')

    picker = HarvestPicker(
        company_id=company_id,
        collection_id=collection.id,
        picker_number=picker_number,
        picker_name=clean_name,
        total_kg=ZERO,
        total_pay=ZERO,
        is_paid=False,
    )
    db.add(picker)
    db.flush()
    refresh_collection_status(db, company_id=company_id, collection_id=collection.id)
    return picker


def next_picker_number(db: Session, *, collection_id: int) -> int:
    return _next_picker_number(list_pickers(db, collection_id=collection_id))


def next_trip_number(db: Session, *, collection_id: int, picker_id: int) -> int:
    current = db.execute(
        select(func.max(PickerWeighEntry.trip_number)).where(
            PickerWeighEntry.collection_id == collection_id,
            PickerWeighEntry.picker_id == picker_id,
        )
    ).scalar_one_or_none()
    return int(current or 0) + 1


def _get_picker(db: Session, *, company_id: int, picker_id: int) -> HarvestPicker:
    picker = db.execute(
        select(HarvestPicker).where(HarvestPicker.id == picker_id, HarvestPicker.company_id == company_id)
    ).scalar_one_or_none()
    if not picker:
        raise ValueError('Picker not found')
    return picker


def recalc_collection_totals(db: Session, *, collection: HarvestCollection) -> HarvestCollection:
    totals = collection_totals(list_pickers(db, collection_id=collection.id))
    collection.total_harvest_kg = totals.total_kg
    collection.total_picker_cost = _money(totals.total_pay)
    db.flush()
    return collection


def _recalc_picker(db: Session, *, picker: HarvestPicker, price_per_kg: Decimal) -> HarvestPicker:
    weights = db.execute(
        select(PickerWeighEntry.weight_kg).where(PickerWeighEntry.picker_id == picker.id)
    ).scalars().all()
    total_kg = sum((Decimal(weight) for weight in weights), ZERO)
    picker.total_kg = total_kg
    picker.total_pay = compute_picker_pay(total_kg, price_per_kg)
    db.flush()
    return picker


def add_weigh_entry(
    db: Session,
    *,
    company_id: int,
    picker_id: int,
    weight_kg: Decimal,
    trip_number: int | None = None,
    recorded_by_principal_id: int | None = None,
) -> PickerWeighEntry:
    if weight_kg is None or weight_kg <= 0:
        raise ValueError('Weight must be greater than zero')

    picker = _get_picker(db, company_id=company_id, picker_id=picker_id)
    collection = get_collection(db, company_id=company_id, collection_id=picker.collection_id)
    if collection.status == HarvestCollectionStatus.CLOSED:
        raise PermissionError('Collection is closed')
    if picker.is_paid:
        raise ValueError('Picker is already paid')

    if trip_number is None:
        trip_number = next_trip_number(db, collection_id=collection.id, picker_id=picker.id)
    if trip_number < 1:
        raise ValueError('Trip number must be at least 1')

    entry = PickerWeighEntry(
        company_id=company_id,
        picker_id=picker.id,
        collection_id=collection.id,
        weight_kg=Decimal(str(weight_kg)),
        trip_number=trip_number,
        recorded_by_principal_id=recorded_by_principal_id,
        recorded_at=_now(),
    )
    db.add(entry)
    db.flush()

    _recalc_picker(db, picker=picker, price_per_kg=collection.price_per_kg_picker)
    recalc_collection_totals(db, collection=collection)
    return entry


def refresh_collection_status(db: Session, *, company_id: int, collection_id: int) -> HarvestCollectionStatus:
    collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    if collection.status in {HarvestCollectionStatus.SOLD, HarvestCollectionStatus.CLOSED}:
        return collection.status
    pickers = list_pickers(db, collection_id=collection.id)
    all_paid = bool(pickers) and all(p.is_paid for p in pickers)
    collection.status = HarvestCollectionStatus.PAYOUT_COMPLETE if all_paid else HarvestCollectionStatus.COLLECTING
    db.flush()
    return collection.status


def _stamp_batch(
    db: Session,
    *,
    collection: HarvestCollection,
    pickers: list[HarvestPicker],
    paid_by_principal_id: int | None,
) -> HarvestPaymentBatch:
    paid_at = _now()
    batch = HarvestPaymentBatch(
        company_id=collection.company_id,
        collection_id=collection.id,
        picker_ids=[p.id for p in pickers],
        total_amount=_money(sum((Decimal(p.total_pay or 0) for p in pickers), ZERO)),
        paid_by_principal_id=paid_by_principal_id,
        paid_at=paid_at,
    )
    db.add(batch)
    db.flush()
    for picker in pickers:
        picker.is_paid = True
        picker.paid_at = paid_at
        picker.payment_batch_id = batch.id
    db.flush()
    return batch


def mark_pickers_paid_in_batch(
    db: Session,
    *,
    company_id: int,
    collection_id: int,
    picker_ids: list[int],
    paid_by_principal_id: int | None = None,
) -> HarvestPaymentBatch:
    if not picker_ids:
        raise ValueError('No pickers to mark paid')

    collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    pickers = db.execute(
        select(HarvestPicker)
        .where(HarvestPicker.collection_id == collection.id, HarvestPicker.id.in_(picker_ids))
        .order_by(HarvestPicker.picker_number.asc())
    ).scalars().all()
    to_pay = [p for p in pickers if not p.is_paid]
    if not to_pay:
        raise ValueError('All selected pickers are already paid')

    # Wallet crops only settle money through the wallet.
    if _is_wallet_crop(collection.crop_type) and any(Decimal(p.total_pay or 0) > 0 for p in to_pay):
        return pay_pickers_from_wallet(
            db,
            company_id=company_id,
            collection_id=collection.id,
            picker_ids=[p.id for p in to_pay],
            paid_by_principal_id=paid_by_principal_id,
        )

    batch = _stamp_batch(db, collection=collection, pickers=to_pay, paid_by_principal_id=paid_by_principal_id)
    refresh_collection_status(db, company_id=company_id, collection_id=collection.id)
    logger.info('Marked %s pickers paid in batch %s', len(to_pay), batch.id)
    return batch


def mark_picker_paid(
    db: Session,
    *,
    company_id: int,
    picker_id: int,
    paid_by_principal_id: int | None = None,
) -> HarvestPicker:
    picker = _get_picker(db, company_id=company_id, picker_id=picker_id)
    if picker.is_paid:
        raise ValueError('Picker is already paid')

    mark_pickers_paid_in_batch(
        db,
        company_id=company_id,
        collection_id=picker.collection_id,
        picker_ids=[picker.id],
        paid_by_principal_id=paid_by_principal_id,
    )
    return picker


def get_wallet(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    crop_type: str,
    for_update: bool = False,
) -> HarvestWallet | None:
    stmt = select(HarvestWallet).where(
        HarvestWallet.company_id == company_id,
        HarvestWallet.project_id == project_id,
        HarvestWallet.crop_type == crop_type,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def top_up_wallet(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    crop_type: str,
    amount: Decimal,
) -> HarvestWallet:
    if amount is None or amount <= 0:
        raise ValueError('Top up amount must be greater than 0.')

    amount = _money(amount)
    wallet = get_wallet(db, company_id=company_id, project_id=project_id, crop_type=crop_type, for_update=True)
    if not wallet:
        wallet = HarvestWallet(
            company_id=company_id,
            project_id=project_id,
            crop_type=crop_type,
            cash_received_total=amount,
            cash_paid_out_total=ZERO,
            current_balance=amount,
            last_updated_at=_now(),
        )
        db.add(wallet)
    else:
        wallet.cash_received_total = _money(Decimal(wallet.cash_received_total or 0) + amount)
        wallet.current_balance = _money(Decimal(wallet.current_balance or 0) + amount)
        wallet.last_updated_at = _now()
    db.flush()
    logger.info('Harvest wallet %s/%s/%s topped up by %s', company_id, project_id, crop_type, amount)
    return wallet


def register_harvest_cash(
    db: Session,
    *,
    company_id: int,
    collection_id: int,
    amount: Decimal,
    source: str,
    received_by: str,
) -> HarvestCashPool:
    if amount is None or amount <= 0:
        raise ValueError('Cash amount must be greater than zero')
    clean_source = (source or '').strip() or 'cash'
    amount = _money(amount)

    collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    if not _is_wallet_crop(collection.crop_type):
        raise ValueError('This crop is not paid from the harvest wallet')
    pool = get_cash_pool(db, collection_id=collection.id)
    if not pool:
        pool = HarvestCashPool(
            company_id=company_id,
            project_id=collection.project_id,
            collection_id=collection.id,
            crop_type=collection.crop_type,
            cash_received=amount,
            total_paid_out=ZERO,
            remaining_balance=amount,
            source=clean_source,
            received_by=received_by,
            received_at=_now(),
        )
        db.add(pool)
    else:
        received = _money(Decimal(pool.cash_received or 0) + amount)
        pool.cash_received = received
        pool.remaining_balance = _money(received - Decimal(pool.total_paid_out or 0))
        pool.source = clean_source
        pool.received_by = received_by
        pool.received_at = _now()
    db.flush()

    top_up_wallet(
        db,
        company_id=company_id,
        project_id=collection.project_id,
        crop_type=collection.crop_type,
        amount=amount,
    )
    return pool


def _mirror_deduction_to_cash_pool(db: Session, *, collection_id: int, amount: Decimal) -> None:
    if amount <= 0:
        return
    pool = get_cash_pool(db, collection_id=collection_id)
    if not pool:
        return
    paid_out = _money(Decimal(pool.total_paid_out or 0) + amount)
    pool.total_paid_out = paid_out
    pool.remaining_balance = max(ZERO, _money(Decimal(pool.cash_received or 0) - paid_out))
    db.flush()


def pay_pickers_from_wallet(
    db: Session,
    *,
    company_id: int,
    collection_id: int,
    picker_ids: list[int],
    paid_by_principal_id: int | None = None,
) -> HarvestPaymentBatch:
    """Pay pickers out of the project/crop wallet inside the caller's transaction.

    Every check happens before the first write so a rejected payout leaves
    the wallet, the usage row and the pickers untouched.
    """
    if not picker_ids:
        raise ValueError('No pickers selected')

    collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    if not _is_wallet_crop(collection.crop_type):
        raise ValueError('This crop is not paid from the harvest wallet')

    wallet = get_wallet(
        db,
        company_id=company_id,
        project_id=collection.project_id,
        crop_type=collection.crop_type,
        for_update=True,
    )
    if not wallet:
        raise ValueError('No harvest wallet found for this project/crop. Add cash first.')

    pickers = db.execute(
        select(HarvestPicker)
        .where(HarvestPicker.collection_id == collection.id, HarvestPicker.id.in_(picker_ids))
        .order_by(HarvestPicker.picker_number.asc())
        .with_for_update()
    ).scalars().all()
    to_pay = [p for p in pickers if not p.is_paid and Decimal(p.total_pay or 0) > 0]
    if not to_pay:
        raise ValueError('All selected pickers are already paid or zero.')

    total = _money(sum((Decimal(p.total_pay) for p in to_pay), ZERO))
    if Decimal(wallet.current_balance or 0) < total:
        raise ValueError('Not enough cash in Harvest Wallet.')

    wallet.current_balance = _money(Decimal(wallet.current_balance) - total)
    wallet.cash_paid_out_total = _money(Decimal(wallet.cash_paid_out_total or 0) + total)
    wallet.last_updated_at = _now()

    usage = db.execute(
        select(CollectionCashUsage).where(
            CollectionCashUsage.wallet_id == wallet.id,
            CollectionCashUsage.collection_id == collection.id,
        )
    ).scalar_one_or_none()
    if not usage:
        usage = CollectionCashUsage(wallet_id=wallet.id, collection_id=collection.id, total_deducted=total, last_updated_at=_now())
        db.add(usage)
    else:
        usage.total_deducted = _money(Decimal(usage.total_deducted or 0) + total)
        usage.last_updated_at = _now()
    db.flush()

    batch = _stamp_batch(db, collection=collection, pickers=to_pay, paid_by_principal_id=paid_by_principal_id)
    _mirror_deduction_to_cash_pool(db, collection_id=collection.id, amount=total)
    refresh_collection_status(db, company_id=company_id, collection_id=collection.id)
    logger.info('Paid %s pickers (%s) from wallet %s for collection %s', len(to_pay), total, wallet.id, collection.id)
    return batch


def set_buyer_price(
    db: Session,
    *,
    company_id: int,
    collection_id: int,
    price_per_kg_buyer: Decimal,
    mark_buyer_paid: bool = False,
) -> HarvestCollection:
    if price_per_kg_buyer is None or price_per_kg_buyer <= 0:
        raise ValueError('Buyer price must be greater than zero')

    collection = get_collection(db, company_id=company_id, collection_id=collection_id, for_update=True)
    if collection.buyer_paid_at is not None or collection.status == HarvestCollectionStatus.CLOSED:
        raise PermissionError('Collection is closed')
    pickers = list_pickers(db, collection_id=collection.id)
    if mark_buyer_paid and not all(p.is_paid for p in pickers):
        raise PermissionError('Cannot close harvest: some pickers are still unpaid.')

    total_kg = Decimal(collection.total_harvest_kg or 0)
    revenue = _money(total_kg * Decimal(price_per_kg_buyer))

    collection.price_per_kg_buyer = _money(price_per_kg_buyer)
    collection.total_revenue = revenue
    collection.profit = _money(revenue - Decimal(collection.total_picker_cost or 0))
    collection.status = HarvestCollectionStatus.CLOSED if mark_buyer_paid else HarvestCollectionStatus.SOLD

    if mark_buyer_paid:
        collection.buyer_paid_at = _now()
        if _is_wallet_crop(collection.crop_type) and total_kg > 0 and revenue > 0:
            harvest = Harvest(
                company_id=collection.company_id,
                project_id=collection.project_id,
                crop_type=collection.crop_type,
                source_collection_id=collection.id,
                harvest_date=collection.harvest_date,
                quantity=total_kg,
                unit='kg',
                quality='A',
                destination='market',
                farm_total_price=revenue,
                notes=f'From picker collection: {collection.name}',
            )
            db.add(harvest)
            db.flush()
            db.add(
                Sale(
                    company_id=collection.company_id,
                    project_id=collection.project_id,
                    crop_type=collection.crop_type,
                    harvest_id=harvest.id,
                    buyer_name=COLLECTIONS_BUYER_NAME,
                    quantity=total_kg,
                    unit='kg',
                    unit_price=_money(price_per_kg_buyer),
                    total_amount=revenue,
                    sale_date=collection.harvest_date,
                    status=SaleStatus.COMPLETED,
                )
            )
            logger.info('Collection %s closed into harvest %s', collection.id, harvest.id)
    db.flush()
    return collection


def get_collection_detail(
    db: Session,
    *,
    company_id: int,
    collection_id: int,
    picker_search: str | None = None,
) -> dict:
    collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    pickers = list_pickers(db, collection_id=collection.id)
    entries = list_weigh_entries(db, collection_id=collection.id)
    uses_wallet = _is_wallet_crop(collection.crop_type)
    wallet = (
        get_wallet(db, company_id=company_id, project_id=collection.project_id, crop_type=collection.crop_type)
        if uses_wallet
        else None
    )
    return {
        'collection': collection,
        'pickers': pickers,
        'entries': entries,
        'totals': collection_totals(pickers),
        'trip_counts': trip_counts(entries),
        'next_trip_numbers': next_trip_numbers(entries),
        'next_picker_number': _next_picker_number(pickers),
        'payment_groups': build_payment_groups(pickers, picker_search),
        'uses_wallet': uses_wallet,
        'wallet': wallet,
        'cash_pool': get_cash_pool(db, collection_id=collection.id),
    }
