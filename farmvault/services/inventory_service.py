from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from farmvault.models import (
    Expense,
    ExpenseCategory,
    InventoryCategory,
    InventoryItem,
    InventoryPurchase,
    InventoryUsage,
    NeededItem,
    NeededItemStatus,
    PackagingType,
    UsageSource,
)
from farmvault.services.audit_service import log_audit

logger = logging.getLogger(__name__)

QTY_PLACES = Decimal('0.001')
MONEY_PLACES = Decimal('0.01')

EXPENSE_CATEGORY_BY_INVENTORY = {
    InventoryCategory.FERTILIZER: ExpenseCategory.FERTILIZER,
    InventoryCategory.CHEMICAL: ExpenseCategory.CHEMICAL,
    InventoryCategory.DIESEL: ExpenseCategory.FUEL,
    InventoryCategory.FUEL: ExpenseCategory.FUEL,
}

NEEDED_ITEM_FLOW = [NeededItemStatus.PENDING, NeededItemStatus.ORDERED, NeededItemStatus.RECEIVED]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _qty(value) -> Decimal:
    return Decimal(str(value)).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def format_quantity(value) -> str:
    return format(Decimal(str(value)).normalize(), 'f')


def expense_category_for(category: InventoryCategory) -> ExpenseCategory:
    return EXPENSE_CATEGORY_BY_INVENTORY.get(category, ExpenseCategory.OTHER)


def is_chemical_box(item: InventoryItem) -> bool:
    return (
        item.category == InventoryCategory.CHEMICAL
        and item.packaging_type == PackagingType.BOX
        and (item.units_per_box or 0) > 0
    )


def is_low_stock(item: InventoryItem) -> bool:
    if item.min_threshold is None:
        return False
    return Decimal(item.quantity or 0) <= Decimal(item.min_threshold)


def get_item(db: Session, *, company_id: int, item_id: int) -> InventoryItem:
    item = db.execute(select(InventoryItem).where(InventoryItem.id == item_id)).scalar_one_or_none()
    if not item:
        raise ValueError('Inventory item not found')
    if item.company_id != company_id:
        raise PermissionError('Item does not belong to company')
    return item


def list_items(
    db: Session,
    *,
    company_id: int,
    category: InventoryCategory | None = None,
    search: str | None = None,
) -> list[InventoryItem]:
    stmt = select(InventoryItem).where(InventoryItem.company_id == company_id)
    if category is not None:
        stmt = stmt.where(InventoryItem.category == category)
    items = db.execute(stmt.order_by(InventoryItem.name.asc(), InventoryItem.id.asc())).scalars().all()
    needle = (search or '').strip().lower()
    if needle:
        items = [
            item
            for item in items
            if needle in item.name.lower() or needle in (item.supplier_name or '').lower()
        ]
    return items


def create_item(
    db: Session,
    *,
    company_id: int,
    name: str,
    category: InventoryCategory,
    quantity: Decimal,
    unit: str,
    price_per_unit: Decimal | None = None,
    packaging_type: PackagingType | None = None,
    units_per_box: int | None = None,
    fuel_type: str | None = None,
    containers: int | None = None,
    litres: Decimal | None = None,
    bags: int | None = None,
    kgs: Decimal | None = None,
    box_size: str | None = None,
    crop_types: list[str] | None = None,
    supplier_name: str | None = None,
    pickup_date: date | None = None,
    min_threshold: Decimal | None = None,
    count_as_expense: bool = False,
    project_id: int | None = None,
    actor_principal_id: int | None = None,
) -> InventoryItem:
    clean_name = name.strip()
    if not clean_name:
        raise ValueError('Item name is required')
    if not unit.strip():
        raise ValueError('Unit is required')
    if quantity < 0:
        raise ValueError('Quantity cannot be negative')
    if price_per_unit is not None and price_per_unit < 0:
        raise ValueError('Price per unit cannot be negative')
    if category == InventoryCategory.CHEMICAL and packaging_type == PackagingType.BOX and not (units_per_box or 0) > 0:
        raise ValueError('Units per box is required for boxed chemicals')
    if fuel_type is not None and fuel_type not in {'diesel', 'petrol'}:
        raise ValueError('Fuel type must be diesel or petrol')
    if box_size is not None and box_size not in {'big', 'small'}:
        raise ValueError('Box size must be big or small')

    item = InventoryItem(
        company_id=company_id,
        name=clean_name,
        category=category,
        quantity=_qty(quantity),
        unit=unit.strip(),
        price_per_unit=_money(price_per_unit) if price_per_unit is not None else None,
        packaging_type=packaging_type,
        units_per_box=units_per_box if packaging_type == PackagingType.BOX else None,
        fuel_type=fuel_type,
        containers=containers,
        litres=litres,
        bags=bags,
        kgs=kgs,
        box_size=box_size,
        crop_types=list(crop_types or []),
        supplier_name=(supplier_name or '').strip() or None,
        pickup_date=pickup_date,
        min_threshold=min_threshold,
        last_updated=_now(),
    )
    db.add(item)
    db.flush()

    if count_as_expense and price_per_unit is not None:
        amount = _money(Decimal(quantity) * Decimal(price_per_unit))
        if amount > 0:
            db.add(
                Expense(
                    company_id=company_id,
                    project_id=project_id,
                    category=expense_category_for(category),
                    description=f'Inventory purchase - {clean_name}',
                    amount=amount,
                    expense_date=pickup_date or _now().date(),
                    paid=False,
                )
            )

    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action='ADD_ITEM',
        company_id=company_id,
        target_type='inventory_item',
        target_id=item.id,
        metadata={'name': clean_name, 'category': category.value, 'quantity': format_quantity(item.quantity)},
    )
    db.flush()
    return item


def restock_item(
    db: Session,
    *,
    company_id: int,
    item_id: int,
    quantity_added: Decimal,
    total_cost: Decimal,
    purchase_date: date,
    project_id: int | None = None,
    actor_principal_id: int | None = None,
) -> InventoryPurchase:
    if quantity_added <= 0:
        raise ValueError('Quantity must be greater than zero')
    if total_cost <= 0:
        raise ValueError('Total cost must be greater than zero')

    item = get_item(db, company_id=company_id, item_id=item_id)
    item.quantity = _qty(Decimal(item.quantity or 0) + Decimal(quantity_added))
    item.last_updated = _now()

    expense = Expense(
        company_id=company_id,
        project_id=project_id,
        category=expense_category_for(item.category),
        description=f'Restock - {item.name} ({format_quantity(quantity_added)} {item.unit})',
        amount=_money(total_cost),
        expense_date=purchase_date,
        paid=False,
    )
    db.add(expense)
    db.flush()

    purchase = InventoryPurchase(
        company_id=company_id,
        inventory_item_id=item.id,
        quantity_added=_qty(quantity_added),
        unit=item.unit,
        total_cost=_money(total_cost),
        price_per_unit=(Decimal(total_cost) / Decimal(quantity_added)).quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP),
        project_id=project_id,
        purchase_date=purchase_date,
        expense_id=expense.id,
        created_by_principal_id=actor_principal_id,
    )
    db.add(purchase)

    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action='RESTOCK',
        company_id=company_id,
        target_type='inventory_item',
        target_id=item.id,
        metadata={'quantity_added': format_quantity(quantity_added), 'total_cost': str(_money(total_cost))},
    )
    db.flush()
    logger.info('Restocked item %s by %s %s', item.id, format_quantity(quantity_added), item.unit)
    return purchase


def record_usage(
    db: Session,
    *,
    company_id: int,
    project_id: int | None,
    item_id: int,
    quantity: Decimal,
    source: UsageSource,
    usage_date: date,
    work_log_id: int | None = None,
    stage_index: int | None = None,
    stage_name: str | None = None,
) -> InventoryUsage:
    if quantity <= 0:
        raise ValueError('Quantity must be greater than zero')
    if source not in {UsageSource.WORK_LOG, UsageSource.MANUAL_ADJUSTMENT}:
        raise ValueError('Work card usage is recorded on approval')

    item = get_item(db, company_id=company_id, item_id=item_id)
    usage = InventoryUsage(
        company_id=company_id,
        project_id=project_id,
        inventory_item_id=item.id,
        category=item.category,
        quantity=_qty(quantity),
        unit=item.unit,
        source=source,
        work_log_id=work_log_id,
        stage_index=stage_index,
        stage_name=stage_name,
        usage_date=usage_date,
    )
    db.add(usage)
    db.flush()
    return usage


def deduct_item(
    db: Session,
    *,
    company_id: int,
    item_id: int,
    quantity: Decimal,
    usage_date: date,
    project_id: int | None = None,
    reason: str | None = None,
    actor_principal_id: int | None = None,
) -> InventoryItem:
    if quantity <= 0:
        raise ValueError('Quantity must be greater than zero')

    item = get_item(db, company_id=company_id, item_id=item_id)
    current = Decimal(item.quantity or 0)
    if Decimal(quantity) > current:
        raise ValueError(
            f'Cannot deduct {format_quantity(quantity)} {item.unit}: only {format_quantity(current)} {item.unit} in stock'
        )

    item.quantity = _qty(current - Decimal(quantity))
    item.last_updated = _now()
    record_usage(
        db,
        company_id=company_id,
        project_id=project_id,
        item_id=item.id,
        quantity=quantity,
        source=UsageSource.MANUAL_ADJUSTMENT,
        usage_date=usage_date,
    )
    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action='DEDUCT',
        company_id=company_id,
        target_type='inventory_item',
        target_id=item.id,
        metadata={'quantity': format_quantity(quantity), 'reason': (reason or '').strip()},
    )
    db.flush()
    logger.info('Deducted %s %s from item %s', format_quantity(quantity), item.unit, item.id)
    return item


def deduct_for_work_card(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    item_id: int | None,
    quantity: Decimal | None,
    work_card_id: int,
    usage_date: date,
    stage_name: str | None = None,
    manager_name: str | None = None,
) -> InventoryUsage | None:
    """Take a work card's recorded resource out of stock.

    The card records quantities in units. Boxed chemicals are stocked in
    boxes, so the stock decrement is ``quantity / units_per_box`` while the
    usage row keeps the unit count.
    """
    if not item_id or quantity is None or quantity <= 0:
        return None

    item = get_item(db, company_id=company_id, item_id=item_id)
    boxed = is_chemical_box(item)
    units_per_box = Decimal(item.units_per_box) if boxed else Decimal('1')
    quantity = Decimal(quantity)
    to_deduct = quantity / units_per_box if boxed else quantity
    current = Decimal(item.quantity or 0)

    if current < to_deduct:
        if boxed:
            current_units = int(current * units_per_box)
            raise ValueError(
                f'Insufficient stock: {item.name} has {current_units} units, need {format_quantity(quantity)} units'
            )
        raise ValueError(
            f'Insufficient stock: {item.name} has {format_quantity(current)} {item.unit}, '
            f'need {format_quantity(quantity)} {item.unit}'
        )

    item.quantity = max(Decimal('0'), _qty(current - to_deduct))
    item.last_updated = _now()

    usage = InventoryUsage(
        company_id=company_id,
        project_id=project_id,
        inventory_item_id=item.id,
        category=item.category,
        quantity=_qty(quantity),
        unit='units' if boxed else item.unit,
        source=UsageSource.WORK_CARD,
        work_card_id=work_card_id,
        manager_name=manager_name,
        stage_name=stage_name,
        usage_date=usage_date,
    )
    db.add(usage)
    db.flush()
    logger.info('Work card %s deducted %s from item %s', work_card_id, format_quantity(to_deduct), item.id)
    return usage


def delete_item(db: Session, *, company_id: int, item_id: int, actor_principal_id: int | None = None) -> None:
    item = get_item(db, company_id=company_id, item_id=item_id)
    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action='DELETE',
        company_id=company_id,
        target_type='inventory_item',
        target_id=item.id,
        metadata={'name': item.name},
    )
    db.delete(item)
    db.flush()


def list_usage(db: Session, *, company_id: int, item_id: int | None = None) -> list[InventoryUsage]:
    stmt = select(InventoryUsage).where(InventoryUsage.company_id == company_id)
    if item_id is not None:
        stmt = stmt.where(InventoryUsage.inventory_item_id == item_id)
    return db.execute(stmt.order_by(InventoryUsage.usage_date.desc(), InventoryUsage.id.desc())).scalars().all()


def list_purchases(db: Session, *, company_id: int, item_id: int | None = None) -> list[InventoryPurchase]:
    stmt = select(InventoryPurchase).where(InventoryPurchase.company_id == company_id)
    if item_id is not None:
        stmt = stmt.where(InventoryPurchase.inventory_item_id == item_id)
    return db.execute(stmt.order_by(InventoryPurchase.purchase_date.desc(), InventoryPurchase.id.desc())).scalars().all()


def add_needed_item(
    db: Session,
    *,
    company_id: int,
    item_name: str,
    category: InventoryCategory,
    quantity: Decimal,
    unit: str,
    project_id: int | None = None,
    source_challenge_id: int | None = None,
    source_challenge_title: str | None = None,
    actor_principal_id: int | None = None,
) -> NeededItem:
    clean_name = item_name.strip()
    if not clean_name:
        raise ValueError('Item name is required')
    if quantity <= 0:
        raise ValueError('Quantity must be greater than zero')

    needed = NeededItem(
        company_id=company_id,
        project_id=project_id,
        item_name=clean_name,
        category=category,
        quantity=_qty(quantity),
        unit=(unit or '').strip() or 'units',
        source_challenge_id=source_challenge_id,
        source_challenge_title=source_challenge_title,
        status=NeededItemStatus.PENDING,
    )
    db.add(needed)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action='ADD_NEEDED',
        company_id=company_id,
        target_type='needed_item',
        target_id=needed.id,
        metadata={'item_name': clean_name, 'source_challenge_id': source_challenge_id},
    )
    return needed


def set_needed_item_status(
    db: Session,
    *,
    company_id: int,
    needed_item_id: int,
    status: NeededItemStatus,
) -> NeededItem:
    needed = db.execute(
        select(NeededItem).where(NeededItem.id == needed_item_id, NeededItem.company_id == company_id)
    ).scalar_one_or_none()
    if not needed:
        raise ValueError('Needed item not found')
    if NEEDED_ITEM_FLOW.index(status) < NEEDED_ITEM_FLOW.index(needed.status):
        raise ValueError(f'Cannot move needed item from {needed.status.value.lower()} back to {status.value.lower()}')

    needed.status = status
    needed.updated_at = _now()
    db.flush()
    return needed


def list_needed_items(
    db: Session,
    *,
    company_id: int,
    project_id: int | None = None,
    status: NeededItemStatus | None = None,
) -> list[NeededItem]:
    stmt = select(NeededItem).where(NeededItem.company_id == company_id)
    if project_id is not None:
        stmt = stmt.where(NeededItem.project_id == project_id)
    if status is not None:
        stmt = stmt.where(NeededItem.status == status)
    return db.execute(stmt.order_by(NeededItem.created_at.desc(), NeededItem.id.desc())).scalars().all()
