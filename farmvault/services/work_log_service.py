from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from farmvault.models import Expense, ExpenseCategory, InventoryCategory, UsageSource, WorkLog
from farmvault.services.inventory_service import get_item, record_usage
from farmvault.services.project_service import get_project, project_stage_on

logger = logging.getLogger(__name__)

# Which inventory categories each work-log usage slot accepts.
USAGE_SLOTS = {
    'chemical': {InventoryCategory.CHEMICAL},
    'fertilizer': {InventoryCategory.FERTILIZER},
    'fuel': {InventoryCategory.FUEL, InventoryCategory.DIESEL},
}


@dataclass(frozen=True)
class UsageInput:
    slot: str
    item_id: int
    quantity: Decimal


@dataclass(frozen=True)
class WorkLogCounts:
    total: int
    paid: int
    unpaid: int


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def labour_amount(number_of_people: int | None, rate_per_person: Decimal | None) -> Decimal:
    return _money(Decimal(number_of_people or 0) * Decimal(rate_per_person or 0))


def create_work_log(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    log_date: date,
    work_category: str,
    number_of_people: int,
    rate_per_person: Decimal | None = None,
    work_type: str | None = None,
    employee_name: str | None = None,
    notes: str | None = None,
    inputs_used: str | None = None,
    manager_id: int | None = None,
    admin_name: str | None = None,
    usages: list[UsageInput] | None = None,
) -> WorkLog:
    clean_category = work_category.strip()
    if not clean_category:
        raise ValueError('Work category is required')
    if number_of_people is None or number_of_people < 0:
        raise ValueError('Number of people cannot be negative')
    if rate_per_person is not None and rate_per_person < 0:
        raise ValueError('Rate per person cannot be negative')

    project = get_project(db, company_id=company_id, project_id=project_id)
    stage = project_stage_on(project, log_date)

    work_log = WorkLog(
        company_id=company_id,
        project_id=project.id,
        crop_type=project.crop_type,
        stage_index=stage.index if stage else None,
        stage_name=stage.name if stage else None,
        log_date=log_date,
        work_category=clean_category,
        work_type=(work_type or '').strip() or None,
        number_of_people=number_of_people,
        rate_per_person=_money(rate_per_person) if rate_per_person is not None else None,
        total_price=labour_amount(number_of_people, rate_per_person) if rate_per_person is not None else None,
        employee_name=(employee_name or '').strip() or None,
        notes=(notes or '').strip() or None,
        inputs_used=(inputs_used or '').strip() or None,
        manager_id=manager_id,
        admin_name=admin_name,
        paid=False,
    )
    db.add(work_log)
    db.flush()

    for usage in usages or []:
        if not usage.item_id or not usage.quantity or usage.quantity <= 0:
            continue
        allowed = USAGE_SLOTS.get(usage.slot)
        if allowed is None:
            raise ValueError(f'Unknown usage type: {usage.slot}')
        item = get_item(db, company_id=company_id, item_id=usage.item_id)
        if item.category not in allowed:
            raise ValueError(f'{item.name} cannot be recorded as {usage.slot}')
        record_usage(
            db,
            company_id=company_id,
            project_id=project.id,
            item_id=item.id,
            quantity=usage.quantity,
            source=UsageSource.WORK_LOG,
            usage_date=log_date,
            work_log_id=work_log.id,
            stage_index=work_log.stage_index,
            stage_name=work_log.stage_name,
        )

    return work_log


def list_work_logs(
    db: Session,
    *,
    company_id: int,
    project_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[WorkLog]:
    stmt = select(WorkLog).where(WorkLog.company_id == company_id)
    if project_id is not None:
        stmt = stmt.where(WorkLog.project_id == project_id)
    if from_date is not None:
        stmt = stmt.where(WorkLog.log_date >= from_date)
    if to_date is not None:
        stmt = stmt.where(WorkLog.log_date <= to_date)
    return db.execute(stmt.order_by(WorkLog.log_date.desc(), WorkLog.id.desc())).scalars().all()


def count_work_logs(work_logs: list[WorkLog]) -> WorkLogCounts:
    paid = sum(1 for log in work_logs if log.paid)
    return WorkLogCounts(total=len(work_logs), paid=paid, unpaid=len(work_logs) - paid)


def sync_labour_expenses(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    day: date,
    paid_by_principal_id: int,
    paid_by_name: str | None = None,
) -> int:
    """Turn the day's unpaid, priced work logs into paid labour expenses.

    Logs are marked paid in the same transaction, so running the sync twice
    for one day creates each expense only once.
    """
    candidates = db.execute(
        select(WorkLog)
        .where(
            WorkLog.company_id == company_id,
            WorkLog.project_id == project_id,
            WorkLog.log_date == day,
            WorkLog.paid.is_(False),
            WorkLog.rate_per_person > 0,
        )
        .order_by(WorkLog.id.asc())
        .with_for_update()
    ).scalars().all()

    paid_at = _now()
    created = 0
    for work_log in candidates:
        amount = labour_amount(work_log.number_of_people, work_log.rate_per_person)
        if amount <= 0:
            continue
        db.add(
            Expense(
                company_id=work_log.company_id,
                project_id=work_log.project_id,
                crop_type=work_log.crop_type,
                category=ExpenseCategory.LABOUR,
                description=f'Labour - {work_log.work_category} on {work_log.log_date.strftime("%d/%m/%Y")}',
                amount=amount,
                expense_date=work_log.log_date,
                stage_index=work_log.stage_index,
                stage_name=work_log.stage_name,
                synced_from_work_log_id=work_log.id,
                paid=True,
                paid_at=paid_at,
                paid_by_principal_id=paid_by_principal_id,
                paid_by_name=paid_by_name,
            )
        )
        work_log.paid = True
        work_log.paid_at = paid_at
        work_log.paid_by_principal_id = paid_by_principal_id
        created += 1

    db.flush()
    if created:
        logger.info('Synced %s labour expenses for project %s on %s', created, project_id, day.isoformat())
    return created


def list_expenses(
    db: Session,
    *,
    company_id: int,
    project_id: int | None = None,
    category: ExpenseCategory | None = None,
) -> list[Expense]:
    stmt = select(Expense).where(Expense.company_id == company_id)
    if project_id is not None:
        stmt = stmt.where(Expense.project_id == project_id)
    if category is not None:
        stmt = stmt.where(Expense.category == category)
    return db.execute(stmt.order_by(Expense.expense_date.desc(), Expense.id.desc())).scalars().all()
