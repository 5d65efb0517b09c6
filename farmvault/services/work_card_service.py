from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from farmvault.config import settings
from farmvault.models import Expense, ExpenseCategory, OperationsWorkCard, Project, WorkCardStatus
from farmvault.services.audit_service import log_audit
from farmvault.services.inventory_service import deduct_for_work_card

logger = logging.getLogger(__name__)

WORK_CREATED = 'WORK_CREATED'
WORK_UPDATED = 'WORK_UPDATED'
WORK_SUBMITTED = 'WORK_SUBMITTED'
WORK_APPROVED = 'WORK_APPROVED'
WORK_REJECTED = 'WORK_REJECTED'
WORK_PAID = 'WORK_PAID'

PLANNED_FIELDS = (
    'planned_date',
    'planned_workers',
    'planned_inputs',
    'planned_fuel',
    'planned_chemicals',
    'planned_fertilizer',
    'planned_estimated_cost',
)

ACTUAL_SNAPSHOT_FIELDS = (
    'actual_manager_id',
    'actual_manager_name',
    'actual_date',
    'actual_workers',
    'actual_rate_per_person',
    'actual_inputs_used',
    'actual_fuel_used',
    'actual_chemicals_used',
    'actual_fertilizer_used',
    'actual_notes',
    'actual_resource_item_id',
    'actual_resource_quantity',
    'actual_resource_quantity_secondary',
    'actual_submitted_at',
    'rejection_reason',
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def _display_number(value) -> str:
    return format(Decimal(str(value)).normalize(), ',f')


def _json_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


# Transition guards. Every mutating function below checks one of these.

def can_manager_submit(card: OperationsWorkCard, manager_ids: int | Iterable[int]) -> bool:
    ids = {manager_ids} if isinstance(manager_ids, int) else set(manager_ids)
    if not card.allocated_manager_id or card.allocated_manager_id not in ids:
        return False
    return card.status in {WorkCardStatus.PLANNED, WorkCardStatus.REJECTED}


def can_admin_approve_or_reject(card: OperationsWorkCard) -> bool:
    return card.status == WorkCardStatus.SUBMITTED


def can_mark_as_paid(card: OperationsWorkCard) -> bool:
    return card.status == WorkCardStatus.APPROVED and not card.is_paid


def get_work_card(db: Session, *, company_id: int, card_id: int) -> OperationsWorkCard:
    card = db.execute(
        select(OperationsWorkCard).where(
            OperationsWorkCard.id == card_id,
            OperationsWorkCard.company_id == company_id,
        )
    ).scalar_one_or_none()
    if not card:
        raise ValueError('Work card not found')
    return card


def list_work_cards_for_company(db: Session, *, company_id: int) -> list[OperationsWorkCard]:
    return db.execute(
        select(OperationsWorkCard)
        .where(OperationsWorkCard.company_id == company_id)
        .order_by(OperationsWorkCard.created_at.desc(), OperationsWorkCard.id.desc())
    ).scalars().all()


def list_work_cards_for_project(db: Session, *, company_id: int, project_id: int) -> list[OperationsWorkCard]:
    return db.execute(
        select(OperationsWorkCard)
        .where(OperationsWorkCard.company_id == company_id, OperationsWorkCard.project_id == project_id)
        .order_by(OperationsWorkCard.created_at.desc(), OperationsWorkCard.id.desc())
    ).scalars().all()


def list_work_cards_for_managers(db: Session, *, company_id: int, manager_ids: Iterable[int]) -> list[OperationsWorkCard]:
    ids = list(set(manager_ids))
    if not ids:
        return []
    return db.execute(
        select(OperationsWorkCard)
        .where(
            OperationsWorkCard.company_id == company_id,
            OperationsWorkCard.allocated_manager_id.in_(ids),
        )
        .order_by(OperationsWorkCard.created_at.desc(), OperationsWorkCard.id.desc())
    ).scalars().all()


def create_work_card(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    work_title: str,
    work_category: str,
    created_by_principal_id: int,
    stage_index: int | None = None,
    stage_name: str | None = None,
    allocated_manager_id: int | None = None,
    planned: dict | None = None,
) -> OperationsWorkCard:
    clean_title = work_title.strip()
    clean_category = work_category.strip()
    if not clean_title:
        raise ValueError('Work title is required')
    if not clean_category:
        raise ValueError('Work category is required')

    project_exists = db.execute(
        select(Project.id).where(Project.id == project_id, Project.company_id == company_id)
    ).scalar_one_or_none()
    if not project_exists:
        raise ValueError('Project not found')

    planned = planned or {}
    card = OperationsWorkCard(
        company_id=company_id,
        project_id=project_id,
        stage_index=stage_index,
        stage_name=stage_name,
        work_title=clean_title,
        work_category=clean_category,
        planned_date=planned.get('planned_date'),
        planned_workers=int(planned.get('planned_workers') or 0),
        planned_inputs=planned.get('planned_inputs'),
        planned_fuel=planned.get('planned_fuel'),
        planned_chemicals=planned.get('planned_chemicals'),
        planned_fertilizer=planned.get('planned_fertilizer'),
        planned_estimated_cost=planned.get('planned_estimated_cost'),
        status=WorkCardStatus.PLANNED,
        allocated_manager_id=allocated_manager_id,
        created_by_principal_id=created_by_principal_id,
        actual_history=[],
        is_paid=False,
    )
    db.add(card)
    db.flush()
    log_audit(
        db,
        actor_principal_id=created_by_principal_id,
        action=WORK_CREATED,
        company_id=company_id,
        target_type='WORK_CARD',
        target_id=card.id,
        metadata={'work_title': clean_title},
    )
    return card


_UNSET = object()


def update_work_card(
    db: Session,
    *,
    company_id: int,
    card_id: int,
    actor_principal_id: int,
    work_title: str | None = None,
    work_category: str | None = None,
    stage_index: int | None = None,
    stage_name: str | None = None,
    allocated_manager_id=_UNSET,
    planned: dict | None = None,
) -> bool:
    card = get_work_card(db, company_id=company_id, card_id=card_id)
    updates: dict = {}
    if work_title is not None:
        if not work_title.strip():
            raise ValueError('Work title is required')
        updates['work_title'] = work_title.strip()
    if work_category is not None:
        if not work_category.strip():
            raise ValueError('Work category is required')
        updates['work_category'] = work_category.strip()
    if stage_index is not None:
        updates['stage_index'] = stage_index
    if stage_name is not None:
        updates['stage_name'] = stage_name
    if allocated_manager_id is not _UNSET:
        updates['allocated_manager_id'] = allocated_manager_id
    for key, value in (planned or {}).items():
        if key not in PLANNED_FIELDS:
            raise ValueError(f'Unknown planned field: {key}')
        updates[key] = value

    if not updates:
        return False

    for key, value in updates.items():
        setattr(card, key, value)
    db.flush()
    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action=WORK_UPDATED,
        company_id=company_id,
        target_type='WORK_CARD',
        target_id=card.id,
        metadata={'fields': sorted(updates)},
    )
    return True


def _actual_snapshot(card: OperationsWorkCard) -> dict:
    return {field: _json_value(getattr(card, field)) for field in ACTUAL_SNAPSHOT_FIELDS}


def submit_execution(
    db: Session,
    *,
    company_id: int,
    card_id: int,
    manager_id: int,
    manager_name: str,
    manager_ids: Iterable[int] | None = None,
    actual_workers: int | None = None,
    rate_per_person: Decimal | None = None,
    actual_inputs_used: str | None = None,
    actual_fuel_used: str | None = None,
    actual_chemicals_used: str | None = None,
    actual_fertilizer_used: str | None = None,
    notes: str | None = None,
    resource_item_id: int | None = None,
    resource_quantity: Decimal | None = None,
    resource_quantity_secondary: Decimal | None = None,
) -> OperationsWorkCard:
    card = get_work_card(db, company_id=company_id, card_id=card_id)
    ids = set(manager_ids) if manager_ids else {manager_id}
    if not can_manager_submit(card, ids):
        raise PermissionError('You cannot submit this card: not allocated to you, or already submitted/approved/paid.')
    if actual_workers is not None and actual_workers < 0:
        raise ValueError('Workers cannot be negative')
    if rate_per_person is not None and rate_per_person < 0:
        raise ValueError('Rate per person cannot be negative')
    if resource_quantity is not None and resource_quantity < 0:
        raise ValueError('Resource quantity cannot be negative')

    if card.actual_submitted:
        card.actual_history = [*(card.actual_history or []), _actual_snapshot(card)]

    submitted_at = _now()
    card.actual_submitted = True
    card.actual_manager_id = manager_id
    card.actual_manager_name = manager_name
    card.actual_date = submitted_at.date()
    card.actual_workers = actual_workers
    card.actual_rate_per_person = _money(rate_per_person) if rate_per_person is not None else None
    card.actual_inputs_used = actual_inputs_used
    card.actual_fuel_used = actual_fuel_used
    card.actual_chemicals_used = actual_chemicals_used
    card.actual_fertilizer_used = actual_fertilizer_used
    card.actual_notes = notes
    card.actual_resource_item_id = resource_item_id
    card.actual_resource_quantity = resource_quantity
    card.actual_resource_quantity_secondary = resource_quantity_secondary
    card.actual_submitted_at = submitted_at
    card.status = WorkCardStatus.SUBMITTED
    db.flush()

    log_audit(
        db,
        actor_principal_id=manager_id,
        action=WORK_SUBMITTED,
        company_id=company_id,
        target_type='WORK_CARD',
        target_id=card.id,
        metadata={'manager_id': manager_id},
    )
    return card


def approve_work_card(db: Session, *, company_id: int, card_id: int, approved_by_principal_id: int) -> OperationsWorkCard:
    card = get_work_card(db, company_id=company_id, card_id=card_id)
    if not can_admin_approve_or_reject(card):
        raise PermissionError('Only submitted cards can be approved.')

    # Runs before the status change so an insufficient-stock error leaves the card submitted.
    deduct_for_work_card(
        db,
        company_id=company_id,
        project_id=card.project_id,
        item_id=card.actual_resource_item_id,
        quantity=card.actual_resource_quantity,
        work_card_id=card.id,
        usage_date=_now().date(),
        stage_name=card.stage_name,
        manager_name=card.actual_manager_name,
    )

    card.status = WorkCardStatus.APPROVED
    card.approved_by_principal_id = approved_by_principal_id
    card.approved_at = _now()
    card.rejection_reason = None
    db.flush()

    log_audit(
        db,
        actor_principal_id=approved_by_principal_id,
        action=WORK_APPROVED,
        company_id=company_id,
        target_type='WORK_CARD',
        target_id=card.id,
    )
    logger.info('Work card %s approved by %s', card.id, approved_by_principal_id)
    return card


def reject_work_card(
    db: Session,
    *,
    company_id: int,
    card_id: int,
    rejection_reason: str,
    actor_principal_id: int,
) -> OperationsWorkCard:
    reason = (rejection_reason or '').strip()
    if not reason:
        raise ValueError('Rejection reason is required')
    card = get_work_card(db, company_id=company_id, card_id=card_id)
    if not can_admin_approve_or_reject(card):
        raise PermissionError('Only submitted cards can be rejected.')

    card.status = WorkCardStatus.REJECTED
    card.rejection_reason = reason
    db.flush()

    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action=WORK_REJECTED,
        company_id=company_id,
        target_type='WORK_CARD',
        target_id=card.id,
        metadata={'reason': reason},
    )
    return card


def mark_work_card_paid(
    db: Session,
    *,
    company_id: int,
    card_id: int,
    paid_by_principal_id: int,
    paid_by_name: str | None = None,
) -> Expense | None:
    card = get_work_card(db, company_id=company_id, card_id=card_id)
    if not can_mark_as_paid(card):
        raise PermissionError('Card must be approved and not already paid.')

    paid_at = _now()
    card.status = WorkCardStatus.PAID
    card.is_paid = True
    card.paid_at = paid_at
    card.paid_by_principal_id = paid_by_principal_id

    workers = card.actual_workers or 0
    rate = Decimal(card.actual_rate_per_person or 0)
    amount = _money(Decimal(workers) * rate)
    expense = None
    if amount > 0:
        expense = Expense(
            company_id=card.company_id,
            project_id=card.project_id,
            category=ExpenseCategory.LABOUR,
            description=(
                f'Labour - {card.work_title or card.work_category} '
                f'({workers} × {settings.currency_label} {_display_number(rate)})'
            ),
            amount=amount,
            expense_date=paid_at.date(),
            stage_name=card.stage_name,
            work_card_id=card.id,
            paid=True,
            paid_at=paid_at,
            paid_by_principal_id=paid_by_principal_id,
            paid_by_name=paid_by_name,
        )
        db.add(expense)
    db.flush()

    log_audit(
        db,
        actor_principal_id=paid_by_principal_id,
        action=WORK_PAID,
        company_id=company_id,
        target_type='WORK_CARD',
        target_id=card.id,
        metadata={'amount': str(amount)},
    )
    logger.info('Work card %s paid (%s)', card.id, amount)
    return expense
