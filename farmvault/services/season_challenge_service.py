from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.orm import Session

from farmvault.models import (
    ChallengeSeverity,
    ChallengeStatus,
    ChallengeType,
    InventoryCategory,
    NeededItem,
    SeasonChallenge,
)
from farmvault.services.inventory_service import add_needed_item, get_item
from farmvault.services.project_service import get_project, project_stage_on

logger = logging.getLogger(__name__)

STATUS_FLOW = [ChallengeStatus.IDENTIFIED, ChallengeStatus.MITIGATING, ChallengeStatus.RESOLVED]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_challenge(db: Session, *, company_id: int, challenge_id: int) -> SeasonChallenge:
    challenge = db.execute(
        select(SeasonChallenge).where(SeasonChallenge.id == challenge_id, SeasonChallenge.company_id == company_id)
    ).scalar_one_or_none()
    if not challenge:
        raise ValueError('Challenge not found')
    return challenge


def report_challenge(
    db: Session,
    *,
    company_id: int,
    project_id: int,
    title: str,
    description: str = '',
    challenge_type: ChallengeType | None = None,
    severity: ChallengeSeverity | None = None,
    stage_index: int | None = None,
    stage_name: str | None = None,
    created_by_principal_id: int | None = None,
    today: date | None = None,
) -> SeasonChallenge:
    clean_title = title.strip()
    if not clean_title:
        raise ValueError('Challenge title is required')

    project = get_project(db, company_id=company_id, project_id=project_id)
    identified_on = today or _now().date()
    if stage_index is None:
        stage = project_stage_on(project, identified_on)
        if stage is not None:
            stage_index, stage_name = stage.index, stage.name
    challenge = SeasonChallenge(
        company_id=company_id,
        project_id=project.id,
        crop_type=project.crop_type,
        title=clean_title,
        description=(description or '').strip(),
        challenge_type=challenge_type,
        stage_index=stage_index,
        stage_name=stage_name,
        severity=severity or ChallengeSeverity.MEDIUM,
        status=ChallengeStatus.IDENTIFIED,
        date_identified=identified_on,
        items_used=[],
        created_by_principal_id=created_by_principal_id,
    )
    db.add(challenge)
    db.flush()
    return challenge


def update_challenge_status(
    db: Session,
    *,
    company_id: int,
    challenge_id: int,
    status: ChallengeStatus,
    today: date | None = None,
) -> SeasonChallenge:
    challenge = get_challenge(db, company_id=company_id, challenge_id=challenge_id)
    if STATUS_FLOW.index(status) < STATUS_FLOW.index(challenge.status):
        raise ValueError(
            f'Cannot move challenge from {challenge.status.value.lower()} back to {status.value.lower()}'
        )

    challenge.status = status
    if status == ChallengeStatus.RESOLVED and challenge.date_resolved is None:
        challenge.date_resolved = today or _now().date()
    challenge.updated_at = _now()
    db.flush()
    return challenge


def _normalize_item_used(db: Session, *, company_id: int, raw: dict) -> dict:
    item_name = str(raw.get('item_name') or '').strip()
    inventory_item_id = raw.get('inventory_item_id')
    category = raw.get('category')
    unit = str(raw.get('unit') or '').strip()

    if inventory_item_id:
        item = get_item(db, company_id=company_id, item_id=int(inventory_item_id))
        item_name = item_name or item.name
        category = category or item.category
        unit = unit or item.unit
    if not item_name:
        raise ValueError('Each item used needs a name')

    try:
        quantity = Decimal(str(raw.get('quantity') or 0))
    except InvalidOperation as exc:
        raise ValueError(f'Invalid quantity for {item_name}') from exc
    if quantity <= 0:
        raise ValueError(f'Quantity for {item_name} must be greater than zero')

    if isinstance(category, InventoryCategory):
        pass
    elif category:
        try:
            category = InventoryCategory(str(category).strip().upper().replace('-', '_'))
        except ValueError as exc:
            raise ValueError(f'Unknown category for {item_name}: {category}') from exc
    else:
        category = InventoryCategory.MATERIALS
    return {
        'inventory_item_id': int(inventory_item_id) if inventory_item_id else None,
        'item_name': item_name,
        'category': category.value,
        'quantity': str(quantity),
        'unit': unit or 'units',
        'needs_purchase': bool(raw.get('needs_purchase')) or not inventory_item_id,
    }


def record_resolution(
    db: Session,
    *,
    company_id: int,
    challenge_id: int,
    what_was_done: str | None = None,
    items_used: list[dict] | None = None,
    plan2_if_fails: str | None = None,
    actor_principal_id: int | None = None,
) -> list[NeededItem]:
    """Store how a challenge was handled.

    Items flagged as needing purchase, or naming no inventory item, become
    pending needed items linked back to the challenge. An item already
    raised for this challenge is not raised twice.
    """
    challenge = get_challenge(db, company_id=company_id, challenge_id=challenge_id)
    normalized = [_normalize_item_used(db, company_id=company_id, raw=raw) for raw in (items_used or [])]

    if what_was_done is not None:
        challenge.what_was_done = what_was_done.strip() or None
    if plan2_if_fails is not None:
        challenge.plan2_if_fails = plan2_if_fails.strip() or None
    if items_used is not None:
        challenge.items_used = normalized
    challenge.updated_at = _now()

    already_raised = {
        name.lower()
        for name in db.execute(
            select(NeededItem.item_name).where(NeededItem.source_challenge_id == challenge.id)
        ).scalars().all()
    }

    created: list[NeededItem] = []
    for entry in normalized:
        if not entry['needs_purchase'] or entry['item_name'].lower() in already_raised:
            continue
        created.append(
            add_needed_item(
                db,
                company_id=company_id,
                project_id=challenge.project_id,
                item_name=entry['item_name'],
                category=InventoryCategory(entry['category']),
                quantity=Decimal(entry['quantity']),
                unit=entry['unit'],
                source_challenge_id=challenge.id,
                source_challenge_title=challenge.title,
                actor_principal_id=actor_principal_id,
            )
        )
        already_raised.add(entry['item_name'].lower())

    db.flush()
    if created:
        logger.info('Challenge %s raised %s needed items', challenge.id, len(created))
    return created


def list_challenges(
    db: Session,
    *,
    company_id: int,
    project_id: int | None = None,
    status: ChallengeStatus | None = None,
) -> list[SeasonChallenge]:
    stmt = select(SeasonChallenge).where(SeasonChallenge.company_id == company_id)
    if project_id is not None:
        stmt = stmt.where(SeasonChallenge.project_id == project_id)
    if status is not None:
        stmt = stmt.where(SeasonChallenge.status == status)
    return db.execute(
        stmt.order_by(SeasonChallenge.date_identified.desc(), SeasonChallenge.id.desc())
    ).scalars().all()


def count_by_status(challenges: list[SeasonChallenge]) -> dict[str, int]:
    counts = Counter(challenge.status for challenge in challenges)
    return {status.value: counts.get(status, 0) for status in STATUS_FLOW}
