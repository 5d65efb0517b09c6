from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from farmvault.models import Company, CompanyPlan, CompanyStatus, Principal, PrincipalRole, Project
from farmvault.security.passwords import hash_password, validate_new_password

logger = logging.getLogger(__name__)

COMPANY_USER_ROLES = {
    PrincipalRole.COMPANY_ADMIN,
    PrincipalRole.MANAGER,
    PrincipalRole.BROKER,
    PrincipalRole.EMPLOYEE,
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_company(db: Session, *, company_id: int) -> Company:
    company = db.execute(select(Company).where(Company.id == company_id)).scalar_one_or_none()
    if not company:
        raise ValueError('Company not found')
    return company


def list_companies(db: Session) -> list[dict]:
    user_counts = dict(
        db.execute(
            select(Principal.company_id, func.count(Principal.id))
            .where(Principal.company_id.is_not(None), Principal.active.is_(True))
            .group_by(Principal.company_id)
        ).all()
    )
    project_counts = dict(
        db.execute(select(Project.company_id, func.count(Project.id)).group_by(Project.company_id)).all()
    )
    companies = db.execute(select(Company).order_by(Company.name.asc(), Company.id.asc())).scalars().all()
    return [
        {
            'company': company,
            'active_users': int(user_counts.get(company.id, 0)),
            'projects': int(project_counts.get(company.id, 0)),
        }
        for company in companies
    ]


def create_company(
    db: Session,
    *,
    name: str,
    email: str | None,
    admin_username: str | None = None,
    admin_password: str | None = None,
    admin_name: str | None = None,
) -> Company:
    clean_name = name.strip()
    if not clean_name:
        raise ValueError('Company name is required')

    company = Company(
        name=clean_name,
        email=(email or '').strip() or None,
        status=CompanyStatus.ACTIVE,
        plan=CompanyPlan.STARTER,
        subscription_plan='trial',
        user_count=1,
        project_count=0,
        revenue=Decimal('0.00'),
        custom_work_types=[],
    )
    db.add(company)
    db.flush()

    if admin_username:
        create_company_user(
            db,
            company_id=company.id,
            username=admin_username,
            password=admin_password or '',
            role=PrincipalRole.COMPANY_ADMIN,
            name=admin_name or '',
            email=company.email,
            bump_user_count=False,
        )

    logger.info('Created company %s (%s)', company.id, company.name)
    return company


def update_company(
    db: Session,
    *,
    company_id: int,
    name: str | None = None,
    email: str | None = None,
    plan: CompanyPlan | None = None,
    status: CompanyStatus | None = None,
) -> bool:
    company = get_company(db, company_id=company_id)
    changed = False

    if name is not None:
        clean_name = name.strip()
        if not clean_name:
            raise ValueError('Company name is required')
        if clean_name != company.name:
            company.name = clean_name
            changed = True
    if email is not None:
        clean_email = email.strip() or None
        if clean_email != company.email:
            company.email = clean_email
            changed = True
    if plan is not None and plan != company.plan:
        company.plan = plan
        changed = True
    if status is not None and status != company.status:
        company.status = status
        changed = True

    if changed:
        db.flush()
    return changed


def set_company_next_payment(db: Session, *, company_id: int, next_payment_at: datetime | None) -> Company:
    company = get_company(db, company_id=company_id)
    company.next_payment_at = next_payment_at
    db.flush()
    return company


def set_payment_reminder(db: Session, *, company_id: int, next_payment_at: datetime | None = None) -> Company:
    company = get_company(db, company_id=company_id)
    company.payment_reminder_active = True
    company.payment_reminder_set_at = _now()
    company.payment_reminder_dismissed_at = None
    company.payment_reminder_dismissed_by = None
    if next_payment_at is not None:
        company.next_payment_at = next_payment_at
    db.flush()
    logger.info('Payment reminder set for company %s', company.id)
    return company


def clear_payment_reminder(db: Session, *, company_id: int, dismissed_by_principal_id: int) -> Company:
    company = get_company(db, company_id=company_id)
    company.payment_reminder_active = False
    company.payment_reminder_dismissed_at = _now()
    company.payment_reminder_dismissed_by = dismissed_by_principal_id
    db.flush()
    return company


def add_custom_work_type(db: Session, *, company_id: int, work_type: str) -> list[str]:
    clean = work_type.strip()
    if not clean:
        raise ValueError('Work type is required')
    company = get_company(db, company_id=company_id)
    current = list(company.custom_work_types or [])
    if clean.lower() not in {value.lower() for value in current}:
        current.append(clean)
        company.custom_work_types = current
        db.flush()
    return current


def remove_custom_work_type(db: Session, *, company_id: int, work_type: str) -> list[str]:
    clean = work_type.strip().lower()
    company = get_company(db, company_id=company_id)
    remaining = [value for value in (company.custom_work_types or []) if value.lower() != clean]
    company.custom_work_types = remaining
    db.flush()
    return remaining


def create_company_user(
    db: Session,
    *,
    company_id: int,
    username: str,
    password: str,
    role: PrincipalRole,
    name: str = '',
    email: str | None = None,
    bump_user_count: bool = True,
) -> Principal:
    clean_username = username.strip()
    if not clean_username:
        raise ValueError('Username is required')
    if role not in COMPANY_USER_ROLES:
        raise ValueError('Role is not assignable to company users')
    validate_new_password(password)

    company = get_company(db, company_id=company_id)
    existing = db.execute(select(Principal.id).where(Principal.username == clean_username)).scalar_one_or_none()
    if existing:
        raise ValueError('Username is already in use')

    principal = Principal(
        username=clean_username,
        name=name.strip(),
        email=(email or '').strip() or None,
        password_hash=hash_password(password),
        role=role,
        company_id=company.id,
        active=True,
    )
    db.add(principal)
    if bump_user_count:
        company.user_count = (company.user_count or 0) + 1
    db.flush()
    return principal


def list_company_users(db: Session, *, company_id: int) -> list[Principal]:
    return db.execute(
        select(Principal)
        .where(Principal.company_id == company_id)
        .order_by(Principal.active.desc(), Principal.username.asc())
    ).scalars().all()


def list_company_managers(db: Session, *, company_id: int) -> list[Principal]:
    return db.execute(
        select(Principal)
        .where(
            Principal.company_id == company_id,
            Principal.role == PrincipalRole.MANAGER,
            Principal.active.is_(True),
        )
        .order_by(Principal.username.asc())
    ).scalars().all()


def set_user_active(db: Session, *, company_id: int, principal_id: int, active: bool) -> Principal:
    principal = db.execute(
        select(Principal).where(Principal.id == principal_id, Principal.company_id == company_id)
    ).scalar_one_or_none()
    if not principal:
        raise ValueError('User not found')
    principal.active = active
    principal.updated_at = _now()
    db.flush()
    return principal


def reset_user_password(db: Session, *, company_id: int, principal_id: int, new_password: str) -> Principal:
    validate_new_password(new_password)
    principal = db.execute(
        select(Principal).where(Principal.id == principal_id, Principal.company_id == company_id)
    ).scalar_one_or_none()
    if not principal:
        raise ValueError('User not found')
    principal.password_hash = hash_password(new_password)
    principal.updated_at = _now()
    db.flush()
    return principal
