from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from farmvault.models import Company, Project, ProjectStatus
from farmvault.services.crop_stage_service import (
    StageWindow,
    current_stage,
    generate_stage_timeline,
    get_crop_stages,
    normalize_crop_type,
)

logger = logging.getLogger(__name__)


def create_project(
    db: Session,
    *,
    company_id: int,
    name: str,
    crop_type: str,
    planting_date: date | None,
    location: str = '',
    acreage: Decimal = Decimal('0'),
    budget: Decimal = Decimal('0'),
    starting_stage_index: int = 0,
) -> Project:
    clean_name = name.strip()
    if not clean_name:
        raise ValueError('Project name is required')
    crop = normalize_crop_type(crop_type)
    if starting_stage_index < 0 or starting_stage_index >= len(get_crop_stages(crop)):
        raise ValueError('Starting stage is out of range')
    if acreage < 0 or budget < 0:
        raise ValueError('Acreage and budget cannot be negative')

    company = db.execute(select(Company).where(Company.id == company_id)).scalar_one_or_none()
    if not company:
        raise ValueError('Company not found')

    project = Project(
        company_id=company_id,
        name=clean_name,
        crop_type=crop,
        status=ProjectStatus.ACTIVE,
        location=location.strip(),
        acreage=acreage,
        budget=budget,
        planting_date=planting_date,
        starting_stage_index=starting_stage_index,
    )
    db.add(project)
    company.project_count = (company.project_count or 0) + 1
    db.flush()
    logger.info('Created project %s (%s) for company %s', project.id, crop, company_id)
    return project


def list_projects(db: Session, *, company_id: int, include_archived: bool = False) -> list[Project]:
    stmt = select(Project).where(Project.company_id == company_id)
    if not include_archived:
        stmt = stmt.where(Project.status != ProjectStatus.ARCHIVED)
    return db.execute(stmt.order_by(Project.created_at.desc(), Project.id.desc())).scalars().all()


def get_project(db: Session, *, company_id: int, project_id: int) -> Project:
    project = db.execute(
        select(Project).where(Project.id == project_id, Project.company_id == company_id)
    ).scalar_one_or_none()
    if not project:
        raise ValueError('Project not found')
    return project


def project_timeline(project: Project) -> list[StageWindow]:
    if not project.planting_date:
        return []
    return generate_stage_timeline(project.crop_type, project.planting_date, project.starting_stage_index or 0)


def project_stage_on(project: Project, day: date) -> StageWindow | None:
    return current_stage(project_timeline(project), day)
