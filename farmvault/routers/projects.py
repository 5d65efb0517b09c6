from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, is_admin_role, require_role
from farmvault.db import get_db
from farmvault.dependencies import company_path, get_client_ip, resolve_company_id
from farmvault.forms import form_date, form_decimal, form_int, form_str
from farmvault.security.csrf import verify_csrf
from farmvault.services.audit_service import log_audit
from farmvault.services.company_service import get_company
from farmvault.services.crop_stage_service import CROP_STAGES
from farmvault.services.project_service import create_project, get_project, list_projects, project_timeline
from farmvault.services.project_service import project_stage_on

router = APIRouter(tags=['projects'])
member_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER, Role.BROKER, Role.EMPLOYEE)
admin_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN)


@router.get('/projects')
def projects_page(
    request: Request,
    principal: Principal = Depends(member_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    try:
        company = get_company(db, company_id=company_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    today = date.today()
    rows = [
        {'project': project, 'stage': project_stage_on(project, today)}
        for project in list_projects(db, company_id=company_id)
    ]
    cards = [
        {'href': '/inventory', 'label': 'Inventory', 'requires_admin': False},
        {'href': '/harvest', 'label': 'Harvest Collections', 'requires_admin': False},
        {'href': '/operations/work-logs', 'label': 'Work Logs', 'requires_admin': False},
        {'href': '/operations/work-cards', 'label': 'Work Cards', 'requires_admin': False},
        {'href': '/challenges', 'label': 'Season Challenges', 'requires_admin': False},
        {'href': '/admin/users', 'label': 'Users & Work Types', 'requires_admin': True},
        {'href': '/admin/audit-logs', 'label': 'Audit Logs', 'requires_admin': True},
    ]
    visible_cards = [card for card in cards if is_admin_role(principal.role) or not card['requires_admin']]
    return request.app.state.templates.TemplateResponse(
        'projects.html',
        {
            'request': request,
            'principal': principal,
            'company': company,
            'rows': rows,
            'cards': visible_cards,
            'crop_types': sorted(CROP_STAGES),
            'can_manage': is_admin_role(principal.role),
        },
    )


@router.post('/projects')
async def create_project_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        project = create_project(
            db,
            company_id=company_id,
            name=form_str(form, 'name'),
            crop_type=form_str(form, 'crop_type'),
            planting_date=form_date(form, 'planting_date', label='Planting date'),
            location=form_str(form, 'location'),
            acreage=form_decimal(form, 'acreage', required=False) or Decimal('0'),
            budget=form_decimal(form, 'budget', required=False) or Decimal('0'),
            starting_stage_index=form_int(form, 'starting_stage_index', required=False) or 0,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PROJECT_CREATED',
        company_id=company_id,
        target_type='project',
        target_id=project.id,
        ip=get_client_ip(request),
        metadata={'name': project.name, 'crop_type': project.crop_type},
    )
    db.commit()
    return RedirectResponse(company_path(f'/projects/{project.id}', principal, company_id), status_code=303)


@router.get('/projects/{project_id}')
def project_detail(
    project_id: int,
    request: Request,
    principal: Principal = Depends(member_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    try:
        project = get_project(db, company_id=company_id, project_id=project_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    today = date.today()
    return request.app.state.templates.TemplateResponse(
        'project_detail.html',
        {
            'request': request,
            'principal': principal,
            'project': project,
            'timeline': project_timeline(project),
            'current': project_stage_on(project, today),
            'stages': CROP_STAGES[project.crop_type],
        },
    )
