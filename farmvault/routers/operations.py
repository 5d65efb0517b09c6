from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, is_admin_role, require_role
from farmvault.config import settings
from farmvault.db import get_db
from farmvault.dependencies import company_path, pick_project, resolve_company_id
from farmvault.forms import form_date, form_decimal, form_int, form_optional_str, form_str
from farmvault.models import InventoryCategory
from farmvault.security.csrf import verify_csrf
from farmvault.services.company_service import get_company, list_company_managers
from farmvault.services.inventory_service import list_items
from farmvault.services.project_service import get_project, project_stage_on, project_timeline
from farmvault.services.work_card_service import (
    approve_work_card,
    can_admin_approve_or_reject,
    can_manager_submit,
    can_mark_as_paid,
    create_work_card,
    list_work_cards_for_managers,
    list_work_cards_for_project,
    mark_work_card_paid,
    reject_work_card,
    submit_execution,
    update_work_card,
)
from farmvault.services.work_log_service import (
    UsageInput,
    count_work_logs,
    create_work_log,
    list_work_logs,
    sync_labour_expenses,
)

router = APIRouter(prefix='/operations', tags=['operations'])
operations_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER)
admin_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN)
manager_access = require_role(Role.MANAGER)

DEFAULT_WORK_CATEGORIES = [
    'Spraying',
    'Fertilizer application',
    'Weeding',
    'Watering',
    'Planting',
    'Pruning',
    'Harvesting',
    'Land preparation',
    'Tractor work',
]


def _raise_for(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def _work_categories(db: Session, company_id: int) -> list[str]:
    company = get_company(db, company_id=company_id)
    return DEFAULT_WORK_CATEGORIES + [value for value in (company.custom_work_types or []) if value not in DEFAULT_WORK_CATEGORIES]


@router.get('/work-logs')
def work_logs_page(
    request: Request,
    principal: Principal = Depends(operations_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    projects, project = pick_project(db, request, company_id)
    work_logs = list_work_logs(db, company_id=company_id, project_id=project.id) if project else []
    items = list_items(db, company_id=company_id)
    today = date.today()
    return request.app.state.templates.TemplateResponse(
        'work_logs.html',
        {
            'request': request,
            'principal': principal,
            'projects': projects,
            'project': project,
            'work_logs': work_logs,
            'counts': count_work_logs(work_logs),
            'stage': project_stage_on(project, today) if project else None,
            'work_categories': _work_categories(db, company_id),
            'chemical_items': [i for i in items if i.category == InventoryCategory.CHEMICAL],
            'fertilizer_items': [i for i in items if i.category == InventoryCategory.FERTILIZER],
            'fuel_items': [i for i in items if i.category in {InventoryCategory.FUEL, InventoryCategory.DIESEL}],
            'currency': settings.currency_label,
            'today': today,
        },
    )


@router.post('/work-logs')
async def create_work_log_submit(
    request: Request,
    principal: Principal = Depends(operations_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    project_id = form_int(form, 'project_id', label='Project')
    usages = []
    for slot in ('chemical', 'fertilizer', 'fuel'):
        item_id = form_int(form, f'{slot}_item_id', required=False)
        quantity = form_decimal(form, f'{slot}_quantity', required=False)
        if item_id and quantity:
            usages.append(UsageInput(slot=slot, item_id=item_id, quantity=quantity))
    try:
        create_work_log(
            db,
            company_id=company_id,
            project_id=project_id,
            log_date=form_date(form, 'log_date', default=date.today()),
            work_category=form_str(form, 'work_category'),
            number_of_people=form_int(form, 'number_of_people', required=False) or 0,
            rate_per_person=form_decimal(form, 'rate_per_person', required=False),
            work_type=form_optional_str(form, 'work_type'),
            employee_name=form_optional_str(form, 'employee_name'),
            notes=form_optional_str(form, 'notes'),
            inputs_used=form_optional_str(form, 'inputs_used'),
            manager_id=principal.id,
            admin_name=principal.display_name,
            usages=usages,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return RedirectResponse(
        company_path(f'/operations/work-logs?project_id={project_id}', principal, company_id), status_code=303
    )


@router.post('/work-logs/sync')
async def sync_labour_submit(
    request: Request,
    principal: Principal = Depends(operations_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    project_id = form_int(form, 'project_id', label='Project')
    sync_labour_expenses(
        db,
        company_id=company_id,
        project_id=project_id,
        day=form_date(form, 'day', default=date.today()),
        paid_by_principal_id=principal.id,
        paid_by_name=principal.display_name,
    )
    db.commit()
    return RedirectResponse(
        company_path(f'/operations/work-logs?project_id={project_id}', principal, company_id), status_code=303
    )


@router.get('/work-cards')
def work_cards_page(
    request: Request,
    principal: Principal = Depends(operations_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    projects, project = pick_project(db, request, company_id)
    if principal.role == Role.MANAGER:
        cards = list_work_cards_for_managers(db, company_id=company_id, manager_ids=[principal.id])
    else:
        cards = list_work_cards_for_project(db, company_id=company_id, project_id=project.id) if project else []
    rows = [
        {
            'card': card,
            'can_submit': can_manager_submit(card, principal.id),
            'can_review': is_admin_role(principal.role) and can_admin_approve_or_reject(card),
            'can_pay': can_mark_as_paid(card),
        }
        for card in cards
    ]
    return request.app.state.templates.TemplateResponse(
        'work_cards.html',
        {
            'request': request,
            'principal': principal,
            'projects': projects,
            'project': project,
            'rows': rows,
            'managers': list_company_managers(db, company_id=company_id),
            'timeline': project_timeline(project) if project else [],
            'work_categories': _work_categories(db, company_id),
            'items': list_items(db, company_id=company_id),
            'is_admin': is_admin_role(principal.role),
            'currency': settings.currency_label,
        },
    )


def _back_to_cards(principal: Principal, company_id: int, project_id: int | None) -> RedirectResponse:
    path = '/operations/work-cards' if project_id is None else f'/operations/work-cards?project_id={project_id}'
    return RedirectResponse(company_path(path, principal, company_id), status_code=303)


def _planned_from_form(form) -> dict:
    planned = {
        'planned_date': form_date(form, 'planned_date'),
        'planned_workers': form_int(form, 'planned_workers', required=False),
        'planned_inputs': form_optional_str(form, 'planned_inputs'),
        'planned_fuel': form_optional_str(form, 'planned_fuel'),
        'planned_chemicals': form_optional_str(form, 'planned_chemicals'),
        'planned_fertilizer': form_optional_str(form, 'planned_fertilizer'),
        'planned_estimated_cost': form_decimal(form, 'planned_estimated_cost', required=False),
    }
    return {key: value for key, value in planned.items() if value is not None}


@router.post('/work-cards')
async def create_work_card_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    project_id = form_int(form, 'project_id', label='Project')
    stage_index = form_int(form, 'stage_index', required=False)
    try:
        project = get_project(db, company_id=company_id, project_id=project_id)
        stage_name = next((w.name for w in project_timeline(project) if w.index == stage_index), None)
        create_work_card(
            db,
            company_id=company_id,
            project_id=project.id,
            work_title=form_str(form, 'work_title'),
            work_category=form_str(form, 'work_category'),
            created_by_principal_id=principal.id,
            stage_index=stage_index,
            stage_name=stage_name,
            allocated_manager_id=form_int(form, 'allocated_manager_id', required=False),
            planned=_planned_from_form(form),
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _back_to_cards(principal, company_id, project_id)


@router.post('/work-cards/{card_id}/update')
async def update_work_card_submit(
    card_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    manager_raw = form_str(form, 'allocated_manager_id')
    extra = {}
    if 'allocated_manager_id' in form:
        extra['allocated_manager_id'] = int(manager_raw) if manager_raw.isdigit() else None
    try:
        update_work_card(
            db,
            company_id=company_id,
            card_id=card_id,
            actor_principal_id=principal.id,
            work_title=form_optional_str(form, 'work_title'),
            work_category=form_optional_str(form, 'work_category'),
            planned=_planned_from_form(form),
            **extra,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _back_to_cards(principal, company_id, form_int(form, 'project_id', required=False))


@router.post('/work-cards/{card_id}/submit')
async def submit_work_card(
    card_id: int,
    request: Request,
    principal: Principal = Depends(manager_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        submit_execution(
            db,
            company_id=company_id,
            card_id=card_id,
            manager_id=principal.id,
            manager_name=principal.display_name,
            actual_workers=form_int(form, 'actual_workers', required=False),
            rate_per_person=form_decimal(form, 'rate_per_person', required=False),
            actual_inputs_used=form_optional_str(form, 'actual_inputs_used'),
            actual_fuel_used=form_optional_str(form, 'actual_fuel_used'),
            actual_chemicals_used=form_optional_str(form, 'actual_chemicals_used'),
            actual_fertilizer_used=form_optional_str(form, 'actual_fertilizer_used'),
            notes=form_optional_str(form, 'notes'),
            resource_item_id=form_int(form, 'resource_item_id', required=False),
            resource_quantity=form_decimal(form, 'resource_quantity', required=False),
            resource_quantity_secondary=form_decimal(form, 'resource_quantity_secondary', required=False),
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _back_to_cards(principal, company_id, None)


@router.post('/work-cards/{card_id}/approve')
async def approve_work_card_submit(
    card_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    try:
        card = approve_work_card(db, company_id=company_id, card_id=card_id, approved_by_principal_id=principal.id)
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _back_to_cards(principal, company_id, card.project_id)


@router.post('/work-cards/{card_id}/reject')
async def reject_work_card_submit(
    card_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        card = reject_work_card(
            db,
            company_id=company_id,
            card_id=card_id,
            rejection_reason=form_str(form, 'rejection_reason'),
            actor_principal_id=principal.id,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _back_to_cards(principal, company_id, card.project_id)


@router.post('/work-cards/{card_id}/pay')
async def pay_work_card_submit(
    card_id: int,
    request: Request,
    principal: Principal = Depends(operations_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    try:
        mark_work_card_paid(
            db,
            company_id=company_id,
            card_id=card_id,
            paid_by_principal_id=principal.id,
            paid_by_name=principal.display_name,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _back_to_cards(principal, company_id, None)
