from __future__ import annotations

from datetime import datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, require_role
from farmvault.db import get_db
from farmvault.dependencies import company_path, get_client_ip, resolve_company_id
from farmvault.forms import form_bool, form_date, form_enum, form_optional_str, form_str
from farmvault.models import CompanyPlan, CompanyStatus, PrincipalRole
from farmvault.security.csrf import verify_csrf
from farmvault.services.audit_service import list_audit_logs, log_audit
from farmvault.services.company_service import (
    COMPANY_USER_ROLES,
    add_custom_work_type,
    clear_payment_reminder,
    create_company,
    create_company_user,
    get_company,
    list_companies,
    list_company_users,
    remove_custom_work_type,
    reset_user_password,
    set_payment_reminder,
    set_user_active,
    update_company,
)

router = APIRouter(prefix='/admin', tags=['admin'])
developer_access = require_role(Role.DEVELOPER)
admin_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN)


def _payment_due(form) -> datetime | None:
    due = form_date(form, 'next_payment_date', label='Next payment date')
    return datetime.combine(due, time.min, tzinfo=timezone.utc) if due else None


def _to_users(principal: Principal, company_id: int) -> RedirectResponse:
    return RedirectResponse(company_path('/admin/users', principal, company_id), status_code=303)


@router.get('/companies')
def companies_page(
    request: Request,
    principal: Principal = Depends(developer_access),
    db: Session = Depends(get_db),
):
    return request.app.state.templates.TemplateResponse(
        'admin_companies.html',
        {
            'request': request,
            'principal': principal,
            'rows': list_companies(db),
            'plans': list(CompanyPlan),
            'statuses': list(CompanyStatus),
        },
    )


@router.post('/companies')
async def create_company_submit(
    request: Request,
    principal: Principal = Depends(developer_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        company = create_company(
            db,
            name=form_str(form, 'name'),
            email=form_optional_str(form, 'email'),
            admin_username=form_optional_str(form, 'admin_username'),
            admin_password=form_str(form, 'admin_password'),
            admin_name=form_str(form, 'admin_name'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='COMPANY_CREATED',
        company_id=company.id,
        target_type='company',
        target_id=company.id,
        ip=get_client_ip(request),
        metadata={'name': company.name},
    )
    db.commit()
    return RedirectResponse('/admin/companies', status_code=303)


@router.post('/companies/{company_id}/update')
async def update_company_submit(
    company_id: int,
    request: Request,
    principal: Principal = Depends(developer_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        changed = update_company(
            db,
            company_id=company_id,
            name=form_optional_str(form, 'name'),
            email=form_str(form, 'email') if 'email' in form else None,
            plan=form_enum(form, 'plan', CompanyPlan, required=False),
            status=form_enum(form, 'status', CompanyStatus, required=False),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if changed:
        company = get_company(db, company_id=company_id)
        log_audit(
            db,
            actor_principal_id=principal.id,
            action='COMPANY_UPDATED',
            company_id=company_id,
            target_type='company',
            target_id=company_id,
            ip=get_client_ip(request),
            metadata={'status': company.status.value, 'plan': company.plan.value},
        )
    db.commit()
    return RedirectResponse('/admin/companies', status_code=303)


@router.post('/companies/{company_id}/reminder')
async def set_reminder_submit(
    company_id: int,
    request: Request,
    principal: Principal = Depends(developer_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        set_payment_reminder(db, company_id=company_id, next_payment_at=_payment_due(form))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PAYMENT_REMINDER_SET',
        company_id=company_id,
        target_type='company',
        target_id=company_id,
        ip=get_client_ip(request),
    )
    db.commit()
    return RedirectResponse('/admin/companies', status_code=303)


@router.post('/reminder/clear')
def clear_reminder_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    try:
        clear_payment_reminder(db, company_id=company_id, dismissed_by_principal_id=principal.id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='PAYMENT_REMINDER_DISMISSED',
        company_id=company_id,
        target_type='company',
        target_id=company_id,
        ip=get_client_ip(request),
    )
    db.commit()
    return RedirectResponse(company_path('/projects', principal, company_id), status_code=303)


@router.get('/users')
def users_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    try:
        company = get_company(db, company_id=company_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return request.app.state.templates.TemplateResponse(
        'admin_users.html',
        {
            'request': request,
            'principal': principal,
            'company': company,
            'users': list_company_users(db, company_id=company_id),
            'roles': sorted(COMPANY_USER_ROLES, key=lambda role: role.value),
        },
    )


@router.post('/users')
async def create_user_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        created = create_company_user(
            db,
            company_id=company_id,
            username=form_str(form, 'username'),
            password=str(form.get('password', '')),
            role=form_enum(form, 'role', PrincipalRole),
            name=form_str(form, 'name'),
            email=form_optional_str(form, 'email'),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='COMPANY_USER_CREATED',
        company_id=company_id,
        target_type='principal',
        target_id=created.id,
        ip=get_client_ip(request),
        metadata={'username': created.username, 'role': created.role.value},
    )
    db.commit()
    return _to_users(principal, company_id)


@router.post('/users/{target_principal_id}/status')
async def user_status_submit(
    target_principal_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    active = form_bool(form, 'active')
    if target_principal_id == principal.id and not active:
        raise HTTPException(status_code=400, detail='You cannot deactivate your own account')
    try:
        updated = set_user_active(db, company_id=company_id, principal_id=target_principal_id, active=active)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='COMPANY_USER_STATUS_UPDATED',
        company_id=company_id,
        target_type='principal',
        target_id=updated.id,
        ip=get_client_ip(request),
        metadata={'active': updated.active},
    )
    db.commit()
    return _to_users(principal, company_id)


@router.post('/users/{target_principal_id}/password')
async def user_password_submit(
    target_principal_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        updated = reset_user_password(
            db,
            company_id=company_id,
            principal_id=target_principal_id,
            new_password=str(form.get('new_password', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='COMPANY_USER_PASSWORD_RESET',
        company_id=company_id,
        target_type='principal',
        target_id=updated.id,
        ip=get_client_ip(request),
    )
    db.commit()
    return _to_users(principal, company_id)


@router.post('/work-types')
async def add_work_type_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        add_custom_work_type(db, company_id=company_id, work_type=form_str(form, 'work_type'))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return _to_users(principal, company_id)


@router.post('/work-types/remove')
async def remove_work_type_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        remove_custom_work_type(db, company_id=company_id, work_type=form_str(form, 'work_type'))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return _to_users(principal, company_id)


@router.get('/audit-logs')
def audit_logs_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    action = request.query_params.get('action', '').strip().upper() or None
    return request.app.state.templates.TemplateResponse(
        'audit_logs.html',
        {
            'request': request,
            'principal': principal,
            'entries': list_audit_logs(db, company_id=company_id, action=action),
            'action': action or '',
        },
    )
