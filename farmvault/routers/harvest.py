from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, require_role
from farmvault.config import settings
from farmvault.db import get_db
from farmvault.dependencies import company_path, get_client_ip, pick_project, resolve_company_id
from farmvault.forms import form_bool, form_date, form_decimal, form_int, form_int_list, form_str
from farmvault.security.csrf import verify_csrf
from farmvault.services.audit_service import log_audit
from farmvault.services.harvest_collection_service import (
    add_picker,
    add_weigh_entry,
    create_collection,
    get_collection_detail,
    get_cash_pool,
    get_wallet,
    list_collections,
    mark_picker_paid,
    mark_pickers_paid_in_batch,
    refresh_collection_status,
    register_harvest_cash,
    set_buyer_price,
    top_up_wallet,
)
from farmvault.services.project_service import get_project

router = APIRouter(prefix='/harvest', tags=['harvest'])
harvest_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER, Role.BROKER)
admin_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN)


def _to_collection(principal: Principal, company_id: int, collection_id: int) -> RedirectResponse:
    return RedirectResponse(company_path(f'/harvest/collections/{collection_id}', principal, company_id), status_code=303)


def _raise_for(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get('')
def collections_page(
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    projects, project = pick_project(db, request, company_id)
    collections = list_collections(db, company_id=company_id, project_id=project.id) if project else []
    wallet = None
    if project and settings.uses_wallet(project.crop_type):
        wallet = get_wallet(db, company_id=company_id, project_id=project.id, crop_type=project.crop_type)
    return request.app.state.templates.TemplateResponse(
        'harvest_collections.html',
        {
            'request': request,
            'principal': principal,
            'projects': projects,
            'project': project,
            'collections': collections,
            'pools': {c.id: get_cash_pool(db, collection_id=c.id) for c in collections},
            'wallet': wallet,
            'uses_wallet': bool(project and settings.uses_wallet(project.crop_type)),
            'default_price': settings.default_picker_price_per_kg,
            'currency': settings.currency_label,
            'today': date.today(),
        },
    )


@router.post('/collections')
async def create_collection_submit(
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        collection = create_collection(
            db,
            company_id=company_id,
            project_id=form_int(form, 'project_id', label='Project'),
            name=form_str(form, 'name'),
            harvest_date=form_date(form, 'harvest_date', default=date.today()),
            price_per_kg_picker=form_decimal(form, 'price_per_kg_picker', label='Price per kg'),
            created_by_principal_id=principal.id,
            received_by=principal.display_name,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='HARVEST_COLLECTION_CREATED',
        company_id=company_id,
        target_type='harvest_collection',
        target_id=collection.id,
        ip=get_client_ip(request),
        metadata={'name': collection.name},
    )
    db.commit()
    return _to_collection(principal, company_id, collection.id)


@router.get('/collections/{collection_id}')
def collection_detail(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    try:
        detail = get_collection_detail(
            db,
            company_id=company_id,
            collection_id=collection_id,
            picker_search=request.query_params.get('q', ''),
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return request.app.state.templates.TemplateResponse(
        'harvest_collection_detail.html',
        {
            'request': request,
            'principal': principal,
            'search': request.query_params.get('q', ''),
            'currency': settings.currency_label,
            **detail,
        },
    )


@router.post('/collections/{collection_id}/pickers')
async def add_picker_submit(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        add_picker(
            db,
            company_id=company_id,
            collection_id=collection_id,
            picker_number=form_int(form, 'picker_number', label='Picker number'),
            picker_name=form_str(form, 'picker_name'),
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _to_collection(principal, company_id, collection_id)


@router.post('/collections/{collection_id}/pickers/{picker_id}/weigh')
async def weigh_submit(
    collection_id: int,
    picker_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        add_weigh_entry(
            db,
            company_id=company_id,
            picker_id=picker_id,
            weight_kg=form_decimal(form, 'weight_kg', label='Weight'),
            trip_number=form_int(form, 'trip_number', label='Trip', required=False),
            recorded_by_principal_id=principal.id,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _to_collection(principal, company_id, collection_id)


@router.post('/collections/{collection_id}/pickers/{picker_id}/pay')
def pay_picker_submit(
    collection_id: int,
    picker_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    try:
        mark_picker_paid(db, company_id=company_id, picker_id=picker_id, paid_by_principal_id=principal.id)
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    db.commit()
    return _to_collection(principal, company_id, collection_id)


@router.post('/collections/{collection_id}/pay')
async def pay_selected_submit(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    picker_ids = form_int_list(form, 'picker_ids')
    try:
        batch = mark_pickers_paid_in_batch(
            db,
            company_id=company_id,
            collection_id=collection_id,
            picker_ids=picker_ids,
            paid_by_principal_id=principal.id,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='HARVEST_PICKERS_PAID',
        company_id=company_id,
        target_type='harvest_collection',
        target_id=collection_id,
        ip=get_client_ip(request),
        metadata={'batch_id': batch.id, 'total': str(batch.total_amount)},
    )
    db.commit()
    return _to_collection(principal, company_id, collection_id)


@router.post('/collections/{collection_id}/cash')
async def register_cash_submit(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        pool = register_harvest_cash(
            db,
            company_id=company_id,
            collection_id=collection_id,
            amount=form_decimal(form, 'amount', label='Amount'),
            source=form_str(form, 'source', 'cash'),
            received_by=form_str(form, 'received_by') or principal.display_name,
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='HARVEST_CASH_REGISTERED',
        company_id=company_id,
        target_type='harvest_collection',
        target_id=collection_id,
        ip=get_client_ip(request),
        metadata={'cash_received': str(pool.cash_received), 'source': pool.source},
    )
    db.commit()
    return _to_collection(principal, company_id, collection_id)


@router.post('/wallet/top-up')
async def wallet_top_up_submit(
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    project_id = form_int(form, 'project_id', label='Project')
    try:
        project = get_project(db, company_id=company_id, project_id=project_id)
        if not settings.uses_wallet(project.crop_type):
            raise ValueError('This crop is not paid from the harvest wallet')
        wallet = top_up_wallet(
            db,
            company_id=company_id,
            project_id=project.id,
            crop_type=project.crop_type,
            amount=form_decimal(form, 'amount', label='Amount'),
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='HARVEST_WALLET_TOP_UP',
        company_id=company_id,
        target_type='harvest_wallet',
        target_id=wallet.id,
        ip=get_client_ip(request),
        metadata={'balance': str(wallet.current_balance)},
    )
    db.commit()
    return RedirectResponse(company_path(f'/harvest?project_id={project_id}', principal, company_id), status_code=303)


@router.post('/collections/{collection_id}/buyer')
async def buyer_price_submit(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        collection = set_buyer_price(
            db,
            company_id=company_id,
            collection_id=collection_id,
            price_per_kg_buyer=form_decimal(form, 'price_per_kg_buyer', label='Buyer price'),
            mark_buyer_paid=form_bool(form, 'mark_buyer_paid'),
        )
    except (ValueError, PermissionError) as exc:
        _raise_for(exc)
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='HARVEST_BUYER_PRICE_SET',
        company_id=company_id,
        target_type='harvest_collection',
        target_id=collection.id,
        ip=get_client_ip(request),
        metadata={'status': collection.status.value, 'revenue': str(collection.total_revenue)},
    )
    db.commit()
    return _to_collection(principal, company_id, collection_id)


@router.post('/collections/{collection_id}/refresh-status')
def refresh_status_submit(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(harvest_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    try:
        refresh_collection_status(db, company_id=company_id, collection_id=collection_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return _to_collection(principal, company_id, collection_id)
