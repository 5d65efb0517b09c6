from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, is_admin_role, require_role
from farmvault.db import get_db
from farmvault.dependencies import company_path, resolve_company_id
from farmvault.forms import (
    form_bool,
    form_date,
    form_decimal,
    form_enum,
    form_int,
    form_optional_str,
    form_str,
)
from farmvault.models import InventoryCategory, NeededItemStatus, PackagingType
from farmvault.security.csrf import verify_csrf
from farmvault.services.inventory_service import (
    add_needed_item,
    create_item,
    deduct_item,
    delete_item,
    is_low_stock,
    list_items,
    list_needed_items,
    list_purchases,
    list_usage,
    restock_item,
    set_needed_item_status,
)
from farmvault.services.project_service import list_projects

router = APIRouter(prefix='/inventory', tags=['inventory'])
inventory_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER)
admin_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN)


def _back(principal: Principal, company_id: int) -> RedirectResponse:
    return RedirectResponse(company_path('/inventory', principal, company_id), status_code=303)


@router.get('')
def inventory_page(
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    category_raw = request.query_params.get('category', '').strip().upper()
    search = request.query_params.get('q', '').strip()
    try:
        category = InventoryCategory(category_raw) if category_raw else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid category filter') from exc

    items = list_items(db, company_id=company_id, category=category, search=search)
    return request.app.state.templates.TemplateResponse(
        'inventory.html',
        {
            'request': request,
            'principal': principal,
            'rows': [{'item': item, 'low_stock': is_low_stock(item)} for item in items],
            'needed_items': list_needed_items(db, company_id=company_id),
            'recent_usage': list_usage(db, company_id=company_id)[:25],
            'recent_purchases': list_purchases(db, company_id=company_id)[:25],
            'projects': list_projects(db, company_id=company_id),
            'categories': list(InventoryCategory),
            'needed_statuses': list(NeededItemStatus),
            'selected_category': category,
            'search': search,
            'can_manage': is_admin_role(principal.role),
            'today': date.today(),
        },
    )


@router.post('/items')
async def create_item_submit(
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        create_item(
            db,
            company_id=company_id,
            name=form_str(form, 'name'),
            category=form_enum(form, 'category', InventoryCategory),
            quantity=form_decimal(form, 'quantity', label='Quantity', required=False) or Decimal('0'),
            unit=form_str(form, 'unit'),
            price_per_unit=form_decimal(form, 'price_per_unit', label='Price per unit', required=False),
            packaging_type=form_enum(form, 'packaging_type', PackagingType, required=False),
            units_per_box=form_int(form, 'units_per_box', label='Units per box', required=False),
            fuel_type=form_optional_str(form, 'fuel_type'),
            containers=form_int(form, 'containers', required=False),
            litres=form_decimal(form, 'litres', required=False),
            bags=form_int(form, 'bags', required=False),
            kgs=form_decimal(form, 'kgs', required=False),
            box_size=form_optional_str(form, 'box_size'),
            crop_types=[str(value) for value in form.getlist('crop_types') if str(value).strip()],
            supplier_name=form_optional_str(form, 'supplier_name'),
            pickup_date=form_date(form, 'pickup_date', label='Pickup date'),
            min_threshold=form_decimal(form, 'min_threshold', required=False),
            count_as_expense=form_bool(form, 'count_as_expense'),
            project_id=form_int(form, 'project_id', required=False),
            actor_principal_id=principal.id,
        )
    except (ValueError, PermissionError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return _back(principal, company_id)


@router.post('/items/{item_id}/restock')
async def restock_item_submit(
    item_id: int,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        restock_item(
            db,
            company_id=company_id,
            item_id=item_id,
            quantity_added=form_decimal(form, 'quantity_added', label='Quantity'),
            total_cost=form_decimal(form, 'total_cost', label='Total cost'),
            purchase_date=form_date(form, 'purchase_date', default=date.today()),
            project_id=form_int(form, 'project_id', required=False),
            actor_principal_id=principal.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    db.commit()
    return _back(principal, company_id)


@router.post('/items/{item_id}/deduct')
async def deduct_item_submit(
    item_id: int,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        deduct_item(
            db,
            company_id=company_id,
            item_id=item_id,
            quantity=form_decimal(form, 'quantity', label='Quantity'),
            usage_date=form_date(form, 'usage_date', default=date.today()),
            project_id=form_int(form, 'project_id', required=False),
            reason=form_str(form, 'reason'),
            actor_principal_id=principal.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    db.commit()
    return _back(principal, company_id)


@router.post('/items/{item_id}/delete')
def delete_item_submit(
    item_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    try:
        delete_item(db, company_id=company_id, item_id=item_id, actor_principal_id=principal.id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    db.commit()
    return _back(principal, company_id)


@router.post('/needed')
async def add_needed_submit(
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        add_needed_item(
            db,
            company_id=company_id,
            item_name=form_str(form, 'item_name'),
            category=form_enum(form, 'category', InventoryCategory),
            quantity=form_decimal(form, 'quantity', label='Quantity'),
            unit=form_str(form, 'unit'),
            project_id=form_int(form, 'project_id', required=False),
            actor_principal_id=principal.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return _back(principal, company_id)


@router.post('/needed/{needed_item_id}/status')
async def needed_status_submit(
    needed_item_id: int,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        set_needed_item_status(
            db,
            company_id=company_id,
            needed_item_id=needed_item_id,
            status=form_enum(form, 'status', NeededItemStatus),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return _back(principal, company_id)
