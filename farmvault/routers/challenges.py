from __future__ import annotations

from itertools import zip_longest

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, require_role
from farmvault.db import get_db
from farmvault.dependencies import company_path, get_client_ip, pick_project, resolve_company_id
from farmvault.forms import form_enum, form_int, form_optional_str, form_str
from farmvault.models import ChallengeSeverity, ChallengeStatus, ChallengeType, InventoryCategory
from farmvault.security.csrf import verify_csrf
from farmvault.services.audit_service import log_audit
from farmvault.services.inventory_service import list_items
from farmvault.services.season_challenge_service import (
    count_by_status,
    list_challenges,
    record_resolution,
    report_challenge,
    update_challenge_status,
)

router = APIRouter(prefix='/challenges', tags=['challenges'])
challenge_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER)


def _back(principal: Principal, company_id: int, project_id: int) -> RedirectResponse:
    return RedirectResponse(company_path(f'/challenges?project_id={project_id}', principal, company_id), status_code=303)


def _items_used_from_form(form) -> list[dict]:
    """Rows arrive as parallel lists; blank rows are dropped."""
    needs_purchase = {str(value) for value in form.getlist('needs_purchase')}
    rows = zip_longest(
        form.getlist('item_name'),
        form.getlist('inventory_item_id'),
        form.getlist('category'),
        form.getlist('quantity'),
        form.getlist('unit'),
        fillvalue='',
    )
    items = []
    for index, (name, item_id, category, quantity, unit) in enumerate(rows):
        name, item_id, quantity = str(name).strip(), str(item_id).strip(), str(quantity).strip()
        if not name and not item_id:
            continue
        if item_id and not item_id.isdigit():
            raise HTTPException(status_code=400, detail='Invalid inventory item')
        items.append(
            {
                'item_name': name,
                'inventory_item_id': int(item_id) if item_id else None,
                'category': str(category).strip() or None,
                'quantity': quantity or '0',
                'unit': str(unit).strip(),
                'needs_purchase': str(index) in needs_purchase,
            }
        )
    return items


@router.get('')
def challenges_page(
    request: Request,
    principal: Principal = Depends(challenge_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    projects, project = pick_project(db, request, company_id)
    challenges = list_challenges(db, company_id=company_id, project_id=project.id) if project else []
    return request.app.state.templates.TemplateResponse(
        'challenges.html',
        {
            'request': request,
            'principal': principal,
            'projects': projects,
            'project': project,
            'challenges': challenges,
            'counts': count_by_status(challenges),
            'challenge_types': list(ChallengeType),
            'severities': list(ChallengeSeverity),
            'statuses': list(ChallengeStatus),
            'categories': list(InventoryCategory),
            'items': list_items(db, company_id=company_id),
        },
    )


@router.post('')
async def report_challenge_submit(
    request: Request,
    principal: Principal = Depends(challenge_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    project_id = form_int(form, 'project_id', label='Project')
    try:
        challenge = report_challenge(
            db,
            company_id=company_id,
            project_id=project_id,
            title=form_str(form, 'title'),
            description=form_str(form, 'description'),
            challenge_type=form_enum(form, 'challenge_type', ChallengeType, required=False),
            severity=form_enum(form, 'severity', ChallengeSeverity, required=False),
            created_by_principal_id=principal.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CHALLENGE_REPORTED',
        company_id=company_id,
        target_type='season_challenge',
        target_id=challenge.id,
        ip=get_client_ip(request),
        metadata={'title': challenge.title},
    )
    db.commit()
    return _back(principal, company_id, project_id)


@router.post('/{challenge_id}/status')
async def challenge_status_submit(
    challenge_id: int,
    request: Request,
    principal: Principal = Depends(challenge_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        challenge = update_challenge_status(
            db,
            company_id=company_id,
            challenge_id=challenge_id,
            status=form_enum(form, 'status', ChallengeStatus),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='CHALLENGE_STATUS_CHANGED',
        company_id=company_id,
        target_type='season_challenge',
        target_id=challenge.id,
        ip=get_client_ip(request),
        metadata={'status': challenge.status.value},
    )
    db.commit()
    return _back(principal, company_id, challenge.project_id)


@router.post('/{challenge_id}/resolution')
async def challenge_resolution_submit(
    challenge_id: int,
    request: Request,
    principal: Principal = Depends(challenge_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    company_id = resolve_company_id(request, principal)
    form = await request.form()
    try:
        record_resolution(
            db,
            company_id=company_id,
            challenge_id=challenge_id,
            what_was_done=form_optional_str(form, 'what_was_done'),
            items_used=_items_used_from_form(form),
            plan2_if_fails=form_optional_str(form, 'plan2_if_fails'),
            actor_principal_id=principal.id,
        )
    except (ValueError, PermissionError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    project_id = form_int(form, 'project_id', label='Project')
    db.commit()
    return _back(principal, company_id, project_id)
