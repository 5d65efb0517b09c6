from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from farmvault.auth import Principal, Role, require_role
from farmvault.db import get_db
from farmvault.dependencies import get_client_ip, resolve_company_id
from farmvault.forms import query_int
from farmvault.services.audit_service import log_audit
from farmvault.services.export_service import (
    EXPENSE_HEADERS,
    INVENTORY_HEADERS,
    PICKER_HEADERS,
    WORK_LOG_HEADERS,
    expense_rows,
    inventory_rows,
    picker_rows,
    rows_to_csv,
    safe_csv_filename,
    work_log_rows,
)
from farmvault.services.harvest_collection_service import get_collection, list_pickers, list_weigh_entries
from farmvault.services.harvest_summary_service import trip_counts
from farmvault.services.inventory_service import list_items
from farmvault.services.work_log_service import list_expenses, list_work_logs

router = APIRouter(prefix='/reports', tags=['reports'])
report_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER)
harvest_report_access = require_role(Role.DEVELOPER, Role.COMPANY_ADMIN, Role.MANAGER, Role.BROKER)


def _csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type='text/csv',
        headers={'Content-Disposition': f'attachment; filename={safe_csv_filename(filename)}'},
    )


def _log_export(db: Session, request: Request, principal: Principal, company_id: int, report: str, rows: int) -> None:
    log_audit(
        db,
        actor_principal_id=principal.id,
        action='REPORT_EXPORTED_CSV',
        company_id=company_id,
        ip=get_client_ip(request),
        metadata={'report': report, 'rows': rows},
    )
    db.commit()


@router.get('/inventory.csv')
def export_inventory(
    request: Request,
    principal: Principal = Depends(report_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    rows = inventory_rows(list_items(db, company_id=company_id))
    _log_export(db, request, principal, company_id, 'inventory', len(rows))
    return _csv_response(rows_to_csv(INVENTORY_HEADERS, rows), 'inventory')


@router.get('/collections/{collection_id}/pickers.csv')
def export_pickers(
    collection_id: int,
    request: Request,
    principal: Principal = Depends(harvest_report_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    try:
        collection = get_collection(db, company_id=company_id, collection_id=collection_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    rows = picker_rows(
        list_pickers(db, collection_id=collection.id),
        trip_counts(list_weigh_entries(db, collection_id=collection.id)),
    )
    _log_export(db, request, principal, company_id, 'pickers', len(rows))
    return _csv_response(rows_to_csv(PICKER_HEADERS, rows), f'{collection.name}-pickers')


@router.get('/work-logs.csv')
def export_work_logs(
    request: Request,
    principal: Principal = Depends(report_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    rows = work_log_rows(list_work_logs(db, company_id=company_id, project_id=query_int(request, 'project_id')))
    _log_export(db, request, principal, company_id, 'work_logs', len(rows))
    return _csv_response(rows_to_csv(WORK_LOG_HEADERS, rows), 'work-logs')


@router.get('/expenses.csv')
def export_expenses(
    request: Request,
    principal: Principal = Depends(report_access),
    db: Session = Depends(get_db),
):
    company_id = resolve_company_id(request, principal)
    rows = expense_rows(list_expenses(db, company_id=company_id, project_id=query_int(request, 'project_id')))
    _log_export(db, request, principal, company_id, 'expenses', len(rows))
    return _csv_response(rows_to_csv(EXPENSE_HEADERS, rows), 'expenses')
