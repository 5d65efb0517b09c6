from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from farmvault.config import settings
from farmvault.models import AuditLog, AuthEvent, Principal


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: str,
    company_id: int | None = None,
    target_type: str | None = None,
    target_id: int | None = None,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_principal_id=actor_principal_id,
            company_id=company_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            ip=ip,
            meta=metadata or {},
        )
    )


def list_audit_logs(
    db: Session,
    *,
    company_id: int | None = None,
    action: str | None = None,
    limit: int | None = None,
) -> list[dict]:
    stmt = (
        select(AuditLog, Principal.username)
        .outerjoin(Principal, Principal.id == AuditLog.actor_principal_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit or settings.audit_log_limit)
    )
    if company_id is not None:
        stmt = stmt.where(AuditLog.company_id == company_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)

    return [
        {
            'id': entry.id,
            'created_at': entry.created_at,
            'action': entry.action,
            'actor': username or 'system',
            'company_id': entry.company_id,
            'target_type': entry.target_type,
            'target_id': entry.target_id,
            'ip': entry.ip,
            'metadata': entry.meta or {},
        }
        for entry, username in db.execute(stmt).all()
    ]
