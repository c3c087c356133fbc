from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from workforce.models.audit import AuditLog
from workforce.models.enums import ActorType, AuditSeverity, AuditStatus


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def log_event(
    db: Session,
    *,
    event_type: str,
    action: str,
    actor_type: ActorType = ActorType.USER,
    actor_id: Optional[str | int] = None,
    actor_email: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str | int] = None,
    details: Optional[dict] = None,
    request: Optional[Request] = None,
    status: AuditStatus = AuditStatus.SUCCESS,
    severity: AuditSeverity = AuditSeverity.LOW,
) -> AuditLog:
    entry = AuditLog(
        event_type=event_type,
        action=action,
        actor_type=actor_type,
        actor_id=str(actor_id) if actor_id is not None else None,
        actor_email=actor_email,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        details=details,
        ip_address=client_ip(request),
        user_agent=(request.headers.get("user-agent") or "")[:255] if request is not None else None,
        status=status,
        severity=severity,
    )
    db.add(entry)
    db.flush()
    return entry


def query_logs(
    db: Session,
    *,
    event_type: Optional[str] = None,
    actor_id: Optional[str] = None,
    target_id: Optional[str] = None,
    severity: Optional[AuditSeverity] = None,
    status: Optional[AuditStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    search: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> tuple[list[AuditLog], int]:
    query = db.query(AuditLog)
    if event_type:
        query = query.filter(AuditLog.event_type == event_type)
    if actor_id:
        query = query.filter(AuditLog.actor_id == actor_id)
    if target_id:
        query = query.filter(AuditLog.target_id == target_id)
    if severity:
        query = query.filter(AuditLog.severity == severity)
    if status:
        query = query.filter(AuditLog.status == status)
    if start:
        query = query.filter(AuditLog.created_at >= start)
    if end:
        query = query.filter(AuditLog.created_at <= end)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(AuditLog.action.ilike(pattern), AuditLog.actor_email.ilike(pattern)))

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit).all()
    return logs, total
