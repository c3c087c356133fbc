from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from workforce.core.deps import require_permission
from workforce.db.session import get_db
from workforce.models.admin import Admin
from workforce.models.enums import AuditSeverity, AuditStatus
from workforce.schemas.audit import AuditLogPage, AuditLogRead
from workforce.schemas.base import Envelope, page_info
from workforce.services.audit import query_logs

router = APIRouter(prefix="/api/admin/audit-logs", tags=["admin-audit"])


@router.get("", response_model=Envelope[AuditLogPage])
def list_audit_logs(
    event_type: Optional[str] = Query(None, alias="eventType"),
    actor_id: Optional[str] = Query(None, alias="actorId"),
    target_id: Optional[str] = Query(None, alias="targetId"),
    severity: Optional[AuditSeverity] = Query(None),
    status: Optional[AuditStatus] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _admin: Admin = Depends(require_permission("view_audit_logs")),
) -> Envelope:
    logs, total = query_logs(
        db,
        event_type=event_type,
        actor_id=actor_id,
        target_id=target_id,
        severity=severity,
        status=status,
        start=start_date,
        end=end_date,
        search=search,
        limit=limit,
        skip=skip,
    )
    return Envelope(
        data=AuditLogPage(
            logs=[AuditLogRead.model_validate(log) for log in logs],
            pagination=page_info(total=total, limit=limit, skip=skip, returned=len(logs)),
        )
    )
