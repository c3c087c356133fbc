from __future__ import annotations

from datetime import datetime
from typing import Optional

from workforce.models.enums import ActorType, AuditSeverity, AuditStatus
from workforce.schemas.base import ApiModel, Pagination


class AuditLogRead(ApiModel):
    id: int
    event_type: str
    actor_type: ActorType
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    action: str
    details: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: AuditStatus
    severity: AuditSeverity
    created_at: datetime


class AuditLogPage(ApiModel):
    logs: list[AuditLogRead]
    pagination: Pagination
