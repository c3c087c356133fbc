from __future__ import annotations

from typing import Optional

from sqlalchemy import JSON, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from workforce.db.base import Base, CreatedAtMixin, IDMixin, value_enum
from workforce.models.enums import ActorType, AuditSeverity, AuditStatus


class AuditLogImmutableError(RuntimeError):
    pass


class AuditLog(IDMixin, CreatedAtMixin, Base):
    """Append-only record of an actor action."""

    __tablename__ = "audit_logs"

    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    actor_type: Mapped[ActorType] = mapped_column(
        value_enum(ActorType, "audit_actor_type"), nullable=False, default=ActorType.USER
    )
    actor_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    actor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    target_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    target_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[AuditStatus] = mapped_column(
        value_enum(AuditStatus, "audit_status"), nullable=False, default=AuditStatus.SUCCESS, index=True
    )
    severity: Mapped[AuditSeverity] = mapped_column(
        value_enum(AuditSeverity, "audit_severity"), nullable=False, default=AuditSeverity.LOW, index=True
    )


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"audit log {target.id} cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target: AuditLog) -> None:
    raise AuditLogImmutableError(f"audit log {target.id} cannot be deleted")
