from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce.db.base import Base, IDMixin, TimestampMixin, value_enum
from workforce.models.enums import AdminRole, AdminStatus


class Admin(IDMixin, TimestampMixin, Base):
    __tablename__ = "admins"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[AdminRole] = mapped_column(
        value_enum(AdminRole, "admin_role"), default=AdminRole.ADMIN, nullable=False, index=True
    )
    status: Mapped[AdminStatus] = mapped_column(
        value_enum(AdminStatus, "admin_status"), default=AdminStatus.ACTIVE, nullable=False
    )
    org_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    totp_secret: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    totp_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, server_default="false")
    backup_codes_hash: Mapped[Optional[list]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )

    sessions: Mapped[List["AdminSession"]] = relationship(back_populates="admin", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == AdminStatus.ACTIVE


class AdminSession(IDMixin, TimestampMixin, Base):
    """One refresh token and the access token currently paired with it."""

    __tablename__ = "admin_sessions"

    admin_id: Mapped[int] = mapped_column(ForeignKey("admins.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    access_jti: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    device_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    admin: Mapped[Admin] = relationship(back_populates="sessions")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None
