from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce.db.base import Base, IDMixin, TimestampMixin, value_enum
from workforce.models.enums import UserStatus


class User(IDMixin, TimestampMixin, Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    position: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    org_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[UserStatus] = mapped_column(
        value_enum(UserStatus, "user_status"), default=UserStatus.ACTIVE, nullable=False, index=True
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, server_default="false")
    email_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Per-user schedule; settings provide the fallbacks.
    schedule_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    schedule_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    work_days: Mapped[Optional[list[int]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )

    reference_face: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_face_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    attendance_records: Mapped[List["Attendance"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]
