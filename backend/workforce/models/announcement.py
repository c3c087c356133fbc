from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce.db.base import Base, CreatedAtMixin, IDMixin, TimestampMixin, utcnow, value_enum
from workforce.models.enums import (
    AnnouncementPriority,
    AnnouncementStatus,
    AnnouncementType,
    TargetAudience,
)


class Announcement(IDMixin, TimestampMixin, Base):
    __tablename__ = "announcements"

    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[AnnouncementType] = mapped_column(
        value_enum(AnnouncementType, "announcement_type"), default=AnnouncementType.GENERAL, nullable=False, index=True
    )
    priority: Mapped[AnnouncementPriority] = mapped_column(
        value_enum(AnnouncementPriority, "announcement_priority"),
        default=AnnouncementPriority.NORMAL,
        nullable=False,
    )
    target_audience: Mapped[TargetAudience] = mapped_column(
        value_enum(TargetAudience, "target_audience"), default=TargetAudience.ALL, nullable=False
    )
    target_department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    status: Mapped[AnnouncementStatus] = mapped_column(
        value_enum(AnnouncementStatus, "announcement_status"),
        default=AnnouncementStatus.PUBLISHED,
        nullable=False,
        index=True,
    )
    publish_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    author_admin_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("admins.id", ondelete="SET NULL"), nullable=True, index=True
    )
    author_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    views: Mapped[List["AnnouncementView"]] = relationship(
        back_populates="announcement", cascade="all, delete-orphan"
    )


class AnnouncementView(IDMixin, CreatedAtMixin, Base):
    __tablename__ = "announcement_views"
    __table_args__ = (
        UniqueConstraint("announcement_id", "user_id", name="uq_announcement_views_announcement_user"),
    )

    announcement_id: Mapped[int] = mapped_column(
        ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    announcement: Mapped[Announcement] = relationship(back_populates="views")
