from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce.db.base import Base, IDMixin, TimestampMixin, value_enum
from workforce.models.enums import AttendanceStatus, BreakType, CheckInMethod


class Attendance(IDMixin, TimestampMixin, Base):
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("user_id", "work_date", name="uq_attendance_user_work_date"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        value_enum(AttendanceStatus, "attendance_status"),
        nullable=False,
        default=AttendanceStatus.CHECKED_IN,
        index=True,
    )

    check_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_in_location: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    check_in_method: Mapped[CheckInMethod] = mapped_column(
        value_enum(CheckInMethod, "check_in_method"), nullable=False, default=CheckInMethod.API
    )
    check_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_location: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    is_late: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    late_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_early_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    early_out_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    break_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    work_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overtime_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(back_populates="attendance_records")
    breaks: Mapped[List["AttendanceBreak"]] = relationship(
        back_populates="attendance",
        cascade="all, delete-orphan",
        order_by="AttendanceBreak.start_at",
    )

    @property
    def open_break(self) -> Optional["AttendanceBreak"]:
        for item in reversed(self.breaks):
            if item.end_at is None:
                return item
        return None


class AttendanceBreak(IDMixin, Base):
    __tablename__ = "attendance_breaks"

    attendance_id: Mapped[int] = mapped_column(
        ForeignKey("attendance.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[BreakType] = mapped_column(value_enum(BreakType, "break_type"), nullable=False, default=BreakType.SHORT)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    attendance: Mapped[Attendance] = relationship(back_populates="breaks")
