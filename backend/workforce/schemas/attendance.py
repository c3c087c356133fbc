from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from workforce.models.enums import AttendanceStatus, BreakType, CheckInMethod
from workforce.schemas.base import ApiModel


class Location(ApiModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None
    address: Optional[str] = Field(default=None, max_length=500)


class CheckInRequest(ApiModel):
    location: Optional[Location] = None
    method: CheckInMethod = CheckInMethod.API


class CheckOutRequest(ApiModel):
    location: Optional[Location] = None


class BreakRequest(ApiModel):
    action: str
    type: BreakType = BreakType.SHORT


class BreakRead(ApiModel):
    type: BreakType
    start_at: datetime
    end_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None


class AttendanceRead(ApiModel):
    id: int
    work_date: date
    status: AttendanceStatus
    check_in_at: datetime
    check_in_method: CheckInMethod
    check_in_location: Optional[dict] = None
    check_out_at: Optional[datetime] = None
    check_out_location: Optional[dict] = None
    is_late: bool
    late_minutes: int
    is_early_out: bool
    early_out_minutes: int
    total_minutes: int
    break_minutes: int
    work_minutes: int
    overtime_minutes: int
    is_manual: bool
    notes: Optional[str] = None
    breaks: list[BreakRead] = []


class AttendanceAdminRead(AttendanceRead):
    user_id: int
    user_uid: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    department: Optional[str] = None


class AttendanceStatusRead(ApiModel):
    status: AttendanceStatus
    checked_in: bool
    on_break: bool = False
    current_break_start: Optional[datetime] = None
    record: Optional[AttendanceRead] = None


class AttendanceHistory(ApiModel):
    records: list[AttendanceRead]
    total: int
    limit: int
    skip: int
    has_more: bool


class WeekdayBucket(ApiModel):
    present: int
    late: int
    work_minutes: int


class AttendanceAnalytics(ApiModel):
    period_days: int
    present_days: int
    late_days: int
    on_time_rate: float
    average_work_minutes: int
    total_work_minutes: int
    total_overtime_minutes: int
    total_break_minutes: int
    average_check_in: Optional[str] = None
    by_weekday: dict[str, WeekdayBucket]


class DashboardStats(ApiModel):
    date: str
    total_users: int
    total_present: int
    checked_in: int
    on_break: int
    checked_out: int
    total_late: int
    absent: int


class ManualEntryRequest(ApiModel):
    user_id: int
    work_date: date
    check_in_at: datetime
    check_out_at: Optional[datetime] = None
    break_minutes: int = Field(default=0, ge=0, le=24 * 60)
    notes: Optional[str] = Field(default=None, max_length=1000)
