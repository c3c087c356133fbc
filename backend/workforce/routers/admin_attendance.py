"""Org-wide attendance views for admins: daily list, stats, manual entry and CSV export."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from workforce.core.deps import get_write_through, require_permission
from workforce.core.errors import NotFound
from workforce.core.settings import settings
from workforce.db.session import get_db
from workforce.models.admin import Admin
from workforce.models.attendance import Attendance
from workforce.models.enums import AttendanceStatus
from workforce.schemas.attendance import AttendanceAdminRead, DashboardStats, ManualEntryRequest
from workforce.schemas.base import Envelope
from workforce.services import attendance as attendance_service
from workforce.services import realtime
from workforce.services.broadcast import BroadcastStore
from workforce.services.users import get_user
from workforce.services.write_through import WriteThrough

router = APIRouter(prefix="/api/admin/attendance", tags=["admin-attendance"])

_view = require_permission("view_attendance")
_manage = require_permission("manage_users")


def _org(admin: Admin) -> str:
    return admin.org_id or settings.default_org_id


def _notify_user(broadcast: BroadcastStore, record: Attendance) -> None:
    realtime.publish_notification(
        broadcast,
        record.user.uid,
        {
            "type": "attendance_updated",
            "title": "Attendance updated",
            "message": f"Your attendance for {record.work_date.isoformat()} was updated by an administrator.",
            "recordId": record.id,
        },
    )


def _admin_read(record: Attendance) -> AttendanceAdminRead:
    user = record.user
    return AttendanceAdminRead.model_validate(record).model_copy(
        update={
            "user_uid": user.uid,
            "user_name": user.display_name,
            "user_email": user.email,
            "department": user.department,
        }
    )


@router.get("", response_model=Envelope[list[AttendanceAdminRead]])
def list_attendance(
    work_date: Optional[date] = Query(None, alias="date"),
    status: Optional[AttendanceStatus] = Query(None),
    department: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    admin: Admin = Depends(_view),
) -> Envelope:
    if work_date is None:
        work_date = attendance_service.work_date_for(datetime.now(timezone.utc))
    records = attendance_service.org_attendance(
        db, org_id=_org(admin), work_date=work_date, status=status, department=department
    )
    return Envelope(data=[_admin_read(record) for record in records])


@router.get("/stats", response_model=Envelope[DashboardStats])
def attendance_stats(
    db: Session = Depends(get_db),
    admin: Admin = Depends(_view),
) -> Envelope:
    return Envelope(data=DashboardStats.model_validate(attendance_service.dashboard_stats(db, org_id=_org(admin))))


@router.get("/export")
def export_attendance(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    user_id: Optional[int] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_permission("access_reports")),
) -> Response:
    content = attendance_service.export_csv(
        db, org_id=_org(admin), from_date=from_date, to_date=to_date, user_id=user_id
    )
    filename = f"attendance-{(to_date or from_date or 'all')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{record_id}", response_model=Envelope[AttendanceAdminRead])
def get_attendance(
    record_id: int,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_view),
) -> Envelope:
    record = attendance_service.get_record(db, record_id)
    if record.org_id != _org(admin):
        raise NotFound("Attendance record not found")
    return Envelope(data=_admin_read(record))


@router.post("/manual", response_model=Envelope[AttendanceAdminRead], status_code=201)
def manual_entry(
    request: Request,
    payload: ManualEntryRequest,
    db: Session = Depends(get_db),
    coordinator: WriteThrough = Depends(get_write_through),
    admin: Admin = Depends(_manage),
) -> Envelope:
    user = get_user(db, payload.user_id)
    if attendance_service.org_for(user) != _org(admin):
        raise NotFound("User not found")

    record = coordinator.execute(
        lambda session: attendance_service.manual_entry(
            session,
            user=user,
            work_date=payload.work_date,
            check_in_at=payload.check_in_at,
            check_out_at=payload.check_out_at,
            break_minutes=payload.break_minutes,
            notes=payload.notes,
            admin_id=admin.id,
            admin_email=admin.email,
            request=request,
        ),
        *attendance_service.attendance_mirrors(db, user, "manual_entry"),
        _notify_user,
        operation="attendance.manual_entry",
    )
    return Envelope(data=_admin_read(record))
