"""Attendance state machine and reporting.

Per user per work date: none -> checkedIn -> (onBreak <-> checkedIn) -> checkedOut.
Functions here only touch the primary store and raise ``ServiceError``
subclasses on invalid transitions; callers wrap them in ``WriteThrough``.
"""

from __future__ import annotations

import csv
import io
import math
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from fastapi import Request
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workforce.core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from workforce.core.observability import attendance_actions_total
from workforce.core.settings import settings
from workforce.db.base import as_utc
from workforce.models.attendance import Attendance, AttendanceBreak
from workforce.models.enums import (
    ActorType,
    AttendanceStatus,
    AuditSeverity,
    AuditStatus,
    BreakType,
    CheckInMethod,
    UserStatus,
)
from workforce.models.user import User
from workforce.services import realtime
from workforce.services.audit import log_event
from workforce.services.broadcast import BroadcastStore

OPEN_STATUSES = (AttendanceStatus.CHECKED_IN, AttendanceStatus.ON_BREAK)
EARTH_RADIUS_METERS = 6_371_000


def _tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def work_date_for(moment: datetime) -> date:
    return as_utc(moment).astimezone(_tz()).date()


def org_for(user: User) -> str:
    return user.org_id or settings.default_org_id


def parse_hhmm(value: Optional[str], fallback: str) -> time:
    raw = value or fallback
    try:
        hours, minutes = raw.split(":", 1)
        return time(int(hours), int(minutes))
    except (ValueError, TypeError):
        hours, minutes = fallback.split(":", 1)
        return time(int(hours), int(minutes))


def _shift_bound(work_date: date, at: time) -> datetime:
    return datetime.combine(work_date, at, tzinfo=_tz()).astimezone(timezone.utc)


def _whole_minutes(delta: timedelta) -> int:
    return math.floor(delta.total_seconds() / 60)


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine great-circle distance."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# ── Reads ───────────────────────────────────────────────────────────────


def get_today_record(db: Session, *, user_id: int, now: Optional[datetime] = None) -> Optional[Attendance]:
    return (
        db.query(Attendance)
        .filter(Attendance.user_id == user_id, Attendance.work_date == work_date_for(_now(now)))
        .first()
    )


def get_open_record(db: Session, *, user_id: int) -> Optional[Attendance]:
    return (
        db.query(Attendance)
        .filter(Attendance.user_id == user_id, Attendance.status.in_(OPEN_STATUSES))
        .order_by(Attendance.check_in_at.desc())
        .first()
    )


def current_status(db: Session, *, user: User, now: Optional[datetime] = None) -> dict:
    record = get_today_record(db, user_id=user.id, now=now)
    if record is None:
        return {"status": AttendanceStatus.NONE, "checked_in": False, "on_break": False, "record": None}
    open_break = record.open_break
    return {
        "status": record.status,
        "checked_in": record.status in OPEN_STATUSES,
        "on_break": record.status == AttendanceStatus.ON_BREAK,
        "current_break_start": open_break.start_at if open_break else None,
        "record": record,
    }


# ── State transitions ───────────────────────────────────────────────────


def enforce_geofence(
    db: Session,
    *,
    user: User,
    location: Optional[dict],
    request: Optional[Request] = None,
) -> Optional[float]:
    """Reject check-ins outside the configured radius.

    Runs after the state checks in ``check_in``. The rejection is audited and
    committed on its own because the check-in itself never reaches the
    primary store.
    """
    if not settings.geofence_enabled:
        return None
    if not location or location.get("latitude") is None or location.get("longitude") is None:
        raise ValidationFailed("Location is required for check-in")

    distance = distance_meters(
        float(location["latitude"]),
        float(location["longitude"]),
        settings.geofence_latitude,
        settings.geofence_longitude,
    )
    if distance <= settings.geofence_radius_meters:
        return distance

    log_event(
        db,
        event_type="attendance.geofence_violation",
        action="Check-in rejected outside geofence",
        actor_type=ActorType.USER,
        actor_id=user.uid,
        actor_email=user.email,
        target_type="attendance",
        details={"distance": round(distance), "radius": settings.geofence_radius_meters},
        request=request,
        status=AuditStatus.FAILURE,
        severity=AuditSeverity.MEDIUM,
    )
    db.commit()
    raise PermissionDenied(
        "You are outside the allowed check-in area",
        extra={"distance": round(distance), "allowedRadius": settings.geofence_radius_meters},
    )


def check_in(
    db: Session,
    *,
    user: User,
    location: Optional[dict] = None,
    method: CheckInMethod = CheckInMethod.API,
    now: Optional[datetime] = None,
    request: Optional[Request] = None,
) -> Attendance:
    if user.status != UserStatus.ACTIVE:
        raise PermissionDenied("User account is not active")

    moment = _now(now)
    work_date = work_date_for(moment)
    existing = (
        db.query(Attendance)
        .filter(Attendance.user_id == user.id, Attendance.work_date == work_date)
        .first()
    )
    if existing is not None:
        raise Conflict("Already checked in today", extra={"status": existing.status.value})
    distance = enforce_geofence(db, user=user, location=location, request=request)

    scheduled_start = _shift_bound(work_date, parse_hhmm(user.schedule_start, settings.default_shift_start))
    late_threshold = scheduled_start + timedelta(minutes=settings.late_grace_minutes)
    is_late = moment > late_threshold

    record = Attendance(
        user_id=user.id,
        org_id=org_for(user),
        work_date=work_date,
        status=AttendanceStatus.CHECKED_IN,
        check_in_at=moment,
        check_in_location=location,
        check_in_method=method,
        is_late=is_late,
        late_minutes=_whole_minutes(moment - scheduled_start) if is_late else 0,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent check-in for the same day.
        raise Conflict("Already checked in today") from exc

    log_event(
        db,
        event_type="attendance.check_in",
        action="Checked in late" if is_late else "Checked in",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="attendance",
        target_id=record.id,
        details={
            "method": method.value,
            "isLate": is_late,
            "lateMinutes": record.late_minutes,
            "distance": round(distance) if distance is not None else None,
        },
        request=request,
    )
    attendance_actions_total.labels(action="check_in").inc()
    return record


def _close_break(record: Attendance, moment: datetime) -> AttendanceBreak:
    open_break = record.open_break
    if open_break is None:
        raise Conflict("No active break found")
    open_break.end_at = moment
    open_break.duration_minutes = max(0, _whole_minutes(moment - as_utc(open_break.start_at)))
    record.break_minutes = sum(item.duration_minutes or 0 for item in record.breaks)
    return open_break


def check_out(
    db: Session,
    *,
    user: User,
    location: Optional[dict] = None,
    now: Optional[datetime] = None,
    request: Optional[Request] = None,
) -> Attendance:
    record = get_open_record(db, user_id=user.id)
    if record is None:
        raise Conflict("No active check-in found")

    moment = _now(now)
    if record.status == AttendanceStatus.ON_BREAK and record.open_break is not None:
        _close_break(record, moment)

    check_in_at = as_utc(record.check_in_at)
    total = max(0, _whole_minutes(moment - check_in_at))
    scheduled_end = _shift_bound(record.work_date, parse_hhmm(user.schedule_end, settings.default_shift_end))

    record.check_out_at = moment
    record.check_out_location = location
    record.status = AttendanceStatus.CHECKED_OUT
    record.total_minutes = total
    record.work_minutes = max(0, total - record.break_minutes)
    record.is_early_out = moment < scheduled_end
    record.early_out_minutes = _whole_minutes(scheduled_end - moment) if record.is_early_out else 0
    record.overtime_minutes = 0 if record.is_early_out else max(0, _whole_minutes(moment - scheduled_end))
    db.flush()

    log_event(
        db,
        event_type="attendance.check_out",
        action="Checked out",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="attendance",
        target_id=record.id,
        details={
            "workMinutes": record.work_minutes,
            "breakMinutes": record.break_minutes,
            "overtimeMinutes": record.overtime_minutes,
        },
        request=request,
    )
    attendance_actions_total.labels(action="check_out").inc()
    return record


def start_break(
    db: Session,
    *,
    user: User,
    break_type: BreakType = BreakType.SHORT,
    now: Optional[datetime] = None,
    request: Optional[Request] = None,
) -> Attendance:
    moment = _now(now)
    record = get_today_record(db, user_id=user.id, now=moment)
    if record is None or record.status != AttendanceStatus.CHECKED_IN:
        raise Conflict("No active check-in found")

    record.breaks.append(AttendanceBreak(type=break_type, start_at=moment))
    record.status = AttendanceStatus.ON_BREAK
    db.flush()

    log_event(
        db,
        event_type="attendance.break_start",
        action="Started break",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="attendance",
        target_id=record.id,
        details={"type": break_type.value},
        request=request,
    )
    attendance_actions_total.labels(action="break_start").inc()
    return record


def end_break(
    db: Session,
    *,
    user: User,
    now: Optional[datetime] = None,
    request: Optional[Request] = None,
) -> Attendance:
    moment = _now(now)
    record = get_today_record(db, user_id=user.id, now=moment)
    if record is None or record.status != AttendanceStatus.ON_BREAK or record.open_break is None:
        raise Conflict("No active break found")

    closed = _close_break(record, moment)
    record.status = AttendanceStatus.CHECKED_IN
    db.flush()

    log_event(
        db,
        event_type="attendance.break_end",
        action="Ended break",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="attendance",
        target_id=record.id,
        details={"durationMinutes": closed.duration_minutes, "breakMinutes": record.break_minutes},
        request=request,
    )
    attendance_actions_total.labels(action="break_end").inc()
    return record


def manual_entry(
    db: Session,
    *,
    user: User,
    work_date: date,
    check_in_at: datetime,
    check_out_at: Optional[datetime] = None,
    break_minutes: int = 0,
    notes: Optional[str] = None,
    admin_id: Optional[int] = None,
    admin_email: Optional[str] = None,
    request: Optional[Request] = None,
) -> Attendance:
    """Create or overwrite a user's record for ``work_date``."""
    check_in_at = as_utc(check_in_at)
    check_out_at = as_utc(check_out_at)
    if check_out_at is not None and check_out_at <= check_in_at:
        raise ValidationFailed("Check-out must be after check-in")

    record = (
        db.query(Attendance)
        .filter(Attendance.user_id == user.id, Attendance.work_date == work_date)
        .first()
    )
    created = record is None
    if created and check_out_at is None and get_open_record(db, user_id=user.id) is not None:
        raise Conflict("User already has an open attendance record")
    if record is None:
        record = Attendance(user_id=user.id, org_id=org_for(user), work_date=work_date)
        db.add(record)
    record.breaks.clear()

    scheduled_start = _shift_bound(work_date, parse_hhmm(user.schedule_start, settings.default_shift_start))
    scheduled_end = _shift_bound(work_date, parse_hhmm(user.schedule_end, settings.default_shift_end))
    is_late = check_in_at > scheduled_start + timedelta(minutes=settings.late_grace_minutes)

    record.check_in_at = check_in_at
    record.check_in_method = CheckInMethod.MANUAL
    record.is_late = is_late
    record.late_minutes = _whole_minutes(check_in_at - scheduled_start) if is_late else 0
    record.break_minutes = max(0, break_minutes)
    record.is_manual = True
    record.notes = notes
    if check_out_at is None:
        record.status = AttendanceStatus.CHECKED_IN
        record.check_out_at = None
        record.total_minutes = record.work_minutes = record.overtime_minutes = record.early_out_minutes = 0
        record.is_early_out = False
    else:
        total = _whole_minutes(check_out_at - check_in_at)
        record.status = AttendanceStatus.CHECKED_OUT
        record.check_out_at = check_out_at
        record.total_minutes = total
        record.work_minutes = max(0, total - record.break_minutes)
        record.is_early_out = check_out_at < scheduled_end
        record.early_out_minutes = _whole_minutes(scheduled_end - check_out_at) if record.is_early_out else 0
        record.overtime_minutes = 0 if record.is_early_out else max(0, _whole_minutes(check_out_at - scheduled_end))
    db.flush()

    log_event(
        db,
        event_type="attendance.manual_entry",
        action="Created manual attendance entry" if created else "Overwrote attendance entry",
        actor_type=ActorType.ADMIN,
        actor_id=admin_id,
        actor_email=admin_email,
        target_type="attendance",
        target_id=record.id,
        details={"userId": user.uid, "workDate": work_date.isoformat(), "notes": notes},
        request=request,
        severity=AuditSeverity.MEDIUM,
    )
    return record


# ── Broadcast mirrors ───────────────────────────────────────────────────


def attendance_mirrors(db: Session, user: User, event_type: str) -> tuple[Callable[[BroadcastStore, Attendance], None], ...]:
    org_id = org_for(user)

    def live_status(broadcast: BroadcastStore, record: Attendance) -> None:
        realtime.publish_attendance_status(broadcast, user.uid, record)

    def stats(broadcast: BroadcastStore, record: Attendance) -> None:
        realtime.publish_dashboard_stats(broadcast, org_id, dashboard_stats(db, org_id=org_id))

    def admin_event(broadcast: BroadcastStore, record: Attendance) -> None:
        realtime.publish_admin_event(
            broadcast,
            org_id,
            event_type,
            {"userId": user.uid, "userName": user.display_name, "status": record.status.value},
        )

    return live_status, stats, admin_event


# ── Reporting ───────────────────────────────────────────────────────────


def history(db: Session, *, user_id: int, limit: int = 30, skip: int = 0) -> tuple[list[Attendance], int]:
    query = db.query(Attendance).filter(Attendance.user_id == user_id)
    total = query.count()
    records = query.order_by(Attendance.work_date.desc()).offset(skip).limit(limit).all()
    return records, total


def analytics(db: Session, *, user: User, days: int = 90, now: Optional[datetime] = None) -> dict:
    today = work_date_for(_now(now))
    since = today - timedelta(days=days - 1)
    records = (
        db.query(Attendance)
        .filter(Attendance.user_id == user.id, Attendance.work_date >= since)
        .order_by(Attendance.work_date.asc())
        .all()
    )

    present = len(records)
    late = sum(1 for r in records if r.is_late)
    completed = [r for r in records if r.status == AttendanceStatus.CHECKED_OUT]
    tz = _tz()
    check_in_minutes = [
        as_utc(r.check_in_at).astimezone(tz).hour * 60 + as_utc(r.check_in_at).astimezone(tz).minute
        for r in records
    ]
    average_check_in = None
    if check_in_minutes:
        mean = round(sum(check_in_minutes) / len(check_in_minutes))
        average_check_in = f"{mean // 60:02d}:{mean % 60:02d}"

    by_weekday: dict[str, dict[str, int]] = defaultdict(lambda: {"present": 0, "late": 0, "workMinutes": 0})
    for r in records:
        bucket = by_weekday[r.work_date.strftime("%A")]
        bucket["present"] += 1
        bucket["late"] += int(r.is_late)
        bucket["workMinutes"] += r.work_minutes

    return {
        "period_days": days,
        "present_days": present,
        "late_days": late,
        "on_time_rate": round(((present - late) / present) * 100, 1) if present else 0.0,
        "average_work_minutes": round(sum(r.work_minutes for r in completed) / len(completed)) if completed else 0,
        "total_work_minutes": sum(r.work_minutes for r in records),
        "total_overtime_minutes": sum(r.overtime_minutes for r in records),
        "total_break_minutes": sum(r.break_minutes for r in records),
        "average_check_in": average_check_in,
        "by_weekday": dict(by_weekday),
    }


def _org_users(db: Session, org_id: str):
    query = db.query(User).filter(User.status == UserStatus.ACTIVE)
    if org_id == settings.default_org_id:
        return query.filter(or_(User.org_id == org_id, User.org_id.is_(None)))
    return query.filter(User.org_id == org_id)


def dashboard_stats(db: Session, *, org_id: str, now: Optional[datetime] = None) -> dict:
    work_date = work_date_for(_now(now))
    total_users = _org_users(db, org_id).count()
    rows = (
        db.query(Attendance.status, func.count(Attendance.id))
        .filter(Attendance.org_id == org_id, Attendance.work_date == work_date)
        .group_by(Attendance.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    late = (
        db.query(func.count(Attendance.id))
        .filter(Attendance.org_id == org_id, Attendance.work_date == work_date, Attendance.is_late.is_(True))
        .scalar()
        or 0
    )
    present = sum(by_status.values())
    return {
        "date": work_date.isoformat(),
        "totalUsers": total_users,
        "totalPresent": present,
        "checkedIn": by_status.get(AttendanceStatus.CHECKED_IN, 0),
        "onBreak": by_status.get(AttendanceStatus.ON_BREAK, 0),
        "checkedOut": by_status.get(AttendanceStatus.CHECKED_OUT, 0),
        "totalLate": late,
        "absent": max(0, total_users - present),
    }


def org_attendance(
    db: Session,
    *,
    org_id: str,
    work_date: date,
    status: Optional[AttendanceStatus] = None,
    department: Optional[str] = None,
) -> list[Attendance]:
    query = (
        db.query(Attendance)
        .join(User, Attendance.user_id == User.id)
        .filter(Attendance.org_id == org_id, Attendance.work_date == work_date)
    )
    if status:
        query = query.filter(Attendance.status == status)
    if department:
        query = query.filter(User.department == department)
    return query.order_by(Attendance.check_in_at.asc()).all()


def get_record(db: Session, record_id: int) -> Attendance:
    record = db.get(Attendance, record_id)
    if record is None:
        raise NotFound("Attendance record not found")
    return record


def export_csv(
    db: Session,
    *,
    org_id: str,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    user_id: Optional[int] = None,
) -> str:
    """Generate a CSV string of attendance rows."""
    query = (
        db.query(Attendance, User)
        .join(User, Attendance.user_id == User.id)
        .filter(Attendance.org_id == org_id)
    )
    if user_id:
        query = query.filter(Attendance.user_id == user_id)
    if from_date:
        query = query.filter(Attendance.work_date >= from_date)
    if to_date:
        query = query.filter(Attendance.work_date <= to_date)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "Date", "User ID", "Name", "Email", "Department", "Status", "Check In", "Check Out",
        "Late (min)", "Break (min)", "Work (min)", "Overtime (min)", "Manual",
    ])
    for record, user in query.order_by(Attendance.work_date.desc(), User.email.asc()).all():
        writer.writerow([
            record.work_date.isoformat(),
            user.uid,
            user.name or "",
            user.email,
            user.department or "",
            record.status.value,
            as_utc(record.check_in_at).isoformat() if record.check_in_at else "",
            as_utc(record.check_out_at).isoformat() if record.check_out_at else "",
            record.late_minutes,
            record.break_minutes,
            record.work_minutes,
            record.overtime_minutes,
            "yes" if record.is_manual else "",
        ])
    return output.getvalue()
