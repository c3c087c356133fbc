"""Tests for the attendance state machine and its HTTP surface."""
from datetime import datetime, timezone

import pytest

from conftest import user_headers
from workforce.core.errors import Conflict, PermissionDenied, ValidationFailed
from workforce.core.settings import settings
from workforce.models.attendance import Attendance
from workforce.models.audit import AuditLog
from workforce.models.enums import AttendanceStatus, UserStatus
from workforce.services import attendance as attendance_service


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, tzinfo=timezone.utc)


def test_check_in_on_time_within_grace(db, user):
    record = attendance_service.check_in(db, user=user, now=_at(8, 10))
    db.commit()

    assert record.status == AttendanceStatus.CHECKED_IN
    assert record.work_date.isoformat() == "2026-03-10"
    assert record.is_late is False
    assert record.late_minutes == 0


def test_check_in_after_grace_is_late(db, user):
    user.schedule_start = "09:00"
    db.commit()

    record = attendance_service.check_in(db, user=user, now=_at(9, 20))

    assert record.is_late is True
    assert record.late_minutes == 20


def test_full_day_computes_work_break_and_overtime(db, user):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    attendance_service.start_break(db, user=user, now=_at(12, 0))
    attendance_service.end_break(db, user=user, now=_at(12, 30))
    record = attendance_service.check_out(db, user=user, now=_at(18, 0))
    db.commit()

    assert record.status == AttendanceStatus.CHECKED_OUT
    assert record.total_minutes == 600
    assert record.break_minutes == 30
    assert record.work_minutes == 570
    assert record.overtime_minutes == 60
    assert record.is_early_out is False
    assert len(record.breaks) == 1
    assert record.breaks[0].duration_minutes == 30


def test_check_out_while_on_break_closes_the_break(db, user):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    attendance_service.start_break(db, user=user, now=_at(15, 0))
    record = attendance_service.check_out(db, user=user, now=_at(15, 45))

    assert record.status == AttendanceStatus.CHECKED_OUT
    assert record.breaks[0].end_at is not None
    assert record.break_minutes == 45
    assert record.is_early_out is True
    assert record.early_out_minutes == 75


def test_second_check_in_same_day_conflicts(db, user):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    attendance_service.check_out(db, user=user, now=_at(17, 0))
    db.commit()

    with pytest.raises(Conflict) as exc:
        attendance_service.check_in(db, user=user, now=_at(17, 30))
    assert exc.value.message == "Already checked in today"


def test_second_check_out_keeps_the_first_totals(db, user):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    first = attendance_service.check_out(db, user=user, now=_at(18, 0))
    db.commit()
    totals = (first.work_minutes, first.overtime_minutes)

    with pytest.raises(Conflict):
        attendance_service.check_out(db, user=user, now=_at(20, 0))
    db.rollback()

    record = db.query(Attendance).filter(Attendance.user_id == user.id).one()
    assert (record.work_minutes, record.overtime_minutes) == totals == (600, 60)


def test_end_break_without_start_conflicts(db, user):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    with pytest.raises(Conflict) as exc:
        attendance_service.end_break(db, user=user, now=_at(9, 0))
    assert exc.value.message == "No active break found"


def test_start_break_requires_check_in(db, user):
    with pytest.raises(Conflict):
        attendance_service.start_break(db, user=user, now=_at(9, 0))


def test_inactive_user_cannot_check_in(db, user):
    user.status = UserStatus.SUSPENDED
    db.commit()
    with pytest.raises(PermissionDenied):
        attendance_service.check_in(db, user=user, now=_at(8, 0))


def test_manual_entry_overwrites_existing_day(db, user, admin):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    db.commit()

    record = attendance_service.manual_entry(
        db,
        user=user,
        work_date=_at(0).date(),
        check_in_at=_at(8, 0),
        check_out_at=_at(16, 0),
        break_minutes=60,
        notes="Forgot to check out",
        admin_id=admin.id,
        admin_email=admin.email,
    )
    db.commit()

    assert db.query(Attendance).count() == 1
    assert record.is_manual is True
    assert record.status == AttendanceStatus.CHECKED_OUT
    assert record.work_minutes == 420
    entry = db.query(AuditLog).filter(AuditLog.event_type == "attendance.manual_entry").one()
    assert entry.actor_email == admin.email


def test_analytics_buckets_by_weekday(db, user):
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    attendance_service.check_out(db, user=user, now=_at(17, 0))
    db.commit()

    summary = attendance_service.analytics(db, user=user, days=30, now=_at(20, 0))
    assert summary["present_days"] == 1
    assert summary["total_work_minutes"] == 540
    assert summary["by_weekday"]["Tuesday"]["present"] == 1


def test_api_state_machine(client, user, broadcast):
    headers = user_headers(user)

    status = client.get("/api/attendance/status", headers=headers)
    assert status.status_code == 200
    assert status.json()["data"]["status"] == "none"

    checked_in = client.post("/api/attendance/check-in", json={}, headers=headers)
    assert checked_in.status_code == 201, checked_in.text
    assert checked_in.json()["success"] is True
    assert checked_in.json()["data"]["status"] == "checkedIn"

    on_break = client.post("/api/attendance/break", json={"action": "start", "type": "lunch"}, headers=headers)
    assert on_break.status_code == 200, on_break.text
    assert on_break.json()["data"]["status"] == "onBreak"

    status = client.get("/api/attendance/status", headers=headers).json()["data"]
    assert status["onBreak"] is True
    assert status["currentBreakStart"] is not None

    back = client.post("/api/attendance/break", json={"action": "end"}, headers=headers)
    assert back.json()["data"]["status"] == "checkedIn"

    out = client.post("/api/attendance/check-out", json={}, headers=headers)
    assert out.status_code == 200
    assert out.json()["data"]["status"] == "checkedOut"
    totals = {key: out.json()["data"][key] for key in ("workMinutes", "breakMinutes", "overtimeMinutes")}

    again = client.post("/api/attendance/check-out", json={}, headers=headers)
    assert again.status_code == 409
    assert again.json() == {"success": False, "error": "No active check-in found"}
    after = client.get("/api/attendance/status", headers=headers).json()["data"]["record"]
    assert {key: after[key] for key in totals} == totals

    live = [value for op, path, value in broadcast.calls if path == "realtime/attendance/live/emp-001"]
    assert [node["status"] for node in live] == ["checkedIn", "onBreak", "checkedIn", "checkedOut"]


def test_api_break_end_without_start_leaves_state_untouched(client, db, user, broadcast):
    headers = user_headers(user)
    client.post("/api/attendance/check-in", json={}, headers=headers)
    writes_before = len(broadcast.calls)

    response = client.post("/api/attendance/break", json={"action": "end"}, headers=headers)

    assert response.status_code == 409
    assert response.json()["error"] == "No active break found"
    assert len(broadcast.calls) == writes_before
    record = db.query(Attendance).filter(Attendance.user_id == user.id).one()
    db.refresh(record)
    assert record.status == AttendanceStatus.CHECKED_IN
    assert record.breaks == []


def test_api_rejects_unknown_break_action(client, user):
    response = client.post("/api/attendance/break", json={"action": "nap"}, headers=user_headers(user))
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid action. Use 'start' or 'end'"


def test_api_requires_authentication(client):
    response = client.get("/api/attendance/status")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_api_history_pages_newest_first(client, db, user):
    attendance_service.check_in(db, user=user, now=datetime(2026, 3, 9, 8, tzinfo=timezone.utc))
    attendance_service.check_out(db, user=user, now=datetime(2026, 3, 9, 17, tzinfo=timezone.utc))
    attendance_service.check_in(db, user=user, now=_at(8, 0))
    db.commit()

    response = client.get("/api/attendance/history?limit=1", headers=user_headers(user))
    body = response.json()["data"]
    assert body["total"] == 2
    assert body["hasMore"] is True
    assert body["records"][0]["workDate"] == "2026-03-10"


@pytest.fixture()
def geofence(monkeypatch):
    monkeypatch.setattr(settings, "geofence_enabled", True)
    monkeypatch.setattr(settings, "geofence_latitude", 10.0)
    monkeypatch.setattr(settings, "geofence_longitude", 20.0)
    monkeypatch.setattr(settings, "geofence_radius_meters", 500.0)


INSIDE = {"latitude": 10.001, "longitude": 20.0}
OUTSIDE = {"latitude": 10.1, "longitude": 20.0}


def _violations(db) -> int:
    return db.query(AuditLog).filter(AuditLog.event_type == "attendance.geofence_violation").count()


def test_geofence_accepts_check_in_inside_radius(db, user, geofence):
    record = attendance_service.check_in(db, user=user, location=INSIDE, now=_at(8, 0))
    assert record.check_in_location == INSIDE
    assert _violations(db) == 0


def test_geofence_rejects_and_audits_check_in_outside_radius(db, user, geofence):
    with pytest.raises(PermissionDenied) as exc:
        attendance_service.check_in(db, user=user, location=OUTSIDE, now=_at(8, 0))

    assert exc.value.extra["allowedRadius"] == 500.0
    assert exc.value.extra["distance"] > 10_000
    assert db.query(Attendance).count() == 0
    entry = db.query(AuditLog).filter(AuditLog.event_type == "attendance.geofence_violation").one()
    assert entry.status.value == "failure"


def test_geofence_requires_a_location(db, user, geofence):
    with pytest.raises(ValidationFailed):
        attendance_service.check_in(db, user=user, now=_at(8, 0))


def test_already_checked_in_conflict_wins_over_geofence(db, user, geofence):
    attendance_service.check_in(db, user=user, location=INSIDE, now=_at(8, 0))
    db.commit()

    with pytest.raises(Conflict):
        attendance_service.check_in(db, user=user, location=OUTSIDE, now=_at(9, 0))
    assert _violations(db) == 0


def test_api_geofence_outside_radius(client, db, user, broadcast, geofence):
    headers = user_headers(user)

    rejected = client.post("/api/attendance/check-in", json={"location": OUTSIDE}, headers=headers)
    assert rejected.status_code == 403
    assert rejected.json()["error"] == "You are outside the allowed check-in area"
    assert rejected.json()["allowedRadius"] == 500.0
    assert broadcast.calls == []
    assert _violations(db) == 1

    accepted = client.post("/api/attendance/check-in", json={"location": INSIDE}, headers=headers)
    assert accepted.status_code == 201, accepted.text

    retried = client.post("/api/attendance/check-in", json={"location": OUTSIDE}, headers=headers)
    assert retried.status_code == 409
    assert _violations(db) == 1
