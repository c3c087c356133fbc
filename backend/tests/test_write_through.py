"""Tests for primary-first write coordination."""
import pytest
from prometheus_client import REGISTRY

from conftest import user_headers
from workforce.core.errors import Conflict
from workforce.models.attendance import Attendance
from workforce.models.user import User
from workforce.services.write_through import WriteThrough


def _failures(operation: str) -> float:
    return REGISTRY.get_sample_value(
        "workforce_broadcast_write_failures_total", {"operation": operation}
    ) or 0.0


def test_primary_failure_skips_every_mirror(db, broadcast):
    coordinator = WriteThrough(db, broadcast)
    mirrored = []

    def primary(session):
        session.add(User(uid="ghost", email="ghost@example.com"))
        session.flush()
        raise Conflict("nope")

    with pytest.raises(Conflict):
        coordinator.execute(primary, lambda store, result: mirrored.append(result), operation="test.primary_fails")

    assert mirrored == []
    assert broadcast.calls == []
    assert db.query(User).filter(User.uid == "ghost").first() is None


def test_mirror_failure_keeps_primary_and_runs_remaining_mirrors(db, broadcast):
    coordinator = WriteThrough(db, broadcast)
    before = _failures("test.mirror_fails")

    def broken(store, result):
        raise RuntimeError("broadcast offline")

    def healthy(store, result):
        store.set(f"realtime/test/{result.uid}", {"ok": True})

    user = coordinator.execute(
        lambda session: _add_user(session, "mirror-1"),
        broken,
        healthy,
        operation="test.mirror_fails",
    )

    assert user.id is not None
    db.expire_all()
    assert db.query(User).filter(User.uid == "mirror-1").one()
    assert broadcast.paths() == ["realtime/test/mirror-1"]
    assert _failures("test.mirror_fails") == before + 1


def _add_user(session, uid):
    user = User(uid=uid, email=f"{uid}@example.com")
    session.add(user)
    session.flush()
    return user


def test_check_in_succeeds_when_broadcast_is_down(client, db, user, broadcast):
    broadcast.failing = True
    before = _failures("attendance.check_in")

    response = client.post("/api/attendance/check-in", json={}, headers=user_headers(user))

    assert response.status_code == 201, response.text
    assert db.query(Attendance).filter(Attendance.user_id == user.id).count() == 1
    assert broadcast.calls == []
    # live status, dashboard stats and the admin event each fail on their own
    assert _failures("attendance.check_in") == before + 3


def test_rejected_check_in_writes_nothing_to_broadcast(client, user, broadcast):
    headers = user_headers(user)
    client.post("/api/attendance/check-in", json={}, headers=headers)
    writes = len(broadcast.calls)

    response = client.post("/api/attendance/check-in", json={}, headers=headers)

    assert response.status_code == 409
    assert len(broadcast.calls) == writes
