"""Tests for announcements: visibility window, view counting and admin CRUD."""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import admin_headers, user_headers
from workforce.core.errors import ValidationFailed
from workforce.models.announcement import Announcement, AnnouncementView
from workforce.models.audit import AuditLog
from workforce.models.enums import AnnouncementStatus, TargetAudience
from workforce.services import announcements as announcement_service


def _announcement(db, admin, **overrides):
    now = datetime.now(timezone.utc)
    fields = {
        "org_id": "org_default",
        "title": "Quarterly town hall",
        "content": "Friday at 3pm in the main hall.",
        "status": AnnouncementStatus.PUBLISHED,
        "publish_at": now - timedelta(hours=1),
        "author_admin_id": admin.id,
        "author_name": admin.name,
    }
    fields.update(overrides)
    announcement = Announcement(**fields)
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    return announcement


def test_public_list_hides_drafts_future_and_expired(db, user, admin):
    now = datetime.now(timezone.utc)
    live = _announcement(db, admin, title="Live")
    pinned = _announcement(db, admin, title="Pinned", is_pinned=True, publish_at=now - timedelta(days=2))
    _announcement(db, admin, title="Draft", status=AnnouncementStatus.DRAFT)
    _announcement(db, admin, title="Future", publish_at=now + timedelta(days=1))
    _announcement(db, admin, title="Expired", expires_at=now - timedelta(minutes=1))
    _announcement(db, admin, title="Other org", org_id="org_other")
    _announcement(
        db, admin, title="Finance only", target_audience=TargetAudience.DEPARTMENT, target_department="Finance"
    )

    rows = announcement_service.list_public(db, user=user)

    assert [row.id for row in rows] == [pinned.id, live.id]


def test_view_is_counted_once_per_user(client, db, user, admin, broadcast):
    announcement = _announcement(db, admin)
    headers = user_headers(user)

    first = client.post(f"/api/announcements/{announcement.id}/view", headers=headers)
    second = client.post(f"/api/announcements/{announcement.id}/view", headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.json()["data"] == {"announcementId": announcement.id, "counted": True, "viewCount": 1}
    assert second.json()["data"]["counted"] is False
    assert second.json()["data"]["viewCount"] == 1
    assert db.query(AnnouncementView).count() == 1
    assert broadcast.calls == [
        ("increment", f"realtime/announcements/org_default/views/{announcement.id}/viewCount", 1)
    ]


def test_view_of_unpublished_announcement_is_not_found(client, db, user, admin):
    draft = _announcement(db, admin, status=AnnouncementStatus.DRAFT)
    response = client.post(f"/api/announcements/{draft.id}/view", headers=user_headers(user))
    assert response.status_code == 404


def test_view_outside_target_department_is_not_counted(client, db, user, admin, broadcast):
    finance = _announcement(
        db, admin, title="Finance only", target_audience=TargetAudience.DEPARTMENT, target_department="Finance"
    )
    operations = _announcement(
        db, admin, title="Ops only", target_audience=TargetAudience.DEPARTMENT, target_department="Operations"
    )
    headers = user_headers(user)

    hidden = client.post(f"/api/announcements/{finance.id}/view", headers=headers)
    assert hidden.status_code == 404
    db.refresh(finance)
    assert finance.view_count == 0
    assert db.query(AnnouncementView).filter(AnnouncementView.announcement_id == finance.id).count() == 0

    visible = client.post(f"/api/announcements/{operations.id}/view", headers=headers)
    assert visible.status_code == 200, visible.text
    assert visible.json()["data"]["counted"] is True


def test_apply_schedule_publishes_due_and_archives_expired(db, admin):
    now = datetime.now(timezone.utc)
    due = _announcement(db, admin, status=AnnouncementStatus.SCHEDULED, publish_at=now - timedelta(minutes=5))
    expired = _announcement(db, admin, expires_at=now - timedelta(minutes=1))

    published, archived = announcement_service.apply_schedule(db, org_id="org_default", now=now)
    db.commit()

    assert (published, archived) == (1, 1)
    assert db.get(Announcement, due.id).status == AnnouncementStatus.PUBLISHED
    assert db.get(Announcement, expired.id).status == AnnouncementStatus.ARCHIVED


def test_create_rejects_expiry_before_publish(db, admin):
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationFailed):
        announcement_service.create_announcement(
            db,
            admin=admin,
            org_id="org_default",
            data={"title": "x", "content": "y", "publish_at": now, "expires_at": now - timedelta(hours=1)},
        )


def test_admin_create_publishes_to_broadcast_and_audits(client, db, admin, broadcast):
    headers = admin_headers(client)

    response = client.post(
        "/api/admin/announcements",
        json={"title": "Office closed", "content": "Closed Monday.", "type": "holiday", "priority": "high"},
        headers=headers,
    )

    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["status"] == "published"
    assert "realtime/announcements/org_default/latest" in broadcast.paths("set")
    events = [value for op, path, value in broadcast.calls if path == "realtime/admin/monitor/org_default/events"]
    assert events[0]["type"] == "announcement_published"
    assert db.query(AuditLog).filter(AuditLog.event_type == "announcement.created").count() == 1


def test_admin_future_publish_is_scheduled_and_not_broadcast(client, admin, broadcast):
    headers = admin_headers(client)
    publish_at = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

    response = client.post(
        "/api/admin/announcements",
        json={"title": "Later", "content": "Tomorrow.", "publishAt": publish_at},
        headers=headers,
    )

    assert response.json()["data"]["status"] == "scheduled"
    assert broadcast.calls == []


def test_admin_update_archive_delete_and_stats(client, db, admin):
    headers = admin_headers(client)
    created = client.post(
        "/api/admin/announcements", json={"title": "Draft", "content": "Body", "status": "draft"}, headers=headers
    ).json()["data"]

    updated = client.put(
        f"/api/admin/announcements/{created['id']}", json={"isPinned": True, "title": "Pinned"}, headers=headers
    )
    assert updated.status_code == 200, updated.text
    assert updated.json()["data"]["isPinned"] is True

    archived = client.post(f"/api/admin/announcements/{created['id']}/archive", headers=headers)
    assert archived.json()["data"]["status"] == "archived"

    stats = client.get("/api/admin/announcements/stats", headers=headers).json()["data"]
    assert stats["total"] == 1
    assert stats["archived"] == 1
    assert stats["pinned"] == 1

    deleted = client.delete(f"/api/admin/announcements/{created['id']}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/admin/announcements/{created['id']}", headers=headers).status_code == 404
    assert db.query(AuditLog).filter(AuditLog.event_type == "announcement.deleted").count() == 1
