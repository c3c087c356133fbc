"""Shapes of the nodes written to the realtime broadcast store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from workforce.db.base import as_utc
from workforce.services.broadcast import BroadcastStore

LIVE_STATUS_TTL = timedelta(hours=24)
ADMIN_EVENT_TTL = timedelta(hours=1)


def _ms(value: Optional[datetime]) -> Optional[int]:
    value = as_utc(value)
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def live_status_path(uid: str) -> str:
    return f"realtime/attendance/live/{uid}"


def dashboard_stats_path(org_id: str) -> str:
    return f"realtime/dashboard/stats/{org_id}"


def admin_events_path(org_id: str) -> str:
    return f"realtime/admin/monitor/{org_id}/events"


def latest_announcement_path(org_id: str) -> str:
    return f"realtime/announcements/{org_id}/latest"


def announcement_views_path(org_id: str, announcement_id: int) -> str:
    return f"realtime/announcements/{org_id}/views/{announcement_id}"


def notifications_path(uid: str) -> str:
    return f"realtime/notifications/{uid}"


def publish_attendance_status(broadcast: BroadcastStore, uid: str, record: Any) -> None:
    now = _now()
    broadcast.set(
        live_status_path(uid),
        {
            "recordId": record.id,
            "status": record.status.value,
            "checkInTime": _ms(record.check_in_at),
            "checkOutTime": _ms(record.check_out_at),
            "isLate": record.is_late,
            "updatedAt": _ms(now),
            "_expiresAt": _ms(now + LIVE_STATUS_TTL),
        },
    )


def publish_dashboard_stats(broadcast: BroadcastStore, org_id: str, stats: dict) -> None:
    broadcast.set(dashboard_stats_path(org_id), {**stats, "updatedAt": _ms(_now())})


def publish_admin_event(broadcast: BroadcastStore, org_id: str, event_type: str, data: dict) -> None:
    now = _now()
    broadcast.push(
        admin_events_path(org_id),
        {
            "type": event_type,
            **data,
            "timestamp": _ms(now),
            "_expiresAt": _ms(now + ADMIN_EVENT_TTL),
        },
    )


def publish_announcement(broadcast: BroadcastStore, org_id: str, announcement: Any) -> None:
    broadcast.set(
        latest_announcement_path(org_id),
        {
            "id": announcement.id,
            "title": announcement.title,
            "type": announcement.type.value,
            "priority": announcement.priority.value,
            "isPinned": announcement.is_pinned,
            "publishedAt": _ms(announcement.publish_at),
            "updatedAt": _ms(_now()),
        },
    )


def publish_notification(broadcast: BroadcastStore, uid: str, notification: dict) -> None:
    broadcast.push(notifications_path(uid), {**notification, "read": False, "createdAt": _ms(_now())})


def increment_announcement_views(broadcast: BroadcastStore, org_id: str, announcement_id: int) -> None:
    broadcast.increment(announcement_views_path(org_id, announcement_id), "viewCount", 1)
