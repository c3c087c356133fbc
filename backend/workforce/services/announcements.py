from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workforce.core.errors import Conflict, NotFound, ValidationFailed
from workforce.db.base import as_utc
from workforce.models.admin import Admin
from workforce.models.announcement import Announcement, AnnouncementView
from workforce.models.enums import (
    ActorType,
    AnnouncementStatus,
    AnnouncementType,
    AuditSeverity,
    TargetAudience,
)
from workforce.models.user import User
from workforce.services import realtime
from workforce.services.attendance import org_for
from workforce.services.audit import log_event
from workforce.services.broadcast import BroadcastStore

PUBLIC_LIST_LIMIT = 20

_EDITABLE_FIELDS = (
    "title",
    "content",
    "type",
    "priority",
    "target_audience",
    "target_department",
    "status",
    "publish_at",
    "expires_at",
    "is_pinned",
)


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def get_announcement(db: Session, announcement_id: int) -> Announcement:
    announcement = db.get(Announcement, announcement_id)
    if announcement is None:
        raise NotFound("Announcement not found")
    return announcement


def is_live(announcement: Announcement, now: datetime) -> bool:
    expires_at = as_utc(announcement.expires_at)
    return (
        announcement.status == AnnouncementStatus.PUBLISHED
        and as_utc(announcement.publish_at) <= now
        and (expires_at is None or expires_at > now)
    )


def _audience_filter(user: User):
    return or_(
        Announcement.target_audience.in_((TargetAudience.ALL, TargetAudience.USERS)),
        (Announcement.target_audience == TargetAudience.DEPARTMENT)
        & (Announcement.target_department == user.department),
    )


def list_public(
    db: Session,
    *,
    user: User,
    announcement_type: Optional[AnnouncementType] = None,
    limit: int = PUBLIC_LIST_LIMIT,
    now: Optional[datetime] = None,
) -> list[Announcement]:
    moment = _now(now)
    query = db.query(Announcement).filter(
        Announcement.org_id == org_for(user),
        Announcement.status == AnnouncementStatus.PUBLISHED,
        Announcement.publish_at <= moment,
        or_(Announcement.expires_at.is_(None), Announcement.expires_at > moment),
        _audience_filter(user),
    )
    if announcement_type:
        query = query.filter(Announcement.type == announcement_type)
    return (
        query.order_by(Announcement.is_pinned.desc(), Announcement.publish_at.desc(), Announcement.id.desc())
        .limit(limit)
        .all()
    )


def record_view(
    db: Session,
    *,
    announcement_id: int,
    user: User,
    now: Optional[datetime] = None,
) -> tuple[Announcement, bool]:
    """Count a view once per (announcement, user). Returns (announcement, counted)."""
    announcement = get_announcement(db, announcement_id)
    if announcement.org_id != org_for(user) or not is_live(announcement, _now(now)):
        raise NotFound("Announcement not found")
    audience_ok = (
        db.query(Announcement.id)
        .filter(Announcement.id == announcement.id, _audience_filter(user))
        .first()
    )
    if audience_ok is None:
        raise NotFound("Announcement not found")

    seen = (
        db.query(AnnouncementView.id)
        .filter(AnnouncementView.announcement_id == announcement.id, AnnouncementView.user_id == user.id)
        .first()
    )
    if seen is not None:
        return announcement, False

    db.add(AnnouncementView(announcement_id=announcement.id, user_id=user.id))
    try:
        db.flush()
    except IntegrityError as exc:
        raise Conflict("View already recorded") from exc

    db.execute(
        update(Announcement)
        .where(Announcement.id == announcement.id)
        .values(view_count=Announcement.view_count + 1)
    )
    db.refresh(announcement)
    return announcement, True


def view_mirror(broadcast: BroadcastStore, result: tuple[Announcement, bool]) -> None:
    announcement, counted = result
    if counted:
        realtime.increment_announcement_views(broadcast, announcement.org_id, announcement.id)


def publish_mirror(broadcast: BroadcastStore, announcement: Announcement) -> None:
    if announcement.status != AnnouncementStatus.PUBLISHED:
        return
    if as_utc(announcement.publish_at) > datetime.now(timezone.utc):
        return
    realtime.publish_announcement(broadcast, announcement.org_id, announcement)
    realtime.publish_admin_event(
        broadcast,
        announcement.org_id,
        "announcement_published",
        {"announcementId": announcement.id, "title": announcement.title, "priority": announcement.priority.value},
    )


# ── Admin ───────────────────────────────────────────────────────────────


def _validate_window(announcement: Announcement) -> None:
    expires_at = as_utc(announcement.expires_at)
    if expires_at is not None and expires_at <= as_utc(announcement.publish_at):
        raise ValidationFailed("Expiry must be after the publish time")
    if announcement.target_audience == TargetAudience.DEPARTMENT and not announcement.target_department:
        raise ValidationFailed("target_department is required for department announcements")


def _normalise_status(announcement: Announcement, now: datetime) -> None:
    if announcement.status == AnnouncementStatus.PUBLISHED and as_utc(announcement.publish_at) > now:
        announcement.status = AnnouncementStatus.SCHEDULED


def create_announcement(
    db: Session,
    *,
    admin: Admin,
    org_id: str,
    data: dict,
    request: Optional[Request] = None,
) -> Announcement:
    now = datetime.now(timezone.utc)
    fields = {key: value for key, value in data.items() if key in _EDITABLE_FIELDS and value is not None}
    fields.setdefault("publish_at", now)
    announcement = Announcement(
        org_id=org_id,
        author_admin_id=admin.id,
        author_name=admin.name or admin.email,
        **fields,
    )
    _validate_window(announcement)
    _normalise_status(announcement, now)
    db.add(announcement)
    db.flush()

    log_event(
        db,
        event_type="announcement.created",
        action=f"Created announcement: {announcement.title}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="announcement",
        target_id=announcement.id,
        details={"status": announcement.status.value, "type": announcement.type.value},
        request=request,
    )
    return announcement


def update_announcement(
    db: Session,
    *,
    admin: Admin,
    announcement: Announcement,
    data: dict,
    request: Optional[Request] = None,
) -> Announcement:
    changed = []
    for key, value in data.items():
        if key not in _EDITABLE_FIELDS:
            continue
        if getattr(announcement, key) != value:
            setattr(announcement, key, value)
            changed.append(key)
    _validate_window(announcement)
    _normalise_status(announcement, datetime.now(timezone.utc))
    db.flush()

    log_event(
        db,
        event_type="announcement.updated",
        action=f"Updated announcement: {announcement.title}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="announcement",
        target_id=announcement.id,
        details={"changed": changed},
        request=request,
    )
    return announcement


def delete_announcement(
    db: Session,
    *,
    admin: Admin,
    announcement: Announcement,
    request: Optional[Request] = None,
) -> None:
    log_event(
        db,
        event_type="announcement.deleted",
        action=f"Deleted announcement: {announcement.title}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="announcement",
        target_id=announcement.id,
        request=request,
        severity=AuditSeverity.MEDIUM,
    )
    db.delete(announcement)
    db.flush()


def apply_schedule(db: Session, *, org_id: str, now: Optional[datetime] = None) -> tuple[int, int]:
    """Publish due scheduled rows and archive expired ones. Returns (published, archived)."""
    moment = _now(now)
    published = db.execute(
        update(Announcement)
        .where(
            Announcement.org_id == org_id,
            Announcement.status == AnnouncementStatus.SCHEDULED,
            Announcement.publish_at <= moment,
        )
        .values(status=AnnouncementStatus.PUBLISHED)
    ).rowcount
    archived = db.execute(
        update(Announcement)
        .where(
            Announcement.org_id == org_id,
            Announcement.status.in_((AnnouncementStatus.PUBLISHED, AnnouncementStatus.SCHEDULED)),
            Announcement.expires_at.is_not(None),
            Announcement.expires_at <= moment,
        )
        .values(status=AnnouncementStatus.ARCHIVED)
    ).rowcount
    db.expire_all()
    return published or 0, archived or 0


def list_admin(
    db: Session,
    *,
    org_id: str,
    status: Optional[AnnouncementStatus] = None,
    announcement_type: Optional[AnnouncementType] = None,
    search: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> tuple[list[Announcement], int]:
    query = db.query(Announcement).filter(Announcement.org_id == org_id)
    if status:
        query = query.filter(Announcement.status == status)
    if announcement_type:
        query = query.filter(Announcement.type == announcement_type)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Announcement.title.ilike(pattern), Announcement.content.ilike(pattern)))
    total = query.count()
    rows = (
        query.order_by(Announcement.is_pinned.desc(), Announcement.created_at.desc(), Announcement.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return rows, total


def stats(db: Session, *, org_id: str) -> dict:
    row = db.query(
        func.count(Announcement.id),
        func.sum(case((Announcement.status == AnnouncementStatus.PUBLISHED, 1), else_=0)),
        func.sum(case((Announcement.status == AnnouncementStatus.SCHEDULED, 1), else_=0)),
        func.sum(case((Announcement.status == AnnouncementStatus.DRAFT, 1), else_=0)),
        func.sum(case((Announcement.status == AnnouncementStatus.ARCHIVED, 1), else_=0)),
        func.sum(case((Announcement.is_pinned.is_(True), 1), else_=0)),
        func.coalesce(func.sum(Announcement.view_count), 0),
    ).filter(Announcement.org_id == org_id).one()
    total, published, scheduled, draft, archived, pinned, views = row
    return {
        "total": total or 0,
        "published": published or 0,
        "scheduled": scheduled or 0,
        "draft": draft or 0,
        "archived": archived or 0,
        "pinned": pinned or 0,
        "total_views": int(views or 0),
    }
