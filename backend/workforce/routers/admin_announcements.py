from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from workforce.core.deps import get_write_through, require_permission
from workforce.core.errors import NotFound
from workforce.core.settings import settings
from workforce.db.session import get_db
from workforce.models.admin import Admin
from workforce.models.enums import AnnouncementStatus, AnnouncementType
from workforce.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementList,
    AnnouncementRead,
    AnnouncementStats,
    AnnouncementUpdate,
)
from workforce.schemas.base import Acknowledged, Envelope, page_info
from workforce.services import announcements as announcement_service
from workforce.services.write_through import WriteThrough

router = APIRouter(prefix="/api/admin/announcements", tags=["admin-announcements"])

_manage = require_permission("manage_announcements")


def _org(admin: Admin) -> str:
    return admin.org_id or settings.default_org_id


def _scoped(db: Session, announcement_id: int, admin: Admin):
    announcement = announcement_service.get_announcement(db, announcement_id)
    if announcement.org_id != _org(admin):
        raise NotFound("Announcement not found")
    return announcement


@router.get("", response_model=Envelope[AnnouncementList])
def list_announcements(
    status: Optional[AnnouncementStatus] = Query(None),
    type: Optional[AnnouncementType] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    announcement_service.apply_schedule(db, org_id=_org(admin))
    db.commit()
    rows, total = announcement_service.list_admin(
        db,
        org_id=_org(admin),
        status=status,
        announcement_type=type,
        search=search,
        limit=limit,
        skip=skip,
    )
    return Envelope(
        data=AnnouncementList(
            announcements=[AnnouncementRead.model_validate(row) for row in rows],
            pagination=page_info(total=total, limit=limit, skip=skip, returned=len(rows)),
        )
    )


@router.get("/stats", response_model=Envelope[AnnouncementStats])
def announcement_stats(
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    return Envelope(data=AnnouncementStats.model_validate(announcement_service.stats(db, org_id=_org(admin))))


@router.get("/{announcement_id}", response_model=Envelope[AnnouncementRead])
def get_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    return Envelope(data=AnnouncementRead.model_validate(_scoped(db, announcement_id, admin)))


@router.post("", response_model=Envelope[AnnouncementRead], status_code=201)
def create_announcement(
    request: Request,
    payload: AnnouncementCreate,
    coordinator: WriteThrough = Depends(get_write_through),
    admin: Admin = Depends(_manage),
) -> Envelope:
    announcement = coordinator.execute(
        lambda session: announcement_service.create_announcement(
            session,
            admin=admin,
            org_id=_org(admin),
            data=payload.model_dump(exclude_unset=True),
            request=request,
        ),
        announcement_service.publish_mirror,
        operation="announcement.create",
    )
    return Envelope(data=AnnouncementRead.model_validate(announcement))


@router.put("/{announcement_id}", response_model=Envelope[AnnouncementRead])
def update_announcement(
    announcement_id: int,
    request: Request,
    payload: AnnouncementUpdate,
    coordinator: WriteThrough = Depends(get_write_through),
    admin: Admin = Depends(_manage),
) -> Envelope:
    def primary(session: Session):
        return announcement_service.update_announcement(
            session,
            admin=admin,
            announcement=_scoped(session, announcement_id, admin),
            data=payload.model_dump(exclude_unset=True),
            request=request,
        )

    announcement = coordinator.execute(primary, announcement_service.publish_mirror, operation="announcement.update")
    return Envelope(data=AnnouncementRead.model_validate(announcement))


@router.delete("/{announcement_id}", response_model=Envelope[Acknowledged])
def delete_announcement(
    announcement_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    announcement_service.delete_announcement(
        db, admin=admin, announcement=_scoped(db, announcement_id, admin), request=request
    )
    db.commit()
    return Envelope(data=Acknowledged(message="Announcement deleted"))


@router.post("/{announcement_id}/archive", response_model=Envelope[AnnouncementRead])
def archive_announcement(
    announcement_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    announcement = announcement_service.update_announcement(
        db,
        admin=admin,
        announcement=_scoped(db, announcement_id, admin),
        data={"status": AnnouncementStatus.ARCHIVED},
        request=request,
    )
    db.commit()
    return Envelope(data=AnnouncementRead.model_validate(announcement))
