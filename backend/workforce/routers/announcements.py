from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from workforce.core.deps import get_current_user, get_write_through
from workforce.core.errors import Conflict
from workforce.db.session import get_db
from workforce.models.enums import AnnouncementType
from workforce.models.user import User
from workforce.schemas.announcement import AnnouncementRead, AnnouncementViewResult
from workforce.schemas.base import Envelope
from workforce.services import announcements as announcement_service
from workforce.services.write_through import WriteThrough

router = APIRouter(prefix="/api/announcements", tags=["announcements"])


@router.get("", response_model=Envelope[list[AnnouncementRead]])
def list_announcements(
    type: Optional[AnnouncementType] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    rows = announcement_service.list_public(db, user=current_user, announcement_type=type)
    return Envelope(data=[AnnouncementRead.model_validate(row) for row in rows])


@router.post("/{announcement_id}/view", response_model=Envelope[AnnouncementViewResult])
def track_view(
    announcement_id: int,
    db: Session = Depends(get_db),
    coordinator: WriteThrough = Depends(get_write_through),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    try:
        announcement, counted = coordinator.execute(
            lambda session: announcement_service.record_view(
                session, announcement_id=announcement_id, user=current_user
            ),
            announcement_service.view_mirror,
            operation="announcement.view",
        )
    except Conflict:
        # A concurrent request from the same user recorded the view first.
        announcement, counted = announcement_service.get_announcement(db, announcement_id), False

    return Envelope(
        data=AnnouncementViewResult(
            announcement_id=announcement.id,
            counted=counted,
            view_count=announcement.view_count,
        )
    )
