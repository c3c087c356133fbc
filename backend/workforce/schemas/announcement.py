from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from workforce.models.enums import AnnouncementPriority, AnnouncementStatus, AnnouncementType, TargetAudience
from workforce.schemas.base import ApiModel, Pagination


class AnnouncementRead(ApiModel):
    id: int
    title: str
    content: str
    type: AnnouncementType
    priority: AnnouncementPriority
    target_audience: TargetAudience
    target_department: Optional[str] = None
    status: AnnouncementStatus
    publish_at: datetime
    expires_at: Optional[datetime] = None
    is_pinned: bool
    view_count: int
    author_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AnnouncementCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=10000)
    type: AnnouncementType = AnnouncementType.GENERAL
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    target_audience: TargetAudience = TargetAudience.ALL
    target_department: Optional[str] = Field(default=None, max_length=120)
    status: AnnouncementStatus = AnnouncementStatus.PUBLISHED
    publish_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_pinned: bool = False


class AnnouncementUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=10000)
    type: Optional[AnnouncementType] = None
    priority: Optional[AnnouncementPriority] = None
    target_audience: Optional[TargetAudience] = None
    target_department: Optional[str] = Field(default=None, max_length=120)
    status: Optional[AnnouncementStatus] = None
    publish_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_pinned: Optional[bool] = None


class AnnouncementList(ApiModel):
    announcements: list[AnnouncementRead]
    pagination: Pagination


class AnnouncementViewResult(ApiModel):
    announcement_id: int
    counted: bool
    view_count: int


class AnnouncementStats(ApiModel):
    total: int
    published: int
    scheduled: int
    draft: int
    archived: int
    pinned: int
    total_views: int
