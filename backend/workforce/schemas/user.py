from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from workforce.models.enums import UserStatus
from workforce.schemas.base import ApiModel, Pagination

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class UserRead(ApiModel):
    id: int
    uid: str
    email: str
    name: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    org_id: Optional[str] = None
    status: UserStatus
    email_verified: bool
    schedule_start: Optional[str] = None
    schedule_end: Optional[str] = None
    work_days: Optional[list[int]] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


class UserCreate(ApiModel):
    email: str = Field(min_length=3, max_length=255)
    uid: Optional[str] = Field(default=None, max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)
    department: Optional[str] = Field(default=None, max_length=120)
    position: Optional[str] = Field(default=None, max_length=120)
    org_id: Optional[str] = Field(default=None, max_length=64)
    schedule_start: Optional[str] = Field(default=None, pattern=_HHMM)
    schedule_end: Optional[str] = Field(default=None, pattern=_HHMM)
    work_days: Optional[list[int]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("Invalid email address")
        return value


class UserUpdate(ApiModel):
    name: Optional[str] = Field(default=None, max_length=255)
    department: Optional[str] = Field(default=None, max_length=120)
    position: Optional[str] = Field(default=None, max_length=120)
    org_id: Optional[str] = Field(default=None, max_length=64)
    schedule_start: Optional[str] = Field(default=None, pattern=_HHMM)
    schedule_end: Optional[str] = Field(default=None, pattern=_HHMM)
    work_days: Optional[list[int]] = None


class UserStatusUpdate(ApiModel):
    status: UserStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class UserList(ApiModel):
    users: list[UserRead]
    pagination: Pagination


class SessionRequest(ApiModel):
    id_token: str = Field(min_length=1)


class SessionRead(ApiModel):
    user: UserRead
    expires_in: int
