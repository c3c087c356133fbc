"""Import all models so SQLAlchemy metadata is fully registered."""

from workforce.db.base import Base

from workforce.models.admin import Admin, AdminSession
from workforce.models.announcement import Announcement, AnnouncementView
from workforce.models.attendance import Attendance, AttendanceBreak
from workforce.models.audit import AuditLog, AuditLogImmutableError
from workforce.models.enums import (
    ActorType,
    AdminRole,
    AdminStatus,
    AnnouncementPriority,
    AnnouncementStatus,
    AnnouncementType,
    AttendanceStatus,
    AuditSeverity,
    AuditStatus,
    BreakType,
    CheckInMethod,
    TargetAudience,
    UserStatus,
)
from workforce.models.otp import OtpSession
from workforce.models.revoked_token import RevokedToken
from workforce.models.user import User

__all__ = [
    "Base",
    "ActorType",
    "Admin",
    "AdminRole",
    "AdminSession",
    "AdminStatus",
    "Announcement",
    "AnnouncementPriority",
    "AnnouncementStatus",
    "AnnouncementType",
    "AnnouncementView",
    "Attendance",
    "AttendanceBreak",
    "AttendanceStatus",
    "AuditLog",
    "AuditLogImmutableError",
    "AuditSeverity",
    "AuditStatus",
    "BreakType",
    "CheckInMethod",
    "OtpSession",
    "RevokedToken",
    "TargetAudience",
    "User",
    "UserStatus",
]
