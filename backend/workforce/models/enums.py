from __future__ import annotations

import enum


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class AdminRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MODERATOR = "moderator"


class AdminStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AttendanceStatus(str, enum.Enum):
    NONE = "none"
    CHECKED_IN = "checkedIn"
    ON_BREAK = "onBreak"
    CHECKED_OUT = "checkedOut"


class CheckInMethod(str, enum.Enum):
    QR = "qr"
    FACE = "face"
    MANUAL = "manual"
    AUTO = "auto"
    API = "api"


class BreakType(str, enum.Enum):
    LUNCH = "lunch"
    SHORT = "short"
    OTHER = "other"


class AnnouncementType(str, enum.Enum):
    GENERAL = "general"
    URGENT = "urgent"
    POLICY = "policy"
    EVENT = "event"
    MAINTENANCE = "maintenance"
    HOLIDAY = "holiday"


class AnnouncementPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AnnouncementStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"
    ARCHIVED = "archived"


class TargetAudience(str, enum.Enum):
    ALL = "all"
    ADMINS = "admins"
    USERS = "users"
    DEPARTMENT = "department"


class ActorType(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"
    API = "api"


class AuditStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class AuditSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
