from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from workforce.core.errors import Conflict, NotFound
from workforce.models.admin import Admin
from workforce.models.enums import ActorType, AuditSeverity, UserStatus
from workforce.models.user import User
from workforce.services.audit import log_event

_EDITABLE_FIELDS = (
    "name",
    "department",
    "position",
    "org_id",
    "schedule_start",
    "schedule_end",
    "work_days",
)


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def get_user_by_uid(db: Session, uid: str) -> Optional[User]:
    return db.query(User).filter(User.uid == uid).first()


def list_users(
    db: Session,
    *,
    search: Optional[str] = None,
    status: Optional[UserStatus] = None,
    department: Optional[str] = None,
    org_id: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> tuple[list[User], int]:
    query = db.query(User)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.email.ilike(pattern), User.name.ilike(pattern), User.uid.ilike(pattern)))
    if status:
        query = query.filter(User.status == status)
    if department:
        query = query.filter(User.department == department)
    if org_id:
        query = query.filter(User.org_id == org_id)
    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit).all()
    return users, total


def create_user(
    db: Session,
    *,
    admin: Admin,
    data: dict,
    request: Optional[Request] = None,
) -> User:
    email = data["email"].strip().lower()
    if db.query(User.id).filter(User.email == email).first() is not None:
        raise Conflict("A user with this email already exists")
    uid = data.get("uid") or uuid.uuid4().hex
    if get_user_by_uid(db, uid) is not None:
        raise Conflict("A user with this uid already exists")

    user = User(
        uid=uid,
        email=email,
        status=UserStatus.ACTIVE,
        **{key: data[key] for key in _EDITABLE_FIELDS if data.get(key) is not None},
    )
    db.add(user)
    db.flush()
    log_event(
        db,
        event_type="user.created",
        action=f"Created user {email}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="user",
        target_id=user.uid,
        request=request,
    )
    return user


def update_user(
    db: Session,
    *,
    admin: Admin,
    user: User,
    data: dict,
    request: Optional[Request] = None,
) -> User:
    changed = []
    for key, value in data.items():
        if key in _EDITABLE_FIELDS and getattr(user, key) != value:
            setattr(user, key, value)
            changed.append(key)
    db.flush()
    log_event(
        db,
        event_type="user.updated",
        action=f"Updated user {user.email}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="user",
        target_id=user.uid,
        details={"changed": changed},
        request=request,
    )
    return user


def set_status(
    db: Session,
    *,
    admin: Admin,
    user: User,
    status: UserStatus,
    reason: Optional[str] = None,
    request: Optional[Request] = None,
) -> User:
    previous = user.status
    user.status = status
    db.flush()
    log_event(
        db,
        event_type="user.status_changed",
        action=f"Changed status of {user.email} from {previous.value} to {status.value}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="user",
        target_id=user.uid,
        details={"from": previous.value, "to": status.value, "reason": reason},
        request=request,
        severity=AuditSeverity.MEDIUM if status != UserStatus.ACTIVE else AuditSeverity.LOW,
    )
    return user
