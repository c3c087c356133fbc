from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from workforce.core.deps import require_permission
from workforce.db.session import get_db
from workforce.models.admin import Admin
from workforce.models.enums import UserStatus
from workforce.schemas.base import Envelope, page_info
from workforce.schemas.user import UserCreate, UserList, UserRead, UserStatusUpdate, UserUpdate
from workforce.services import users as user_service

router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])

_manage = require_permission("manage_users")


@router.get("", response_model=Envelope[UserList])
def list_users(
    search: Optional[str] = Query(None, max_length=200),
    status: Optional[UserStatus] = Query(None),
    department: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    users, total = user_service.list_users(
        db,
        search=search,
        status=status,
        department=department,
        org_id=admin.org_id,
        limit=limit,
        skip=skip,
    )
    return Envelope(
        data=UserList(
            users=[UserRead.model_validate(user) for user in users],
            pagination=page_info(total=total, limit=limit, skip=skip, returned=len(users)),
        )
    )


@router.get("/{user_id}", response_model=Envelope[UserRead])
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _admin: Admin = Depends(_manage),
) -> Envelope:
    return Envelope(data=UserRead.model_validate(user_service.get_user(db, user_id)))


@router.post("", response_model=Envelope[UserRead], status_code=201)
def create_user(
    request: Request,
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    data = payload.model_dump(exclude_none=True)
    if admin.org_id and not data.get("org_id"):
        data["org_id"] = admin.org_id
    user = user_service.create_user(db, admin=admin, data=data, request=request)
    db.commit()
    db.refresh(user)
    return Envelope(data=UserRead.model_validate(user))


@router.put("/{user_id}", response_model=Envelope[UserRead])
def update_user(
    user_id: int,
    request: Request,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    user = user_service.update_user(
        db,
        admin=admin,
        user=user_service.get_user(db, user_id),
        data=payload.model_dump(exclude_unset=True),
        request=request,
    )
    db.commit()
    db.refresh(user)
    return Envelope(data=UserRead.model_validate(user))


@router.patch("/{user_id}/status", response_model=Envelope[UserRead])
def set_user_status(
    user_id: int,
    request: Request,
    payload: UserStatusUpdate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(_manage),
) -> Envelope:
    user = user_service.set_status(
        db,
        admin=admin,
        user=user_service.get_user(db, user_id),
        status=payload.status,
        reason=payload.reason,
        request=request,
    )
    db.commit()
    db.refresh(user)
    return Envelope(data=UserRead.model_validate(user))
