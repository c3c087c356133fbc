"""Employee attendance: status, check-in/out, breaks, history and analytics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from workforce.core.deps import get_current_user, get_write_through
from workforce.core.errors import ValidationFailed
from workforce.db.session import get_db
from workforce.models.user import User
from workforce.schemas.attendance import (
    AttendanceAnalytics,
    AttendanceHistory,
    AttendanceRead,
    AttendanceStatusRead,
    BreakRequest,
    CheckInRequest,
    CheckOutRequest,
)
from workforce.schemas.base import Envelope
from workforce.services import attendance as attendance_service
from workforce.services.write_through import WriteThrough

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


def _location(payload) -> dict | None:
    return payload.location.model_dump(exclude_none=True) if payload.location else None


@router.get("/status", response_model=Envelope[AttendanceStatusRead])
def attendance_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    state = attendance_service.current_status(db, user=current_user)
    record = state.pop("record")
    return Envelope(
        data=AttendanceStatusRead(
            **state,
            record=AttendanceRead.model_validate(record) if record is not None else None,
        )
    )


@router.post("/check-in", response_model=Envelope[AttendanceRead], status_code=201)
def check_in(
    request: Request,
    payload: CheckInRequest | None = None,
    db: Session = Depends(get_db),
    coordinator: WriteThrough = Depends(get_write_through),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    payload = payload or CheckInRequest()
    location = _location(payload)
    record = coordinator.execute(
        lambda session: attendance_service.check_in(
            session,
            user=current_user,
            location=location,
            method=payload.method,
            request=request,
        ),
        *attendance_service.attendance_mirrors(db, current_user, "check_in"),
        operation="attendance.check_in",
    )
    return Envelope(data=AttendanceRead.model_validate(record))


@router.post("/check-out", response_model=Envelope[AttendanceRead])
def check_out(
    request: Request,
    payload: CheckOutRequest | None = None,
    db: Session = Depends(get_db),
    coordinator: WriteThrough = Depends(get_write_through),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    location = _location(payload) if payload else None
    record = coordinator.execute(
        lambda session: attendance_service.check_out(
            session, user=current_user, location=location, request=request
        ),
        *attendance_service.attendance_mirrors(db, current_user, "check_out"),
        operation="attendance.check_out",
    )
    return Envelope(data=AttendanceRead.model_validate(record))


@router.post("/break", response_model=Envelope[AttendanceRead])
def attendance_break(
    request: Request,
    payload: BreakRequest,
    db: Session = Depends(get_db),
    coordinator: WriteThrough = Depends(get_write_through),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    action = payload.action.strip().lower()
    if action not in ("start", "end"):
        raise ValidationFailed("Invalid action. Use 'start' or 'end'")

    def primary(session: Session):
        if action == "start":
            return attendance_service.start_break(
                session, user=current_user, break_type=payload.type, request=request
            )
        return attendance_service.end_break(session, user=current_user, request=request)

    record = coordinator.execute(
        primary,
        *attendance_service.attendance_mirrors(db, current_user, f"break_{action}"),
        operation=f"attendance.break_{action}",
    )
    return Envelope(data=AttendanceRead.model_validate(record))


@router.get("/history", response_model=Envelope[AttendanceHistory])
def attendance_history(
    limit: int = Query(30, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    records, total = attendance_service.history(db, user_id=current_user.id, limit=limit, skip=skip)
    return Envelope(
        data=AttendanceHistory(
            records=[AttendanceRead.model_validate(r) for r in records],
            total=total,
            limit=limit,
            skip=skip,
            has_more=skip + len(records) < total,
        )
    )


@router.get("/analytics", response_model=Envelope[AttendanceAnalytics])
def attendance_analytics(
    days: int = Query(90, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    """Totals and per-weekday breakdown over the last ``days`` work dates."""
    summary = attendance_service.analytics(db, user=current_user, days=days)
    return Envelope(data=AttendanceAnalytics.model_validate(summary))
