"""Email verification codes for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from workforce.core.deps import get_current_user
from workforce.core.errors import ServiceError
from workforce.db.session import get_db
from workforce.models.user import User
from workforce.schemas.base import Envelope
from workforce.schemas.otp import OtpSent, OtpStatusRead, OtpVerified, OtpVerifyRequest
from workforce.services import otp as otp_service

router = APIRouter(prefix="/api/otp", tags=["otp"])


@router.post("/send", response_model=Envelope[OtpSent])
def send_otp(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    try:
        issued = otp_service.send_code(db, user=current_user, request=request)
    except ServiceError:
        db.rollback()
        raise
    db.commit()
    return Envelope(data=OtpSent(session_token=issued.session_token, expires_in=issued.expires_in))


@router.post("/verify", response_model=Envelope[OtpVerified])
def verify_otp(
    request: Request,
    payload: OtpVerifyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    try:
        user = otp_service.verify_code(
            db,
            user=current_user,
            session_token=payload.session_token,
            code=payload.code,
            request=request,
        )
    except ServiceError:
        # Attempt counters and burned sessions must persist.
        db.commit()
        raise
    db.commit()
    return Envelope(data=OtpVerified(email=user.email))


@router.get("/status", response_model=Envelope[OtpStatusRead])
def otp_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    return Envelope(data=OtpStatusRead(**otp_service.status(db, user=current_user)))
