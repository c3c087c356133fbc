"""Cookie session issuance for the end-user web app."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from workforce.core.deps import get_identity_verifier
from workforce.core.errors import AuthenticationFailed, PermissionDenied
from workforce.core.identity import IdentityVerifier, create_session_token
from workforce.core.logging import log_auth_event
from workforce.core.settings import settings
from workforce.db.session import get_db
from workforce.schemas.base import Acknowledged, Envelope
from workforce.schemas.user import SessionRead, SessionRequest, UserRead
from workforce.services.users import get_user_by_uid

router = APIRouter(prefix="/api/session", tags=["session"])


@router.post("", response_model=Envelope[SessionRead])
def create_session(
    request: Request,
    response: Response,
    payload: SessionRequest,
    db: Session = Depends(get_db),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Envelope:
    claims = verifier.verify(payload.id_token)
    user = get_user_by_uid(db, claims["uid"])
    if user is None:
        log_auth_event("session_unknown_user", request=request, extra={"uid": claims["uid"]})
        raise AuthenticationFailed("User not found")
    if not user.is_active:
        log_auth_event("session_inactive_user", request=request, extra={"uid": user.uid})
        raise PermissionDenied("User account is not active")

    user.last_login_at = datetime.now(timezone.utc)
    db.commit()

    max_age = settings.session_cookie_days * 24 * 60 * 60
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user.uid),
        max_age=max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )
    log_auth_event("session_created", request=request, extra={"uid": user.uid})
    return Envelope(data=SessionRead(user=UserRead.model_validate(user), expires_in=max_age))


@router.delete("", response_model=Envelope[Acknowledged])
def delete_session(response: Response) -> Envelope:
    response.delete_cookie(key=settings.session_cookie_name, path="/")
    return Envelope(data=Acknowledged(message="Signed out"))
