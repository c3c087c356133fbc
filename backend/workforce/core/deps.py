from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Request, Security
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from workforce.core.errors import AuthenticationFailed, PermissionDenied
from workforce.core.identity import IdentityVerifier, decode_session_token
from workforce.core.logging import log_auth_event
from workforce.core.settings import settings
from workforce.db.session import get_db
from workforce.models.admin import Admin
from workforce.models.user import User
from workforce.services import admin_auth
from workforce.services.broadcast import BroadcastStore
from workforce.services.face import FaceVerifier
from workforce.services.users import get_user_by_uid
from workforce.services.write_through import WriteThrough

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/auth/login", auto_error=False)


def get_broadcast_store(request: Request) -> BroadcastStore:
    return request.app.state.broadcast


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.identity_verifier


def get_face_verifier(request: Request) -> FaceVerifier:
    return request.app.state.face_verifier


def get_write_through(
    db: Session = Depends(get_db),
    broadcast: BroadcastStore = Depends(get_broadcast_store),
) -> WriteThrough:
    return WriteThrough(db, broadcast)


def get_current_user(
    request: Request,
    token: Optional[str] = Security(oauth2_scheme),
    db: Session = Depends(get_db),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> User:
    token = token or request.cookies.get(settings.session_cookie_name)
    if not token:
        raise AuthenticationFailed("Authentication required")

    uid = decode_session_token(token)
    if uid is None:
        try:
            uid = verifier.verify(token)["uid"]
        except AuthenticationFailed:
            log_auth_event("token_invalid", request=request)
            raise

    user = get_user_by_uid(db, uid)
    if user is None:
        log_auth_event("user_missing", request=request, extra={"uid": uid})
        raise AuthenticationFailed("User not found")
    if not user.is_active:
        log_auth_event("user_inactive", request=request, extra={"uid": uid})
        raise PermissionDenied("User account is not active")
    return user


def get_current_admin(
    request: Request,
    token: Optional[str] = Security(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Admin:
    if not token:
        raise AuthenticationFailed("Authentication required")
    try:
        admin, _session = admin_auth.verify_access_token(db, token)
    except AuthenticationFailed as exc:
        log_auth_event("admin_token_rejected", request=request, extra={"reason": exc.message})
        raise
    return admin


def require_permission(permission: str) -> Callable[..., Admin]:
    def _dependency(request: Request, admin: Admin = Depends(get_current_admin)) -> Admin:
        if not admin_auth.has_permission(admin, permission):
            log_auth_event(
                "admin_permission_denied",
                request=request,
                extra={"admin_id": admin.id, "permission": permission},
            )
            raise PermissionDenied("Insufficient permissions")
        return admin

    return _dependency
