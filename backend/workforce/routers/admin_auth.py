"""Admin login, token rotation, MFA and logout."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Security
from sqlalchemy.orm import Session

from workforce.core.deps import get_current_admin, oauth2_scheme, require_permission
from workforce.core.errors import ServiceError
from workforce.core.logging import log_auth_event
from workforce.db.session import get_db
from workforce.models.admin import Admin
from workforce.schemas.admin_auth import (
    AdminLoginRequest,
    AdminRead,
    BackupCodesRead,
    LoginResult,
    LogoutRequest,
    MfaEnableRequest,
    MfaSetupRead,
    MfaVerifyRequest,
    RefreshRequest,
    TokenPairRead,
)
from workforce.schemas.base import Acknowledged, Envelope
from workforce.services import admin_auth
from workforce.services.admin_auth import MfaChallenge, TokenPair

router = APIRouter(prefix="/api/admin/auth", tags=["admin-auth"])


def _admin_read(admin: Admin) -> AdminRead:
    read = AdminRead.model_validate(admin)
    read.permissions = admin_auth.permissions_for(admin)
    return read


def _pair_read(pair: TokenPair) -> TokenPairRead:
    return TokenPairRead(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        admin=_admin_read(pair.admin),
    )


@router.post("/login", response_model=Envelope[LoginResult])
def login(
    request: Request,
    payload: AdminLoginRequest,
    db: Session = Depends(get_db),
) -> Envelope:
    try:
        result = admin_auth.login(
            db,
            email=payload.email,
            password=payload.password,
            device=admin_auth.device_fingerprint(request),
            request=request,
        )
    except ServiceError as exc:
        log_auth_event("admin_login_failed", request=request, extra={"email": payload.email, "reason": exc.message})
        raise
    db.commit()

    if isinstance(result, MfaChallenge):
        log_auth_event("admin_mfa_challenge", request=request, extra={"admin_id": result.admin.id})
        return Envelope(data=LoginResult(mfa_required=True, mfa_token=result.mfa_token))
    log_auth_event("admin_login", request=request, extra={"admin_id": result.admin.id})
    return Envelope(data=LoginResult(tokens=_pair_read(result)))


@router.post("/verify-mfa", response_model=Envelope[TokenPairRead])
def verify_mfa(
    request: Request,
    payload: MfaVerifyRequest,
    db: Session = Depends(get_db),
) -> Envelope:
    try:
        pair = admin_auth.verify_mfa(
            db,
            mfa_token=payload.mfa_token,
            code=payload.code,
            device=admin_auth.device_fingerprint(request),
            request=request,
        )
    except ServiceError as exc:
        log_auth_event("admin_mfa_failed", request=request, extra={"reason": exc.message})
        raise
    db.commit()
    return Envelope(data=_pair_read(pair))


@router.post("/refresh", response_model=Envelope[TokenPairRead])
def refresh(
    request: Request,
    payload: RefreshRequest,
    db: Session = Depends(get_db),
) -> Envelope:
    try:
        pair = admin_auth.refresh(
            db,
            refresh_token=payload.refresh_token,
            device=admin_auth.device_fingerprint(request),
            request=request,
        )
    except ServiceError as exc:
        log_auth_event("admin_refresh_failed", request=request, extra={"reason": exc.message})
        raise
    db.commit()
    return Envelope(data=_pair_read(pair))


@router.get("/verify", response_model=Envelope[AdminRead])
def verify(admin: Admin = Depends(get_current_admin)) -> Envelope:
    return Envelope(data=_admin_read(admin))


@router.post("/logout", response_model=Envelope[Acknowledged])
def logout(
    request: Request,
    payload: Optional[LogoutRequest] = None,
    token: Optional[str] = Security(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Envelope:
    """Always reports success; a failed revocation is only logged."""
    try:
        admin_auth.logout(
            db,
            access_token=token,
            refresh_token=payload.refresh_token if payload else None,
            request=request,
        )
        db.commit()
    except Exception:
        db.rollback()
        log_auth_event("admin_logout_failed", request=request)
        admin_auth.logger.exception("admin logout failed")
    return Envelope(data=Acknowledged(message="Logged out"))


@router.post("/mfa/setup", response_model=Envelope[MfaSetupRead])
def mfa_setup(
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
) -> Envelope:
    secret, uri = admin_auth.setup_mfa(db, admin=admin)
    db.commit()
    return Envelope(data=MfaSetupRead(secret=secret, provisioning_uri=uri))


@router.post("/mfa/enable", response_model=Envelope[BackupCodesRead])
def mfa_enable(
    request: Request,
    payload: MfaEnableRequest,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
) -> Envelope:
    codes = admin_auth.enable_mfa(db, admin=admin, code=payload.code, request=request)
    db.commit()
    return Envelope(data=BackupCodesRead(backup_codes=codes))


@router.post("/sweep", response_model=Envelope[dict])
def sweep_tokens(
    db: Session = Depends(get_db),
    _admin: Admin = Depends(require_permission("manage_admins")),
) -> Envelope:
    result = admin_auth.sweep_expired_tokens(db)
    db.commit()
    return Envelope(data=result)
