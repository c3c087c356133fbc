"""Admin session tokens.

Access tokens are short-lived JWTs carrying the session id (``sid``) and a
unique ``jti``. Refresh tokens are opaque random strings stored only as a
SHA-256 on ``AdminSession``; each refresh revokes the old session and issues
a new pair. MFA logins first receive a single-use challenge JWT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pyotp
from fastapi import Request
from jose import JWTError
from sqlalchemy.orm import Session

from workforce.core.errors import AuthenticationFailed, PermissionDenied, RateLimited, ValidationFailed
from workforce.core.security import (
    create_access_token,
    decode_token,
    generate_backup_codes,
    generate_opaque_token,
    hash_token,
    new_jti,
    token_expiry,
    verify_and_consume_backup_code,
    verify_password,
)
from workforce.core.settings import settings
from workforce.core.token_blacklist import cleanup_expired, is_token_revoked, revoke_token
from workforce.db.base import as_utc
from workforce.models.admin import Admin, AdminSession
from workforce.models.enums import ActorType, AdminRole, AuditSeverity, AuditStatus
from workforce.services.audit import client_ip, log_event

logger = logging.getLogger("security")

ALL_PERMISSIONS = (
    "manage_users",
    "view_attendance",
    "access_reports",
    "manage_announcements",
    "manage_feedback",
    "manage_admins",
    "view_audit_logs",
    "system_settings",
)

ROLE_PERMISSIONS: dict[AdminRole, tuple[str, ...]] = {
    AdminRole.SUPER_ADMIN: ALL_PERMISSIONS,
    AdminRole.ADMIN: (
        "manage_users",
        "view_attendance",
        "access_reports",
        "manage_announcements",
        "manage_feedback",
    ),
    AdminRole.MODERATOR: (
        "view_attendance",
        "access_reports",
        "manage_announcements",
    ),
}

INVALID_CREDENTIALS = "Invalid email or password"


def permissions_for(admin: Admin) -> list[str]:
    return list(ROLE_PERMISSIONS.get(admin.role, ()))


def has_permission(admin: Admin, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(admin.role, ())


# ── Device fingerprint ──────────────────────────────────────────────────


def _detect_browser(user_agent: str) -> str:
    for marker, name in (
        ("Edg/", "Edge"),
        ("OPR/", "Opera"),
        ("Chrome/", "Chrome"),
        ("Firefox/", "Firefox"),
        ("Safari/", "Safari"),
    ):
        if marker in user_agent:
            return name
    return "Unknown"


def _detect_platform(user_agent: str) -> str:
    for marker, name in (
        ("Windows", "Windows"),
        ("Android", "Android"),
        ("iPhone", "iOS"),
        ("iPad", "iOS"),
        ("Mac OS X", "macOS"),
        ("Linux", "Linux"),
    ):
        if marker in user_agent:
            return name
    return "Unknown"


def device_fingerprint(request: Request) -> dict:
    user_agent = request.headers.get("user-agent") or ""
    language = (request.headers.get("accept-language") or "").split(",")[0].strip() or None
    return {
        "browser": _detect_browser(user_agent),
        "platform": _detect_platform(user_agent),
        "isMobile": "Mobi" in user_agent or "Android" in user_agent or "iPhone" in user_agent,
        "userAgent": user_agent[:200],
        "language": language,
        "ip": client_ip(request),
    }


# ── Token pairs ─────────────────────────────────────────────────────────


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    admin: Admin
    session: AdminSession


@dataclass
class MfaChallenge:
    mfa_token: str
    admin: Admin


def _access_delta() -> timedelta:
    return timedelta(minutes=settings.admin_access_token_minutes)


def _jti_key(jti: str) -> str:
    return f"jti:{jti}"


def issue_token_pair(db: Session, *, admin: Admin, device: dict) -> TokenPair:
    now = datetime.now(timezone.utc)
    refresh_token = generate_opaque_token()
    jti = new_jti()
    session = AdminSession(
        admin_id=admin.id,
        refresh_token_hash=hash_token(refresh_token),
        access_jti=jti,
        device_info=device,
        ip_address=device.get("ip"),
        expires_at=now + timedelta(days=settings.admin_refresh_token_days),
        last_used_at=now,
    )
    db.add(session)
    db.flush()

    access_token = create_access_token(
        {
            "sub": str(admin.id),
            "sid": session.id,
            "jti": jti,
            "role": admin.role.value,
            "type": "access",
        },
        expires_delta=_access_delta(),
    )
    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(_access_delta().total_seconds()),
        admin=admin,
        session=session,
    )


def _deny_access_jti(db: Session, session: AdminSession) -> None:
    revoke_token(db, _jti_key(session.access_jti), datetime.now(timezone.utc) + _access_delta())


def _revoke_session(db: Session, session: AdminSession, reason: str) -> None:
    if session.revoked_at is None:
        session.revoked_at = datetime.now(timezone.utc)
        session.revoked_reason = reason
    _deny_access_jti(db, session)
    db.flush()


# ── Login / MFA ─────────────────────────────────────────────────────────


def _lock_remaining_seconds(admin: Admin, now: datetime) -> int:
    locked_until = as_utc(admin.locked_until)
    if locked_until is None or locked_until <= now:
        return 0
    return max(1, int((locked_until - now).total_seconds()))


def _register_failure(db: Session, admin: Admin, *, request: Optional[Request], reason: str) -> None:
    """Count a failed credential check and lock the account at the limit.

    Commits on its own: the caller is about to raise.
    """
    now = datetime.now(timezone.utc)
    admin.failed_login_attempts += 1
    locked = admin.failed_login_attempts >= settings.admin_max_login_attempts
    if locked:
        admin.locked_until = now + timedelta(minutes=settings.admin_lockout_minutes)
        admin.failed_login_attempts = 0
    log_event(
        db,
        event_type="admin.account_locked" if locked else "admin.login_failed",
        action="Account locked after repeated failures" if locked else f"Login failed: {reason}",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="admin",
        target_id=admin.id,
        request=request,
        status=AuditStatus.FAILURE,
        severity=AuditSeverity.HIGH if locked else AuditSeverity.MEDIUM,
    )
    db.commit()
    if locked:
        raise RateLimited(
            "Account locked due to too many failed attempts",
            retry_after=settings.admin_lockout_minutes * 60,
        )


def login(
    db: Session,
    *,
    email: str,
    password: str,
    device: dict,
    request: Optional[Request] = None,
) -> TokenPair | MfaChallenge:
    email = email.strip().lower()
    admin = db.query(Admin).filter(Admin.email == email).first()
    if admin is None:
        log_event(
            db,
            event_type="admin.login_failed",
            action="Login failed: unknown email",
            actor_type=ActorType.ADMIN,
            actor_email=email,
            request=request,
            status=AuditStatus.FAILURE,
            severity=AuditSeverity.MEDIUM,
        )
        db.commit()
        raise AuthenticationFailed(INVALID_CREDENTIALS)

    now = datetime.now(timezone.utc)
    remaining = _lock_remaining_seconds(admin, now)
    if remaining:
        raise RateLimited("Account is temporarily locked", retry_after=remaining)

    if not verify_password(password, admin.hashed_password):
        _register_failure(db, admin, request=request, reason="bad password")
        raise AuthenticationFailed(INVALID_CREDENTIALS)

    if not admin.is_active:
        raise PermissionDenied("Admin account is inactive")

    if admin.totp_enabled and admin.totp_secret:
        mfa_token = create_access_token(
            {"sub": str(admin.id), "mfa_pending": True, "jti": new_jti(), "type": "mfa"},
            expires_delta=timedelta(minutes=settings.admin_mfa_token_minutes),
        )
        log_event(
            db,
            event_type="admin.mfa_challenge",
            action="MFA challenge issued",
            actor_type=ActorType.ADMIN,
            actor_id=admin.id,
            actor_email=admin.email,
            request=request,
        )
        db.flush()
        return MfaChallenge(mfa_token=mfa_token, admin=admin)

    admin.failed_login_attempts = 0
    admin.locked_until = None
    admin.last_login_at = now
    pair = issue_token_pair(db, admin=admin, device=device)
    log_event(
        db,
        event_type="admin.login",
        action="Admin logged in",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        details={"device": device},
        request=request,
    )
    return pair


def _check_totp_or_backup(db: Session, admin: Admin, code: str) -> bool:
    code = (code or "").strip()
    if admin.totp_secret and code.isdigit() and len(code) == 6:
        if pyotp.TOTP(admin.totp_secret).verify(code, valid_window=1):
            return True
    matched, remaining = verify_and_consume_backup_code(code, list(admin.backup_codes_hash or []))
    if matched:
        admin.backup_codes_hash = remaining
        db.flush()
    return matched


def verify_mfa(
    db: Session,
    *,
    mfa_token: str,
    code: str,
    device: dict,
    request: Optional[Request] = None,
) -> TokenPair:
    try:
        payload = decode_token(mfa_token)
    except JWTError as exc:
        raise AuthenticationFailed("Invalid or expired MFA token") from exc
    if not payload.get("mfa_pending"):
        raise AuthenticationFailed("Token is not an MFA challenge token")
    if is_token_revoked(db, mfa_token):
        raise AuthenticationFailed("MFA token already used")

    admin = db.get(Admin, int(payload["sub"]))
    if admin is None or not admin.is_active:
        raise AuthenticationFailed("Invalid or expired MFA token")

    remaining = _lock_remaining_seconds(admin, datetime.now(timezone.utc))
    if remaining:
        raise RateLimited("Account is temporarily locked", retry_after=remaining)

    expires_at = token_expiry(payload) or datetime.now(timezone.utc) + timedelta(
        minutes=settings.admin_mfa_token_minutes
    )
    # One code attempt per challenge token, right or wrong.
    revoke_token(db, mfa_token, expires_at)

    if not _check_totp_or_backup(db, admin, code):
        _register_failure(db, admin, request=request, reason="bad MFA code")
        raise AuthenticationFailed("Invalid verification code")

    admin.failed_login_attempts = 0
    admin.locked_until = None
    admin.last_login_at = datetime.now(timezone.utc)
    pair = issue_token_pair(db, admin=admin, device=device)
    log_event(
        db,
        event_type="admin.login",
        action="Admin logged in with MFA",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        details={"device": device, "mfa": True},
        request=request,
    )
    return pair


# ── Refresh / verify / logout ───────────────────────────────────────────


def _find_session_by_refresh(db: Session, refresh_token: str) -> Optional[AdminSession]:
    return (
        db.query(AdminSession)
        .filter(AdminSession.refresh_token_hash == hash_token(refresh_token))
        .first()
    )


def refresh(
    db: Session,
    *,
    refresh_token: str,
    device: dict,
    request: Optional[Request] = None,
) -> TokenPair:
    session = _find_session_by_refresh(db, refresh_token)
    if session is None:
        raise AuthenticationFailed("Invalid refresh token")

    now = datetime.now(timezone.utc)
    if session.revoked_at is not None:
        if session.revoked_reason == "rotated" and session.admin is not None:
            # A rotated token presented again means it leaked; burn the live ones too.
            logger.warning("refresh token reuse detected for admin session %s", session.id)
            revoke_all_sessions(db, admin=session.admin, reason="reuse_detected")
            db.commit()
        raise AuthenticationFailed("Refresh token has been revoked")
    if as_utc(session.expires_at) <= now:
        raise AuthenticationFailed("Refresh token has expired")

    admin = session.admin
    if admin is None or not admin.is_active:
        raise AuthenticationFailed("Admin account is inactive")

    _revoke_session(db, session, "rotated")
    pair = issue_token_pair(db, admin=admin, device=device)
    log_event(
        db,
        event_type="admin.token_refresh",
        action="Admin session rotated",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        details={"previousSessionId": session.id, "sessionId": pair.session.id},
        request=request,
    )
    return pair


def verify_access_token(db: Session, token: str) -> tuple[Admin, AdminSession]:
    try:
        payload = decode_token(token)
    except JWTError as exc:
        raise AuthenticationFailed("Invalid or expired token") from exc
    if payload.get("type") != "access" or payload.get("mfa_pending"):
        raise AuthenticationFailed("Invalid token type")

    jti = payload.get("jti")
    sid = payload.get("sid")
    if not jti or sid is None:
        raise AuthenticationFailed("Invalid token")
    if is_token_revoked(db, _jti_key(jti)):
        raise AuthenticationFailed("Token has been revoked")

    session = db.get(AdminSession, int(sid))
    if session is None or session.revoked_at is not None or session.access_jti != jti:
        raise AuthenticationFailed("Session is no longer valid")

    admin = session.admin
    if admin is None or not admin.is_active:
        raise AuthenticationFailed("Admin account is inactive")
    return admin, session


def logout(
    db: Session,
    *,
    access_token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    request: Optional[Request] = None,
) -> None:
    """Revoke whatever session the given tokens identify.

    Never raises for unknown or expired tokens; the client is told the
    logout succeeded either way.
    """
    session: Optional[AdminSession] = None
    if refresh_token:
        session = _find_session_by_refresh(db, refresh_token)
    if session is None and access_token:
        try:
            payload = decode_token(access_token)
        except JWTError:
            payload = {}
        sid = payload.get("sid")
        if sid is not None:
            session = db.get(AdminSession, int(sid))

    if session is None:
        return

    _revoke_session(db, session, "logout")
    log_event(
        db,
        event_type="admin.logout",
        action="Admin logged out",
        actor_type=ActorType.ADMIN,
        actor_id=session.admin_id,
        request=request,
    )


def revoke_all_sessions(db: Session, *, admin: Admin, reason: str = "revoked") -> int:
    sessions = (
        db.query(AdminSession)
        .filter(AdminSession.admin_id == admin.id, AdminSession.revoked_at.is_(None))
        .all()
    )
    for session in sessions:
        _revoke_session(db, session, reason)
    return len(sessions)


# ── MFA enrolment ───────────────────────────────────────────────────────


def setup_mfa(db: Session, *, admin: Admin) -> tuple[str, str]:
    if admin.totp_enabled:
        raise ValidationFailed("MFA is already enabled")
    secret = pyotp.random_base32()
    admin.totp_secret = secret
    db.flush()
    uri = pyotp.TOTP(secret).provisioning_uri(name=admin.email, issuer_name=settings.project_name)
    return secret, uri


def enable_mfa(db: Session, *, admin: Admin, code: str, request: Optional[Request] = None) -> list[str]:
    if admin.totp_enabled:
        raise ValidationFailed("MFA is already enabled")
    if not admin.totp_secret:
        raise ValidationFailed("Run MFA setup first")
    if not pyotp.TOTP(admin.totp_secret).verify(code.strip(), valid_window=1):
        raise ValidationFailed("Invalid verification code")

    plaintexts, hashed = generate_backup_codes()
    admin.totp_enabled = True
    admin.backup_codes_hash = hashed
    log_event(
        db,
        event_type="admin.mfa_enabled",
        action="MFA enabled",
        actor_type=ActorType.ADMIN,
        actor_id=admin.id,
        actor_email=admin.email,
        request=request,
        severity=AuditSeverity.HIGH,
    )
    return plaintexts


# ── Maintenance ─────────────────────────────────────────────────────────


def sweep_expired_tokens(db: Session, *, now: Optional[datetime] = None) -> dict:
    """Drop revocation entries whose tokens have expired on their own.

    Refresh and logout add a row per revoked token; once the token's ``exp``
    has passed the signature check rejects it and the row is dead weight.
    """
    timestamp = now or datetime.now(timezone.utc)
    deleted = cleanup_expired(db, now=timestamp)
    if deleted:
        logger.info("swept expired revoked tokens", extra={"deleted": deleted})
    return {"timestamp": timestamp.isoformat(), "revokedTokens": deleted}
