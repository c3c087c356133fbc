"""Email verification one-time codes.

A user has at most one pending ``OtpSession``. The 6-digit code and the
session token handed to the client are stored only as SHA-256 digests.
"""

from __future__ import annotations

import hmac
import logging
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from workforce.core.errors import RateLimited, ServiceError, ValidationFailed
from workforce.core.security import generate_opaque_token, hash_token
from workforce.core.settings import settings
from workforce.db.base import as_utc
from workforce.models.enums import AuditSeverity, AuditStatus
from workforce.models.otp import OtpSession
from workforce.models.user import User
from workforce.services import email as email_service
from workforce.services.audit import log_event

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^\d{6}$")


class OtpDeliveryFailed(ServiceError):
    pass


@dataclass
class OtpIssued:
    session_token: str
    expires_in: int


def generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def _get_session(db: Session, user_id: int) -> Optional[OtpSession]:
    return db.query(OtpSession).filter(OtpSession.user_id == user_id).first()


def send_code(
    db: Session,
    *,
    user: User,
    now: Optional[datetime] = None,
    request: Optional[Request] = None,
) -> OtpIssued:
    if user.email_verified:
        raise ValidationFailed("Email is already verified")

    moment = _now(now)
    existing = _get_session(db, user.id)
    resend_count = 0
    if existing is not None:
        if as_utc(existing.expires_at) <= moment:
            db.delete(existing)
            db.flush()
            existing = None
        else:
            elapsed = (moment - as_utc(existing.last_sent_at)).total_seconds()
            cooldown = settings.otp_resend_cooldown_seconds
            if elapsed < cooldown:
                wait = math.ceil(cooldown - elapsed)
                raise RateLimited(
                    f"Please wait {wait} seconds before requesting a new code",
                    retry_after=wait,
                )
            if existing.resend_count >= settings.otp_max_resends:
                raise RateLimited(
                    "Maximum resend attempts reached",
                    retry_after=math.ceil((as_utc(existing.expires_at) - moment).total_seconds()),
                )
            resend_count = existing.resend_count + 1

    code = generate_code()
    session_token = generate_opaque_token()
    expires_at = moment + timedelta(minutes=settings.otp_expiry_minutes)

    if existing is None:
        existing = OtpSession(user_id=user.id, email=user.email)
        db.add(existing)
    existing.email = user.email
    existing.code_hash = hash_token(code)
    existing.session_token_hash = hash_token(session_token)
    existing.expires_at = expires_at
    existing.last_sent_at = moment
    existing.resend_count = resend_count
    existing.verify_attempts = 0
    db.flush()

    subject, html, text = email_service.render_verification_email(
        name=user.display_name, code=code, expiry_minutes=settings.otp_expiry_minutes
    )
    try:
        email_service.send_email(to_address=user.email, subject=subject, html=html, text=text)
    except email_service.EmailSendError as exc:
        logger.error("verification email to user %s failed: %s", user.id, exc)
        db.delete(existing)
        db.flush()
        raise OtpDeliveryFailed("Failed to send verification email") from exc

    log_event(
        db,
        event_type="user.otp_sent",
        action="Verification code sent",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="user",
        target_id=user.uid,
        details={"resendCount": resend_count},
        request=request,
    )
    return OtpIssued(session_token=session_token, expires_in=settings.otp_expiry_minutes * 60)


def verify_code(
    db: Session,
    *,
    user: User,
    session_token: str,
    code: str,
    now: Optional[datetime] = None,
    request: Optional[Request] = None,
) -> User:
    """Check ``code``; wrong codes count toward the attempt limit.

    Every branch that changes the session is flushed here; the caller commits
    even when this raises so attempt counts survive.
    """
    code = (code or "").strip()
    if not CODE_PATTERN.match(code):
        raise ValidationFailed("Code must be 6 digits")

    moment = _now(now)
    otp = _get_session(db, user.id)
    if otp is None or not hmac.compare_digest(otp.session_token_hash, hash_token(session_token or "")):
        raise ValidationFailed("Invalid or expired session")

    if as_utc(otp.expires_at) <= moment:
        db.delete(otp)
        db.flush()
        raise ValidationFailed("Verification code has expired. Please request a new one.")

    max_attempts = settings.otp_max_verify_attempts
    if otp.verify_attempts >= max_attempts:
        db.delete(otp)
        db.flush()
        raise RateLimited("Too many failed attempts. Please request a new code.", retry_after=0)

    if not hmac.compare_digest(otp.code_hash, hash_token(code)):
        otp.verify_attempts += 1
        remaining = max_attempts - otp.verify_attempts
        log_event(
            db,
            event_type="user.otp_failed",
            action="Verification code rejected",
            actor_id=user.uid,
            actor_email=user.email,
            target_type="user",
            target_id=user.uid,
            details={"attempts": otp.verify_attempts},
            request=request,
            status=AuditStatus.FAILURE,
            severity=AuditSeverity.MEDIUM if remaining <= 0 else AuditSeverity.LOW,
        )
        db.flush()
        raise ValidationFailed(
            f"Invalid code. {remaining} attempts remaining.",
            extra={"attemptsRemaining": remaining},
        )

    user.email_verified = True
    user.email_verified_at = moment
    db.delete(otp)
    log_event(
        db,
        event_type="user.email_verified",
        action="Email verified",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="user",
        target_id=user.uid,
        request=request,
    )
    db.flush()
    return user


def status(db: Session, *, user: User, now: Optional[datetime] = None) -> dict:
    moment = _now(now)
    otp = _get_session(db, user.id)
    if user.email_verified or otp is None or as_utc(otp.expires_at) <= moment:
        return {
            "verified": user.email_verified,
            "pending": False,
            "can_resend": not user.email_verified,
            "resend_in": 0,
        }

    elapsed = (moment - as_utc(otp.last_sent_at)).total_seconds()
    resend_in = max(0, math.ceil(settings.otp_resend_cooldown_seconds - elapsed))
    return {
        "verified": False,
        "pending": True,
        "can_resend": resend_in == 0 and otp.resend_count < settings.otp_max_resends,
        "resend_in": resend_in,
        "expires_at": otp.expires_at,
        "attempts_remaining": max(0, settings.otp_max_verify_attempts - otp.verify_attempts),
    }
