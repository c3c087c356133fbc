"""Database-backed JWT denylist.

Stores a SHA-256 of the token (or of its ``jti``) so raw JWTs never hit the
database. Shared by every worker because it lives in the primary store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from workforce.core.security import hash_token
from workforce.db.base import as_utc
from workforce.models.revoked_token import RevokedToken


def revoke_token(db: Session, token: str, expires_at: datetime) -> bool:
    """Add a token to the revocation list. Returns False if it was already there."""
    token_hash = hash_token(token)
    existing = db.query(RevokedToken).filter(RevokedToken.token_hash == token_hash).first()
    if existing:
        return False

    entry = RevokedToken(
        token_hash=token_hash,
        expires_at=expires_at,
        revoked_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()
    return True


def is_token_revoked(db: Session, token: str) -> bool:
    token_hash = hash_token(token)
    entry = db.query(RevokedToken).filter(RevokedToken.token_hash == token_hash).first()
    if entry is None:
        return False

    # Past its own expiry the token is rejected on signature anyway.
    if as_utc(entry.expires_at) <= datetime.now(timezone.utc):
        db.delete(entry)
        db.flush()
        return False

    return True


def cleanup_expired(db: Session, *, now: Optional[datetime] = None) -> int:
    """Remove expired revocation entries. Returns number of rows deleted."""
    now = now or datetime.now(timezone.utc)
    count = (
        db.query(RevokedToken)
        .filter(RevokedToken.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.flush()
    return count
