from __future__ import annotations

import hashlib
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from workforce.core.settings import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def generate_opaque_token(num_bytes: int = 32) -> str:
    return secrets.token_hex(num_bytes)


def new_jti() -> str:
    return uuid.uuid4().hex


def create_access_token(data: Dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.setdefault("iat", now)
    to_encode.update({"exp": now + expires_delta})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.algorithm])


def token_expiry(payload: Dict[str, Any]) -> Optional[datetime]:
    exp = payload.get("exp")
    if isinstance(exp, (int, float)):
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    return None


# ── Backup Codes ────────────────────────────────────────────────────────


_BACKUP_CODE_CHARS = string.ascii_uppercase + string.digits
_BACKUP_CODE_LENGTH = 8
_BACKUP_CODE_COUNT = 10


def generate_backup_codes(count: int = _BACKUP_CODE_COUNT) -> tuple[list[str], list[str]]:
    """Generate MFA backup codes and their bcrypt hashes.

    Returns (plaintext_codes, hashed_codes). Plaintext is shown to the admin
    once; only the hashes are stored. Format: XXXX-XXXX.
    """
    plaintexts: list[str] = []
    hashed: list[str] = []
    for _ in range(count):
        raw = "".join(secrets.choice(_BACKUP_CODE_CHARS) for _ in range(_BACKUP_CODE_LENGTH))
        code = f"{raw[:4]}-{raw[4:]}"
        plaintexts.append(code)
        hashed.append(pwd_context.hash(code))
    return plaintexts, hashed


def verify_and_consume_backup_code(
    code: str, hashed_list: list[str]
) -> tuple[bool, list[str]]:
    """Check a backup code against the hashed list.

    Returns (matched, remaining_hashed_list); a matched code is removed.
    """
    normalised = code.strip().upper()
    for i, h in enumerate(hashed_list):
        if pwd_context.verify(normalised, h):
            remaining = hashed_list[:i] + hashed_list[i + 1 :]
            return True, remaining
    return False, hashed_list
