"""End-user identity token verification.

``firebase`` verifies Firebase Auth ID tokens (RS256) against Google's
rotating x509 certificates. ``local`` accepts HS256 tokens signed with the
service's own secret, for development and tests.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwt

from workforce.core.errors import AuthenticationFailed, ServiceUnavailable
from workforce.core.security import create_access_token, decode_token
from workforce.core.settings import Settings, settings

logger = logging.getLogger("security")

_MAX_AGE = re.compile(r"max-age=(\d+)")
SESSION_TOKEN_TYPE = "session"
# Tokens this service mints for itself; never valid as an identity token.
_INTERNAL_TOKEN_TYPES = frozenset({"access", "mfa", SESSION_TOKEN_TYPE})


class IdentityVerifier:
    name = "identity"

    def verify(self, token: str) -> Dict[str, Any]:
        """Return claims with at least ``uid`` or raise ``AuthenticationFailed``."""
        raise NotImplementedError

    def close(self) -> None:
        return None


class LocalIdentityVerifier(IdentityVerifier):
    name = "local"

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            payload = decode_token(token)
        except JWTError as exc:
            raise AuthenticationFailed("Invalid or expired token") from exc
        if payload.get("type") in _INTERNAL_TOKEN_TYPES or payload.get("mfa_pending"):
            raise AuthenticationFailed("Not an identity token")
        uid = payload.get("uid") or payload.get("sub")
        if not uid:
            raise AuthenticationFailed("Token has no subject")
        return {**payload, "uid": str(uid)}


class FirebaseIdentityVerifier(IdentityVerifier):
    name = "firebase"

    def __init__(self, project_id: str, *, certs_url: str, timeout: float = 5.0,
                 client: httpx.Client | None = None) -> None:
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self.certs_url = certs_url
        self._client = client or httpx.Client(timeout=timeout)
        self._certs: dict[str, str] = {}
        self._certs_expire_at = 0.0
        self._lock = threading.Lock()

    def _public_certs(self) -> dict[str, str]:
        with self._lock:
            if self._certs and time.monotonic() < self._certs_expire_at:
                return self._certs
            try:
                resp = self._client.get(self.certs_url)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                if self._certs:
                    logger.warning("certificate refresh failed, reusing cached keys: %s", exc)
                    return self._certs
                raise ServiceUnavailable("Identity provider unavailable") from exc
            match = _MAX_AGE.search(resp.headers.get("cache-control", ""))
            self._certs = resp.json()
            self._certs_expire_at = time.monotonic() + (int(match.group(1)) if match else 3600)
            return self._certs

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise AuthenticationFailed("Malformed token") from exc
        if header.get("alg") != "RS256":
            raise AuthenticationFailed("Unexpected token algorithm")

        cert = self._public_certs().get(header.get("kid", ""))
        if cert is None:
            raise AuthenticationFailed("Unknown token signing key")
        try:
            payload = jwt.decode(
                token,
                cert,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
                options={"verify_at_hash": False},
            )
        except JWTError as exc:
            raise AuthenticationFailed("Invalid or expired token") from exc
        uid = payload.get("sub")
        if not uid:
            raise AuthenticationFailed("Token has no subject")
        return {**payload, "uid": uid}

    def close(self) -> None:
        self._client.close()


def build_identity_verifier(config: Settings) -> IdentityVerifier:
    if config.identity_provider == "firebase":
        if not config.firebase_project_id:
            raise RuntimeError("FIREBASE_PROJECT_ID is required for IDENTITY_PROVIDER=firebase")
        return FirebaseIdentityVerifier(config.firebase_project_id, certs_url=config.firebase_certs_url)
    if config.identity_provider == "local":
        return LocalIdentityVerifier()
    raise RuntimeError(f"Unsupported IDENTITY_PROVIDER: {config.identity_provider}")


def create_session_token(uid: str) -> str:
    return create_access_token(
        {"sub": uid, "type": SESSION_TOKEN_TYPE},
        expires_delta=timedelta(days=settings.session_cookie_days),
    )


def decode_session_token(token: str) -> Optional[str]:
    """Return the uid for one of our session cookies, None for anything else."""
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    if payload.get("type") != SESSION_TOKEN_TYPE:
        return None
    uid = payload.get("sub")
    return str(uid) if uid else None
