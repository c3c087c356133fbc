"""Face similarity verification.

Images are decoded and size-checked locally, then compared by an external
provider. No biometric computation happens in this process.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.orm import Session

from workforce.core.errors import ServiceUnavailable, ValidationFailed
from workforce.core.settings import Settings
from workforce.models.user import User
from workforce.services.audit import log_event

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

CONFIDENCE_BANDS = (
    (0.95, "very_high"),
    (0.85, "high"),
    (0.70, "medium"),
    (0.50, "low"),
)


class FaceProviderError(RuntimeError):
    pass


def confidence_level(similarity: float) -> str:
    for floor, label in CONFIDENCE_BANDS:
        if similarity >= floor:
            return label
    return "very_low"


def decode_image(value: str, *, max_bytes: int, label: str = "image") -> bytes:
    if not value or not isinstance(value, str):
        raise ValidationFailed(f"{label} is required")
    raw = _DATA_URL_PREFIX.sub("", value.strip(), count=1)
    # base64 inflates by 4/3; reject oversized payloads before decoding them.
    if len(raw) * 3 // 4 > max_bytes + 3:
        raise ValidationFailed(f"{label} exceeds the {max_bytes // (1024 * 1024)} MB limit")
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationFailed(f"{label} is not valid base64") from exc
    if not data:
        raise ValidationFailed(f"{label} is empty")
    if len(data) > max_bytes:
        raise ValidationFailed(f"{label} exceeds the {max_bytes // (1024 * 1024)} MB limit")
    return data


@dataclass
class FaceMatch:
    matched: bool
    similarity: float
    confidence: str
    provider: str
    details: dict = field(default_factory=dict)


class FaceProvider:
    name = "provider"

    def similarity(self, source: bytes, target: bytes) -> tuple[float, dict]:
        raise NotImplementedError

    def close(self) -> None:
        return None


class BypassFaceProvider(FaceProvider):
    """Accepts every pair; used when no provider is configured."""

    name = "none"

    def similarity(self, source: bytes, target: bytes) -> tuple[float, dict]:
        return 1.0, {"bypassed": True}


class AzureFaceProvider(FaceProvider):
    name = "azure"

    def __init__(self, endpoint: str, api_key: str, *, timeout: float = 15.0,
                 client: httpx.Client | None = None) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def _post(self, path: str, **kwargs) -> httpx.Response:
        headers = {"Ocp-Apim-Subscription-Key": self.api_key, **kwargs.pop("headers", {})}
        try:
            resp = self._client.post(f"{self.endpoint}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise FaceProviderError(f"Azure request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise FaceProviderError(f"Azure {path} failed: {resp.status_code}")
        return resp

    def _detect(self, image: bytes) -> Optional[str]:
        resp = self._post(
            "/face/v1.0/detect",
            params={"returnFaceId": "true"},
            content=image,
            headers={"Content-Type": "application/octet-stream"},
        )
        faces = resp.json() or []
        return faces[0].get("faceId") if faces else None

    def similarity(self, source: bytes, target: bytes) -> tuple[float, dict]:
        source_id = self._detect(source)
        target_id = self._detect(target)
        if not source_id or not target_id:
            return 0.0, {"message": "Could not detect face in one or both images"}
        result = self._post("/face/v1.0/verify", json={"faceId1": source_id, "faceId2": target_id}).json()
        return float(result.get("confidence") or 0.0), {"isIdentical": bool(result.get("isIdentical"))}

    def close(self) -> None:
        self._client.close()


class FaceVerifier:
    def __init__(self, provider: FaceProvider, *, threshold: float, max_image_bytes: int) -> None:
        self.provider = provider
        self.threshold = threshold
        self.max_image_bytes = max_image_bytes

    @property
    def enabled(self) -> bool:
        return not isinstance(self.provider, BypassFaceProvider)

    def verify(self, image1: str, image2: str) -> FaceMatch:
        source = decode_image(image1, max_bytes=self.max_image_bytes, label="image1")
        target = decode_image(image2, max_bytes=self.max_image_bytes, label="image2")
        try:
            similarity, details = self.provider.similarity(source, target)
        except FaceProviderError as exc:
            logger.error("face provider %s failed: %s", self.provider.name, exc)
            raise ServiceUnavailable("Face verification service unavailable") from exc

        similarity = max(0.0, min(1.0, similarity))
        matched = similarity >= self.threshold and details.get("isIdentical", True)
        return FaceMatch(
            matched=bool(matched),
            similarity=round(similarity, 4),
            confidence=confidence_level(similarity),
            provider=self.provider.name,
            details=details,
        )

    def status(self) -> dict:
        return {
            "provider": self.provider.name,
            "enabled": self.enabled,
            "threshold": self.threshold,
            "max_image_bytes": self.max_image_bytes,
        }

    def close(self) -> None:
        self.provider.close()


def build_face_verifier(config: Settings) -> FaceVerifier:
    provider: FaceProvider
    if config.face_provider == "azure":
        if not config.azure_face_endpoint or not config.azure_face_key:
            raise RuntimeError("AZURE_FACE_ENDPOINT and AZURE_FACE_KEY are required for FACE_PROVIDER=azure")
        provider = AzureFaceProvider(
            config.azure_face_endpoint,
            config.azure_face_key,
            timeout=config.face_http_timeout_seconds,
        )
    elif config.face_provider in ("", "none"):
        provider = BypassFaceProvider()
    else:
        raise RuntimeError(f"Unsupported FACE_PROVIDER: {config.face_provider}")
    return FaceVerifier(
        provider,
        threshold=config.face_match_threshold,
        max_image_bytes=config.face_max_image_bytes,
    )


# ── Reference faces ─────────────────────────────────────────────────────


def store_reference_face(
    db: Session,
    *,
    verifier: FaceVerifier,
    user: User,
    image: str,
    request: Optional[Request] = None,
) -> User:
    decode_image(image, max_bytes=verifier.max_image_bytes, label="image")
    replaced = user.reference_face is not None
    user.reference_face = _DATA_URL_PREFIX.sub("", image.strip(), count=1)
    user.reference_face_updated_at = datetime.now(timezone.utc)
    log_event(
        db,
        event_type="user.reference_face_updated" if replaced else "user.reference_face_stored",
        action="Reference face replaced" if replaced else "Reference face stored",
        actor_id=user.uid,
        actor_email=user.email,
        target_type="user",
        target_id=user.uid,
        request=request,
    )
    db.flush()
    return user


def verify_attendance_face(verifier: FaceVerifier, *, user: User, image: str) -> FaceMatch:
    """Compare a live capture with the stored reference; no reference means no gate."""
    if not user.reference_face:
        decode_image(image, max_bytes=verifier.max_image_bytes, label="image")
        return FaceMatch(
            matched=True,
            similarity=1.0,
            confidence=confidence_level(1.0),
            provider=verifier.provider.name,
            details={"bypassed": True, "reason": "no_reference_face"},
        )
    return verifier.verify(user.reference_face, image)
