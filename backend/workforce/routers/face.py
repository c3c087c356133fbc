from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from workforce.core.deps import get_current_user, get_face_verifier
from workforce.core.errors import ValidationFailed
from workforce.db.session import get_db
from workforce.models.enums import AuditStatus
from workforce.models.user import User
from workforce.schemas.base import Envelope
from workforce.schemas.face import (
    FaceImageRequest,
    FaceMatchRead,
    FaceStatusRead,
    FaceVerifyRequest,
    ReferenceFaceRead,
)
from workforce.services import face as face_service
from workforce.services.audit import log_event
from workforce.services.face import FaceMatch, FaceVerifier

router = APIRouter(prefix="/api/face-verification", tags=["face-verification"])


def _read(match: FaceMatch) -> FaceMatchRead:
    return FaceMatchRead(
        matched=match.matched,
        similarity=match.similarity,
        confidence=match.confidence,
        provider=match.provider,
        details=match.details,
    )


@router.post("", response_model=Envelope[FaceMatchRead])
def verify_faces(
    payload: FaceVerifyRequest,
    verifier: FaceVerifier = Depends(get_face_verifier),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    return Envelope(data=_read(verifier.verify(payload.image1, payload.image2)))


@router.get("/status", response_model=Envelope[FaceStatusRead])
def face_status(
    verifier: FaceVerifier = Depends(get_face_verifier),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    return Envelope(data=FaceStatusRead(**verifier.status()))


@router.get("/attendance", response_model=Envelope[ReferenceFaceRead])
def reference_face(current_user: User = Depends(get_current_user)) -> Envelope:
    return Envelope(
        data=ReferenceFaceRead(
            has_reference=current_user.reference_face is not None,
            updated_at=current_user.reference_face_updated_at,
        )
    )


@router.put("/attendance", response_model=Envelope[ReferenceFaceRead])
def store_reference_face(
    request: Request,
    payload: FaceImageRequest,
    db: Session = Depends(get_db),
    verifier: FaceVerifier = Depends(get_face_verifier),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    user = face_service.store_reference_face(
        db, verifier=verifier, user=current_user, image=payload.image, request=request
    )
    db.commit()
    return Envelope(data=ReferenceFaceRead(has_reference=True, updated_at=user.reference_face_updated_at))


@router.post("/attendance", response_model=Envelope[FaceMatchRead])
def verify_attendance_face(
    request: Request,
    payload: FaceImageRequest,
    db: Session = Depends(get_db),
    verifier: FaceVerifier = Depends(get_face_verifier),
    current_user: User = Depends(get_current_user),
) -> Envelope:
    if not payload.image:
        raise ValidationFailed("image is required")
    match = face_service.verify_attendance_face(verifier, user=current_user, image=payload.image)
    log_event(
        db,
        event_type="attendance.face_verification",
        action="Face matched" if match.matched else "Face did not match",
        actor_id=current_user.uid,
        actor_email=current_user.email,
        target_type="user",
        target_id=current_user.uid,
        details={"similarity": match.similarity, "confidence": match.confidence},
        request=request,
        status=AuditStatus.SUCCESS if match.matched else AuditStatus.WARNING,
    )
    db.commit()
    return Envelope(data=_read(match))
