from __future__ import annotations

from datetime import datetime
from typing import Optional

from workforce.schemas.base import ApiModel


class FaceVerifyRequest(ApiModel):
    image1: str
    image2: str


class FaceImageRequest(ApiModel):
    image: str


class FaceMatchRead(ApiModel):
    matched: bool
    similarity: float
    confidence: str
    provider: str
    details: dict = {}


class FaceStatusRead(ApiModel):
    provider: str
    enabled: bool
    threshold: float
    max_image_bytes: int


class ReferenceFaceRead(ApiModel):
    has_reference: bool
    updated_at: Optional[datetime] = None
