"""Tests for face verification input handling and provider dispatch."""
import base64

import pytest

from conftest import user_headers
from workforce.core.errors import ServiceUnavailable, ValidationFailed
from workforce.services.face import (
    FaceProvider,
    FaceProviderError,
    FaceVerifier,
    confidence_level,
    decode_image,
)

IMAGE = base64.b64encode(b"\xff\xd8\xff\xe0fake-jpeg-bytes").decode()


class FixedProvider(FaceProvider):
    name = "fixed"

    def __init__(self, score=None, error=None):
        self.score = score
        self.error = error

    def similarity(self, source, target):
        if self.error:
            raise self.error
        return self.score, {}


@pytest.mark.parametrize(
    "similarity, expected",
    [(0.97, "very_high"), (0.95, "very_high"), (0.9, "high"), (0.7, "medium"), (0.55, "low"), (0.2, "very_low")],
)
def test_confidence_bands(similarity, expected):
    assert confidence_level(similarity) == expected


def test_data_url_prefix_is_stripped():
    assert decode_image(f"data:image/jpeg;base64,{IMAGE}", max_bytes=1024) == base64.b64decode(IMAGE)


def test_oversized_image_rejected():
    big = base64.b64encode(b"x" * 2048).decode()
    with pytest.raises(ValidationFailed):
        decode_image(big, max_bytes=1024)


def test_invalid_base64_rejected():
    with pytest.raises(ValidationFailed):
        decode_image("not base64!!", max_bytes=1024)


def test_threshold_decides_match():
    verifier = FaceVerifier(FixedProvider(score=0.81), threshold=0.8, max_image_bytes=1024)
    result = verifier.verify(IMAGE, IMAGE)
    assert result.matched is True
    assert result.confidence == "medium"

    verifier = FaceVerifier(FixedProvider(score=0.79), threshold=0.8, max_image_bytes=1024)
    assert verifier.verify(IMAGE, IMAGE).matched is False


def test_provider_failure_is_unavailable():
    verifier = FaceVerifier(FixedProvider(error=FaceProviderError("timeout")), threshold=0.8, max_image_bytes=1024)
    with pytest.raises(ServiceUnavailable):
        verifier.verify(IMAGE, IMAGE)


def test_api_compare_with_bypass_provider(client, user):
    response = client.post("/api/face-verification", json={"image1": IMAGE, "image2": IMAGE}, headers=user_headers(user))

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["matched"] is True
    assert data["similarity"] == 1.0
    assert data["confidence"] == "very_high"


def test_api_status(client, user):
    data = client.get("/api/face-verification/status", headers=user_headers(user)).json()["data"]
    assert data == {"provider": "none", "enabled": False, "threshold": 0.8, "maxImageBytes": 5 * 1024 * 1024}


def test_api_reference_face_round(client, db, user):
    headers = user_headers(user)

    assert client.get("/api/face-verification/attendance", headers=headers).json()["data"]["hasReference"] is False
    # Without a stored reference the attendance gate lets the capture through.
    gate = client.post("/api/face-verification/attendance", json={"image": IMAGE}, headers=headers)
    assert gate.json()["data"]["details"]["reason"] == "no_reference_face"

    stored = client.put("/api/face-verification/attendance", json={"image": IMAGE}, headers=headers)
    assert stored.status_code == 200, stored.text
    assert stored.json()["data"]["hasReference"] is True

    matched = client.post("/api/face-verification/attendance", json={"image": IMAGE}, headers=headers)
    assert matched.json()["data"]["matched"] is True
