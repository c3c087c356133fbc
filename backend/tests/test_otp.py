"""Tests for email verification codes."""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import user_headers
from workforce.core.errors import RateLimited, ValidationFailed
from workforce.models.otp import OtpSession
from workforce.services import otp as otp_service
from workforce.services.email import EmailSendError, EmailSendResult


@pytest.fixture()
def outbox(monkeypatch):
    sent = []

    def fake_send_email(*, to_address, subject, html, text=None):
        sent.append({"to": to_address, "subject": subject, "text": text})
        return EmailSendResult(provider="test", message_id=str(len(sent)))

    monkeypatch.setattr(otp_service.email_service, "send_email", fake_send_email)
    monkeypatch.setattr(otp_service, "generate_code", lambda: "123456")
    return sent


T0 = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)


def test_send_code_emails_user_and_stores_only_hashes(db, user, outbox):
    issued = otp_service.send_code(db, user=user, now=T0)
    db.commit()

    assert outbox[0]["to"] == user.email
    assert "123456" in outbox[0]["text"]
    otp = db.query(OtpSession).one()
    assert otp.code_hash != "123456"
    assert otp.session_token_hash != issued.session_token
    assert issued.expires_in == 300


def test_resend_inside_cooldown_is_rate_limited(db, user, outbox):
    otp_service.send_code(db, user=user, now=T0)
    with pytest.raises(RateLimited) as exc:
        otp_service.send_code(db, user=user, now=T0 + timedelta(seconds=20))
    assert exc.value.extra["retryAfter"] == 40


def test_resend_cap(db, user, outbox):
    moment = T0
    otp_service.send_code(db, user=user, now=moment)
    for _ in range(3):
        moment += timedelta(seconds=61)
        otp_service.send_code(db, user=user, now=moment)
    with pytest.raises(RateLimited) as exc:
        otp_service.send_code(db, user=user, now=moment + timedelta(seconds=61))
    assert exc.value.message == "Maximum resend attempts reached"


def test_expired_session_restarts_fresh(db, user, outbox):
    otp_service.send_code(db, user=user, now=T0)
    otp_service.send_code(db, user=user, now=T0 + timedelta(minutes=6))
    assert db.query(OtpSession).one().resend_count == 0


def test_wrong_code_reports_remaining_attempts(db, user, outbox):
    issued = otp_service.send_code(db, user=user, now=T0)
    with pytest.raises(ValidationFailed) as exc:
        otp_service.verify_code(db, user=user, session_token=issued.session_token, code="000000", now=T0)
    assert exc.value.message == "Invalid code. 4 attempts remaining."


def test_max_attempts_blocks_even_the_correct_code(db, user, outbox):
    issued = otp_service.send_code(db, user=user, now=T0)
    for _ in range(5):
        with pytest.raises(ValidationFailed):
            otp_service.verify_code(db, user=user, session_token=issued.session_token, code="000000", now=T0)

    with pytest.raises(RateLimited):
        otp_service.verify_code(db, user=user, session_token=issued.session_token, code="123456", now=T0)
    assert db.query(OtpSession).count() == 0
    assert user.email_verified is False


def test_malformed_code_rejected_before_lookup(db, user):
    with pytest.raises(ValidationFailed) as exc:
        otp_service.verify_code(db, user=user, session_token="whatever", code="12ab56")
    assert exc.value.message == "Code must be 6 digits"


def test_expired_code_is_rejected(db, user, outbox):
    issued = otp_service.send_code(db, user=user, now=T0)
    with pytest.raises(ValidationFailed) as exc:
        otp_service.verify_code(
            db, user=user, session_token=issued.session_token, code="123456", now=T0 + timedelta(minutes=5)
        )
    assert "expired" in exc.value.message
    assert db.query(OtpSession).count() == 0


def test_delivery_failure_discards_session(db, user, monkeypatch):
    def broken_send(**kwargs):
        raise EmailSendError("smtp down")

    monkeypatch.setattr(otp_service.email_service, "send_email", broken_send)
    with pytest.raises(otp_service.OtpDeliveryFailed):
        otp_service.send_code(db, user=user, now=T0)
    assert db.query(OtpSession).count() == 0


def test_api_send_and_verify(client, db, user, outbox):
    headers = user_headers(user)

    sent = client.post("/api/otp/send", headers=headers)
    assert sent.status_code == 200, sent.text
    token = sent.json()["data"]["sessionToken"]

    status = client.get("/api/otp/status", headers=headers).json()["data"]
    assert status["pending"] is True
    assert status["canResend"] is False

    wrong = client.post("/api/otp/verify", json={"sessionToken": token, "code": "654321"}, headers=headers)
    assert wrong.status_code == 400
    assert wrong.json()["attemptsRemaining"] == 4
    db.expire_all()
    assert db.query(OtpSession).one().verify_attempts == 1

    verified = client.post("/api/otp/verify", json={"sessionToken": token, "code": "123456"}, headers=headers)
    assert verified.status_code == 200, verified.text
    db.refresh(user)
    assert user.email_verified is True

    resend = client.post("/api/otp/send", headers=headers)
    assert resend.status_code == 400
    assert resend.json()["error"] == "Email is already verified"


def test_api_cooldown_sets_retry_after(client, user, outbox):
    headers = user_headers(user)
    client.post("/api/otp/send", headers=headers)

    response = client.post("/api/otp/send", headers=headers)

    assert response.status_code == 429
    assert response.json()["retryAfter"] > 0
    assert response.headers["Retry-After"] == str(response.json()["retryAfter"])
