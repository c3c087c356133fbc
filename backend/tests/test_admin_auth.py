"""Tests for admin login, refresh rotation, MFA and lockout."""
from datetime import datetime, timedelta, timezone

import pyotp

from conftest import ADMIN_PASSWORD, admin_login
from workforce.core.token_blacklist import is_token_revoked, revoke_token
from workforce.models.admin import AdminSession
from workforce.models.audit import AuditLog
from workforce.models.revoked_token import RevokedToken


def test_login_returns_token_pair_and_permissions(client, admin):
    response = client.post("/api/admin/auth/login", json={"email": "ADMIN@example.com", "password": ADMIN_PASSWORD})

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["mfaRequired"] is False
    tokens = data["tokens"]
    assert tokens["tokenType"] == "Bearer"
    assert tokens["expiresIn"] == 15 * 60
    assert "manage_admins" in tokens["admin"]["permissions"]

    verify = client.get("/api/admin/auth/verify", headers={"Authorization": f"Bearer {tokens['accessToken']}"})
    assert verify.status_code == 200
    assert verify.json()["data"]["email"] == "admin@example.com"


def test_unknown_email_and_bad_password_share_a_message(client, admin):
    unknown = client.post("/api/admin/auth/login", json={"email": "nobody@example.com", "password": "x"})
    wrong = client.post("/api/admin/auth/login", json={"email": "admin@example.com", "password": "wrong"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["error"] == wrong.json()["error"] == "Invalid email or password"


def test_lockout_after_five_failures(client, db, admin):
    for _ in range(4):
        assert client.post("/api/admin/auth/login", json={"email": admin.email, "password": "bad"}).status_code == 401

    locked = client.post("/api/admin/auth/login", json={"email": admin.email, "password": "bad"})
    assert locked.status_code == 429
    assert locked.json()["retryAfter"] == 30 * 60

    still_locked = client.post("/api/admin/auth/login", json={"email": admin.email, "password": ADMIN_PASSWORD})
    assert still_locked.status_code == 429
    assert db.query(AuditLog).filter(AuditLog.event_type == "admin.account_locked").count() == 1


def test_refresh_rotates_and_old_access_token_dies(client, admin):
    first = admin_login(client)

    rotated = client.post("/api/admin/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert rotated.status_code == 200, rotated.text
    second = rotated.json()["data"]
    assert second["refreshToken"] != first["refreshToken"]

    old = client.get("/api/admin/auth/verify", headers={"Authorization": f"Bearer {first['accessToken']}"})
    assert old.status_code == 401
    new = client.get("/api/admin/auth/verify", headers={"Authorization": f"Bearer {second['accessToken']}"})
    assert new.status_code == 200


def test_reusing_a_rotated_refresh_token_revokes_every_session(client, db, admin):
    first = admin_login(client)
    second = client.post("/api/admin/auth/refresh", json={"refreshToken": first["refreshToken"]}).json()["data"]

    replay = client.post("/api/admin/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert replay.status_code == 401

    blocked = client.post("/api/admin/auth/refresh", json={"refreshToken": second["refreshToken"]})
    assert blocked.status_code == 401
    db.expire_all()
    assert db.query(AdminSession).filter(AdminSession.revoked_at.is_(None)).count() == 0


def test_logout_always_reports_success(client, admin):
    tokens = admin_login(client)
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

    response = client.post("/api/admin/auth/logout", json={"refreshToken": tokens["refreshToken"]}, headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get("/api/admin/auth/verify", headers=headers).status_code == 401

    garbage = client.post("/api/admin/auth/logout", json={"refreshToken": "not-a-real-token-at-all"})
    assert garbage.status_code == 200
    assert garbage.json()["success"] is True


def test_mfa_enrolment_and_challenge(client, admin):
    headers = {"Authorization": f"Bearer {admin_login(client)['accessToken']}"}

    setup = client.post("/api/admin/auth/mfa/setup", headers=headers)
    assert setup.status_code == 200, setup.text
    totp = pyotp.TOTP(setup.json()["data"]["secret"])

    enabled = client.post("/api/admin/auth/mfa/enable", json={"code": totp.now()}, headers=headers)
    assert enabled.status_code == 200, enabled.text
    backup_codes = enabled.json()["data"]["backupCodes"]
    assert backup_codes

    challenge = client.post("/api/admin/auth/login", json={"email": admin.email, "password": ADMIN_PASSWORD})
    data = challenge.json()["data"]
    assert data["mfaRequired"] is True
    assert data["tokens"] is None

    # The challenge token is not an access token.
    assert client.get("/api/admin/auth/verify", headers={"Authorization": f"Bearer {data['mfaToken']}"}).status_code == 401

    verified = client.post("/api/admin/auth/verify-mfa", json={"mfaToken": data["mfaToken"], "code": totp.now()})
    assert verified.status_code == 200, verified.text
    assert verified.json()["data"]["accessToken"]

    replay = client.post("/api/admin/auth/verify-mfa", json={"mfaToken": data["mfaToken"], "code": totp.now()})
    assert replay.status_code == 401
    assert replay.json()["error"] == "MFA token already used"

    second = client.post("/api/admin/auth/login", json={"email": admin.email, "password": ADMIN_PASSWORD})
    with_backup = client.post(
        "/api/admin/auth/verify-mfa",
        json={"mfaToken": second.json()["data"]["mfaToken"], "code": backup_codes[0]},
    )
    assert with_backup.status_code == 200, with_backup.text


def test_permission_gate_rejects_moderators(client, db, admin):
    from workforce.models.enums import AdminRole

    admin.role = AdminRole.MODERATOR
    db.commit()
    headers = {"Authorization": f"Bearer {admin_login(client)['accessToken']}"}

    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.get("/api/admin/attendance/stats", headers=headers).status_code == 200


def test_bad_mfa_codes_across_logins_lock_the_account(client, db, admin):
    headers = {"Authorization": f"Bearer {admin_login(client)['accessToken']}"}
    secret = client.post("/api/admin/auth/mfa/setup", headers=headers).json()["data"]["secret"]
    totp = pyotp.TOTP(secret)
    assert client.post("/api/admin/auth/mfa/enable", json={"code": totp.now()}, headers=headers).status_code == 200

    def challenge() -> str:
        response = client.post("/api/admin/auth/login", json={"email": admin.email, "password": ADMIN_PASSWORD})
        assert response.status_code == 200, response.text
        return response.json()["data"]["mfaToken"]

    first = challenge()
    wrong = client.post("/api/admin/auth/verify-mfa", json={"mfaToken": first, "code": "ZZZZ-ZZZZ"})
    assert wrong.status_code == 401
    # A challenge token allows a single attempt.
    retry = client.post("/api/admin/auth/verify-mfa", json={"mfaToken": first, "code": totp.now()})
    assert retry.status_code == 401
    assert retry.json()["error"] == "MFA token already used"

    statuses = [
        client.post("/api/admin/auth/verify-mfa", json={"mfaToken": challenge(), "code": "ZZZZ-ZZZZ"}).status_code
        for _ in range(4)
    ]
    assert statuses == [401, 401, 401, 429]

    db.expire_all()
    assert admin.locked_until is not None
    locked = client.post("/api/admin/auth/login", json={"email": admin.email, "password": ADMIN_PASSWORD})
    assert locked.status_code == 429


def test_sweep_drops_only_expired_revocations(client, db, admin):
    now = datetime.now(timezone.utc)
    revoke_token(db, "long-gone-token", now - timedelta(minutes=1))
    revoke_token(db, "still-live-token", now + timedelta(hours=1))
    db.commit()
    headers = {"Authorization": f"Bearer {admin_login(client)['accessToken']}"}

    response = client.post("/api/admin/auth/sweep", headers=headers)

    assert response.status_code == 200, response.text
    assert response.json()["data"]["revokedTokens"] == 1
    db.expire_all()
    assert db.query(RevokedToken).count() == 1
    assert is_token_revoked(db, "still-live-token") is True
