"""Tests for cookie sessions and end-user authentication."""
from conftest import admin_login, id_token, user_headers
from workforce.core.settings import settings
from workforce.models.enums import UserStatus


def test_session_sets_http_only_cookie(client, user):
    token = id_token(user.uid)

    response = client.post("/api/session", json={"idToken": token})

    assert response.status_code == 200, response.text
    assert response.json()["data"]["user"]["uid"] == user.uid
    assert response.json()["data"]["expiresIn"] == 5 * 24 * 60 * 60
    cookie = response.headers["set-cookie"]
    assert cookie.startswith(f"{settings.session_cookie_name}=")
    assert "HttpOnly" in cookie
    assert "samesite=strict" in cookie.lower()


def test_session_cookie_authenticates_later_requests(client, user):
    client.post("/api/session", json={"idToken": id_token(user.uid)})

    response = client.get("/api/attendance/status")

    assert response.status_code == 200, response.text


def test_session_for_unknown_uid_is_rejected(client, user):
    response = client.post("/api/session", json={"idToken": id_token("nobody")})
    assert response.status_code == 401


def test_session_for_suspended_user_is_forbidden(client, db, user):
    user.status = UserStatus.SUSPENDED
    db.commit()
    response = client.post("/api/session", json={"idToken": id_token(user.uid)})
    assert response.status_code == 403


def test_garbage_token_is_unauthorized(client):
    response = client.post("/api/session", json={"idToken": "not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


def test_delete_session_clears_cookie(client, user):
    client.post("/api/session", json={"idToken": id_token(user.uid)})
    response = client.delete("/api/session")
    assert response.status_code == 200
    assert client.get("/api/attendance/status").status_code == 401


def test_suspended_user_bearer_is_forbidden(client, db, user):
    headers = user_headers(user)
    user.status = UserStatus.SUSPENDED
    db.commit()
    assert client.get("/api/attendance/status", headers=headers).status_code == 403


def test_validation_errors_use_the_envelope(client):
    response = client.post("/api/session", json={})
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "idToken" in response.json()["error"]


def test_admin_tokens_are_not_identity_tokens(client, admin, user):
    access_token = admin_login(client)["accessToken"]

    exchanged = client.post("/api/session", json={"idToken": access_token})
    assert exchanged.status_code == 401
    assert exchanged.json()["error"] == "Not an identity token"

    bearer = client.get("/api/attendance/status", headers={"Authorization": f"Bearer {access_token}"})
    assert bearer.status_code == 401
