from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import workforce.models  # noqa: F401
from workforce.core.deps import get_broadcast_store, get_face_verifier, get_identity_verifier
from workforce.core.identity import LocalIdentityVerifier, create_session_token
from workforce.core.security import create_access_token, get_password_hash
from workforce.db.base import Base
from workforce.db.session import build_session_factory, get_db, get_engine
from workforce.main import app
from workforce.models.admin import Admin
from workforce.models.enums import AdminRole, AdminStatus, UserStatus
from workforce.models.user import User
from workforce.services.broadcast import BroadcastError, BroadcastStore
from workforce.services.face import BypassFaceProvider, FaceVerifier

ADMIN_PASSWORD = "correct-horse-battery"


class RecordingBroadcastStore(BroadcastStore):
    """Keeps every write in memory; ``failing`` makes each write raise."""

    name = "recording"

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Any]] = []
        self.failing = False
        self.reachable = True

    def _record(self, op: str, path: str, value: Any) -> None:
        if self.failing:
            raise BroadcastError(f"{op} {path} refused")
        self.calls.append((op, path, value))

    def set(self, path: str, value: Any) -> None:
        self._record("set", path, value)

    def update(self, path: str, value: dict) -> None:
        self._record("update", path, value)

    def push(self, path: str, value: Any) -> Optional[str]:
        self._record("push", path, value)
        return f"key-{len(self.calls)}"

    def increment(self, path: str, field: str, by: int = 1) -> None:
        self._record("increment", f"{path}/{field}", by)

    def ping(self) -> bool:
        return self.reachable

    def paths(self, op: Optional[str] = None) -> list[str]:
        return [path for kind, path, _ in self.calls if op is None or kind == op]


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def db(engine):
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def broadcast():
    return RecordingBroadcastStore()


@pytest.fixture()
def face_verifier():
    return FaceVerifier(BypassFaceProvider(), threshold=0.8, max_image_bytes=5 * 1024 * 1024)


@pytest.fixture()
def user(db):
    user = User(
        uid="emp-001",
        email="worker@example.com",
        name="Field Worker",
        department="Operations",
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def admin(db):
    admin = Admin(
        email="admin@example.com",
        hashed_password=get_password_hash(ADMIN_PASSWORD),
        name="Console Admin",
        role=AdminRole.SUPER_ADMIN,
        status=AdminStatus.ACTIVE,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture()
def client(engine, db, broadcast, face_verifier):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_broadcast_store] = lambda: broadcast
    app.dependency_overrides[get_identity_verifier] = LocalIdentityVerifier
    app.dependency_overrides[get_face_verifier] = lambda: face_verifier

    client_instance = TestClient(app)
    try:
        yield client_instance
    finally:
        client_instance.close()
        app.dependency_overrides.clear()


def id_token(uid: str) -> str:
    """An identity token the local verifier accepts."""
    return create_access_token({"sub": uid}, expires_delta=timedelta(hours=1))


def user_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user.uid)}"}


def admin_login(client: TestClient, email: str = "admin@example.com", password: str = ADMIN_PASSWORD) -> dict:
    response = client.post("/api/admin/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]["tokens"]


def admin_headers(client: TestClient) -> dict[str, str]:
    return {"Authorization": f"Bearer {admin_login(client)['accessToken']}"}
