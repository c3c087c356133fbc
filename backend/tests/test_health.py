"""Tests for the dependency health endpoint."""
from sqlalchemy import create_engine

from workforce.db.session import get_engine
from workforce.main import app


def test_healthy_when_both_backends_answer(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["services"]["database"]["status"] == "connected"
    assert data["services"]["broadcast"]["status"] == "connected"
    assert "latencyMs" in data["services"]["database"]
    assert data["version"]
    assert data["timestamp"]


def test_degraded_when_broadcast_is_unreachable(client, broadcast):
    broadcast.reachable = False

    response = client.get("/api/health")

    assert response.status_code == 503
    data = response.json()["data"]
    assert data["status"] == "degraded"
    assert data["services"]["database"]["status"] == "connected"
    assert data["services"]["broadcast"]["status"] == "disconnected"


def test_degraded_when_primary_is_down(client):
    unreachable = create_engine("sqlite:////nonexistent-directory/workforce.db")
    app.dependency_overrides[get_engine] = lambda: unreachable

    response = client.get("/api/health")

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert body["data"]["status"] == "degraded"
    assert body["data"]["services"]["database"]["status"] == "disconnected"


def test_liveness(client):
    assert client.get("/healthz").json() == {"status": "ok"}
