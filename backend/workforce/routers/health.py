"""Liveness and dependency health."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine import Engine

from workforce.core.deps import get_broadcast_store
from workforce.core.settings import settings
from workforce.db.session import get_engine
from workforce.services.broadcast import BroadcastStore

logger = logging.getLogger("workforce.health")

router = APIRouter(tags=["health"])


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def check_database(engine: Engine) -> dict:
    started = time.perf_counter()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("database health check failed: %s", exc)
        return {"status": "disconnected", "latencyMs": _elapsed_ms(started)}
    return {"status": "connected", "latencyMs": _elapsed_ms(started)}


def check_broadcast(broadcast: BroadcastStore) -> dict:
    if not broadcast.enabled:
        return {"status": "disabled", "latencyMs": 0}
    started = time.perf_counter()
    try:
        reachable = broadcast.ping()
    except Exception as exc:
        logger.error("broadcast health check failed: %s", exc)
        reachable = False
    return {"status": "connected" if reachable else "disconnected", "latencyMs": _elapsed_ms(started)}


@router.get("/api/health")
def health(
    engine: Engine = Depends(get_engine),
    broadcast: BroadcastStore = Depends(get_broadcast_store),
) -> JSONResponse:
    """Healthy only when every enabled backend answers; anything else is 503."""
    services = {
        "database": check_database(engine),
        "broadcast": check_broadcast(broadcast),
    }
    healthy = all(service["status"] in ("connected", "disabled") for service in services.values())
    body = {
        "success": healthy,
        "data": {
            "status": "healthy" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.project_version,
            "environment": settings.environment,
            "services": services,
        },
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)


@router.get("/healthz")
def liveness() -> dict[str, str]:
    return {"status": "ok"}
