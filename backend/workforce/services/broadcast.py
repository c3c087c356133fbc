"""Realtime broadcast store client.

The broadcast store is a write-mostly JSON tree that connected dashboards
subscribe to. Server code never reads it back as ground truth; see
``services/write_through.py`` for the ordering contract.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from workforce.core.settings import Settings

logger = logging.getLogger("workforce.broadcast")


class BroadcastError(RuntimeError):
    pass


class BroadcastStore:
    name = "broadcast"
    enabled = True

    def set(self, path: str, value: Any) -> None:
        raise NotImplementedError

    def update(self, path: str, value: dict) -> None:
        raise NotImplementedError

    def push(self, path: str, value: Any) -> Optional[str]:
        raise NotImplementedError

    def increment(self, path: str, field: str, by: int = 1) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return None


class DisabledBroadcastStore(BroadcastStore):
    """Used when no broadcast URL is configured; every write is dropped."""

    name = "disabled"
    enabled = False

    def set(self, path: str, value: Any) -> None:
        logger.debug("broadcast disabled, dropping set %s", path)

    def update(self, path: str, value: dict) -> None:
        logger.debug("broadcast disabled, dropping update %s", path)

    def push(self, path: str, value: Any) -> Optional[str]:
        logger.debug("broadcast disabled, dropping push %s", path)
        return None

    def increment(self, path: str, field: str, by: int = 1) -> None:
        logger.debug("broadcast disabled, dropping increment %s/%s", path, field)

    def ping(self) -> bool:
        return False


class FirebaseBroadcastStore(BroadcastStore):
    """Firebase Realtime Database over its REST API."""

    name = "firebase"

    def __init__(self, database_url: str, *, auth_token: str | None = None, timeout: float = 5.0,
                 client: httpx.Client | None = None) -> None:
        self.base_url = database_url.rstrip("/")
        self.auth_token = auth_token
        self._client = client or httpx.Client(timeout=timeout)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.strip('/')}.json"

    def _params(self, **extra: str) -> dict[str, str]:
        params = dict(extra)
        if self.auth_token:
            params["auth"] = self.auth_token
        return params

    def _request(self, method: str, path: str, *, json: Any = None, **params: str) -> httpx.Response:
        try:
            resp = self._client.request(method, self._url(path), json=json, params=self._params(**params))
        except httpx.HTTPError as exc:
            raise BroadcastError(f"{method} {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise BroadcastError(f"{method} {path} returned {resp.status_code}: {resp.text[:200]}")
        return resp

    def set(self, path: str, value: Any) -> None:
        self._request("PUT", path, json=value, print="silent")

    def update(self, path: str, value: dict) -> None:
        self._request("PATCH", path, json=value, print="silent")

    def push(self, path: str, value: Any) -> Optional[str]:
        resp = self._request("POST", path, json=value)
        return (resp.json() or {}).get("name")

    def increment(self, path: str, field: str, by: int = 1) -> None:
        # Server-side increment is atomic inside the store.
        self._request("PATCH", path, json={field: {".sv": {"increment": by}}}, print="silent")

    def ping(self) -> bool:
        try:
            self._request("GET", "realtime", shallow="true")
        except BroadcastError as exc:
            logger.warning("broadcast ping failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        self._client.close()


def build_broadcast_store(config: Settings) -> BroadcastStore:
    if not config.firebase_database_url:
        logger.info("FIREBASE_DATABASE_URL not set, realtime broadcast disabled")
        return DisabledBroadcastStore()
    return FirebaseBroadcastStore(
        config.firebase_database_url,
        auth_token=config.firebase_database_secret,
        timeout=config.broadcast_timeout_seconds,
    )
