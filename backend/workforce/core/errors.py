"""Domain errors raised by services and rendered by the API exception handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, extra: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationFailed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationFailed(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class RateLimited(ServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, *, retry_after: int, extra: Optional[dict[str, Any]] = None) -> None:
        payload = {"retryAfter": retry_after}
        if extra:
            payload.update(extra)
        super().__init__(message, extra=payload)
        self.retry_after = retry_after


class ServiceUnavailable(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
