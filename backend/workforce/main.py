from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from workforce.core.errors import ServiceError
from workforce.core.identity import build_identity_verifier
from workforce.core.logging import RequestLoggingMiddleware, configure_logging
from workforce.core.observability import (
    PrometheusMiddleware,
    metrics_endpoint,
    setup_opentelemetry,
    setup_sqlalchemy_instrumentation,
)
from workforce.core.settings import Settings, settings
from workforce.db.base import Base
from workforce.db.session import build_engine, build_session_factory
from workforce.modules.router_registry import include_all_routers
from workforce.services import admin_auth
from workforce.services.broadcast import build_broadcast_store
from workforce.services.face import build_face_verifier

import workforce.models  # noqa: F401  registers every table on Base.metadata

logger = logging.getLogger("workforce")


def check_production_settings(config: Settings) -> None:
    if not config.is_production:
        return
    if any(origin.strip() == "*" for origin in config.allow_origins):
        raise RuntimeError("ALLOW_ORIGINS cannot include '*' in production")
    if config.jwt_secret.startswith("change_me"):
        raise RuntimeError("JWT_SECRET must be set in production")
    if "change_me" in config.database_url:
        raise RuntimeError("DATABASE_URL password must be set in production")
    if config.identity_provider == "local":
        raise RuntimeError("IDENTITY_PROVIDER=local is not allowed in production")


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: Settings = app.state.settings
    engine = build_engine(
        config.database_url,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_timeout=config.db_pool_timeout,
        pool_recycle=config.db_pool_recycle,
    )
    Base.metadata.create_all(bind=engine)
    setup_sqlalchemy_instrumentation(engine)

    app.state.db_engine = engine
    app.state.session_factory = build_session_factory(engine)
    with app.state.session_factory() as db:
        admin_auth.sweep_expired_tokens(db)
        db.commit()
    app.state.broadcast = build_broadcast_store(config)
    app.state.identity_verifier = build_identity_verifier(config)
    app.state.face_verifier = build_face_verifier(config)
    logger.info(
        "startup complete",
        extra={
            "environment": config.environment,
            "broadcast": app.state.broadcast.name,
            "identity_provider": app.state.identity_verifier.name,
            "face_provider": config.face_provider,
        },
    )
    try:
        yield
    finally:
        app.state.face_verifier.close()
        app.state.identity_verifier.close()
        app.state.broadcast.close()
        engine.dispose()


def _error_body(message: str, extra: Optional[dict] = None) -> dict:
    return {"success": False, "error": message, **(extra or {})}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    headers = None
    if "retryAfter" in exc.extra:
        headers = {"Retry-After": str(exc.extra["retryAfter"])}
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.extra), headers=headers)


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=_error_body(message), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content=_error_body(message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body("Internal server error"))


def create_app(config: Settings = settings) -> FastAPI:
    configure_logging(level=config.log_level)
    check_production_settings(config)

    app = FastAPI(title=config.project_name, version=config.project_version, lifespan=lifespan)
    app.state.settings = config

    # Always allow localhost during development.
    allow_origin_regex = None if config.is_production else r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id", "Accept"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["observability"], include_in_schema=False)
    include_all_routers(app)

    setup_opentelemetry(app, service_name="workforce-api")
    return app


app = create_app()
