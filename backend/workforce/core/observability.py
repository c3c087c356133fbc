"""
OpenTelemetry and Prometheus instrumentation for the attendance API.

This module sets up:
- OpenTelemetry tracing with OTLP export (optional extra)
- Prometheus metrics endpoint
- Request/exception counters and broadcast mirror failure counter
"""

from __future__ import annotations

import logging
import os
import re
import time

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

http_requests_total = Counter(
    "http_server_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

http_request_duration_seconds = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

http_exceptions_total = Counter(
    "http_server_exceptions_total",
    "Total unhandled exceptions",
    ["method", "path", "exception_type"]
)

broadcast_write_failures_total = Counter(
    "workforce_broadcast_write_failures_total",
    "Mirror writes to the realtime broadcast store that failed after a committed primary write",
    ["operation"]
)

attendance_actions_total = Counter(
    "workforce_attendance_actions_total",
    "Attendance state transitions committed to the primary store",
    ["action"]
)

_ID_SEGMENT = re.compile(r"/(\d+|[0-9a-f]{24,})(?=/|$)")


def setup_opentelemetry(app, service_name: str = "workforce-api") -> None:
    """Initialize OpenTelemetry instrumentation if enabled."""
    otel_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not otel_endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, skipping OpenTelemetry setup")
        return

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        resource = Resource.create({SERVICE_NAME: service_name})
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint, insecure=True)))
        trace.set_tracer_provider(provider)

        FastAPIInstrumentor.instrument_app(app)
        logger.info(f"OpenTelemetry initialized, exporting to {otel_endpoint}")
    except ImportError as e:
        logger.warning(f"OpenTelemetry packages not available: {e}")
    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}")


def setup_sqlalchemy_instrumentation(engine) -> None:
    """Instrument SQLAlchemy engine for tracing."""
    if not os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        return

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        SQLAlchemyInstrumentor().instrument(engine=engine)
        logger.info("SQLAlchemy instrumentation enabled")
    except ImportError:
        logger.info("SQLAlchemy instrumentation package not installed")
    except Exception as e:
        logger.warning(f"Failed to instrument SQLAlchemy: {e}")


def normalize_path(path: str) -> str:
    """Replace ids in the path with a placeholder to keep label cardinality low."""
    normalized = _ID_SEGMENT.sub("/{id}", path)
    return "/".join(normalized.split("/")[:6])


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all requests."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = normalize_path(request.url.path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            http_exceptions_total.labels(method=method, path=path, exception_type=type(e).__name__).inc()
            http_requests_total.labels(method=method, path=path, status=500).inc()
            http_request_duration_seconds.labels(method=method, path=path).observe(duration)
            raise

        duration = time.perf_counter() - start_time
        http_requests_total.labels(method=method, path=path, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(duration)
        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint handler."""
    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
