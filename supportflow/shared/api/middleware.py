"""
Shared API Middleware
======================

Request tracing, per-area request statistics, access logging and the
exception handlers that turn application errors into JSON responses.
"""

import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict
from datetime import datetime, timezone

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from fastapi.responses import JSONResponse

from supportflow.core import ApplicationException
from supportflow.shared.infrastructure.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

# Incoming ids end up in every log line of the request
_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

# Paths that are polled often and only logged at debug level
_QUIET_PATHS = ("/health",)


def request_area(path: str) -> str:
    """First path segment, e.g. ``knowledge`` for ``/knowledge/upload``."""
    segment = path.strip("/").split("/", 1)[0]
    return segment or "root"


@dataclass
class AreaStats:
    requests: int = 0
    server_errors: int = 0
    total_ms: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "requests": self.requests,
            "server_errors": self.server_errors,
            "avg_ms": round(self.total_ms / self.requests, 1) if self.requests else 0.0,
        }


@dataclass
class RequestStats:
    """In-process request counters per API area, reported by /health."""
    areas: Dict[str, AreaStats] = field(default_factory=dict)

    def record(self, area: str, status_code: int, elapsed_ms: float) -> None:
        stats = self.areas.setdefault(area, AreaStats())
        stats.requests += 1
        stats.total_ms += elapsed_ms
        if status_code >= 500:
            stats.server_errors += 1

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        return {area: stats.as_dict() for area, stats in sorted(self.areas.items())}


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    A caller-supplied X-Correlation-ID is reused when it looks like an id;
    anything else is replaced so it cannot forge log content. The id is
    also published to the logging context so service records carry it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get("X-Correlation-ID", "")
        correlation_id = incoming if _CORRELATION_ID.match(incoming) else str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Counts requests, server errors and latency per API area.

    The counters live on ``app.state.request_stats`` so the health
    endpoint can report them.
    """

    def __init__(self, app: ASGIApp, stats: RequestStats):
        super().__init__(app)
        self.stats = stats

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        area = request_area(request.url.path)
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self.stats.record(area, status_code, elapsed_ms)

        response.headers["X-Response-Time"] = f"{elapsed_ms / 1000:.3f}s"
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log with one line per finished request.

    Query strings are left out because the worker endpoint accepts its
    cron secret there.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        path = request.url.path
        start_time = time.perf_counter()
        log = logger.debug if path in _QUIET_PATHS else logger.info

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": path,
                    "area": request_area(path),
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        log(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": path,
                "area": request_area(path),
                "status_code": response.status_code,
                "client": request.client.host if request.client else None,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


# ========== Exception handlers ==========

async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map application exceptions to their HTTP status.

    NotFound -> 404, Forbidden -> 403, Unauthorized -> 401, validation -> 400,
    extraction -> 422, providers -> 502.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Application error",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": exc.status_code,
        }
    )

    content = {"ok": False, "error": exc.message, "correlation_id": correlation_id}
    # Client errors carry their details (e.g. the allowed file types); server errors do not
    if exc.details and exc.status_code < 500:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; internals are only echoed in development."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.exception(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        }
    )

    environment = getattr(getattr(request.app.state, "settings", None), "environment", None)
    content = {
        "ok": False,
        "error": "Internal server error",
        "correlation_id": correlation_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if environment == "development":
        content["debug_info"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=content)
