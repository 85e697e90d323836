"""
Request logging middleware for FastAPI.

Provides:
- A request id per request, bound into structlog contextvars so every log
  line emitted while handling the request carries it
- Request completion logging with timing and status
- ``X-Request-ID`` response header for correlation

Pixel fetches are by far the most frequent request and are logged at debug.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request

from shared.ip_utils import get_client_ip
from shared.logging import get_logger, hash_ip

log = get_logger("pixel.request")

QUIET_PATHS = ("/pixel", "/health")


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def register_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = generate_request_id()
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            ip_hash=hash_ip(get_client_ip(request)),
        )
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code >= 500:
            log_fn = log.error
        elif response.status_code >= 400:
            log_fn = log.warning
        elif request.url.path in QUIET_PATHS:
            log_fn = log.debug
        else:
            log_fn = log.info
        log_fn(
            "request_completed",
            method=request.method,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Request-ID"] = request_id
        return response
