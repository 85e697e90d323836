"""
Health check endpoint.

GET /health — checks the tracking store, Redis and GeoIP.
Rules:
- Store failure → "unhealthy" (503): opens cannot be recorded.
- Redis failure → "degraded" (200); not configured is fine unless the store
  itself is Redis, in which case the store check already covers it.
- GeoIP databases missing → "degraded" (200): opens lose their location.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from schemas.dto.responses.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        checks["store"] = "ok" if await request.app.state.store.ping() else "error"
    except Exception:
        checks["store"] = "error"
    if checks["store"] != "ok":
        overall = "unhealthy"

    redis = request.app.state.redis
    if redis is None:
        checks["redis"] = "not_configured"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "error"
            if overall == "healthy":
                overall = "degraded"

    if await request.app.state.geoip.available():
        checks["geoip"] = "ok"
    else:
        checks["geoip"] = "unavailable"
        if overall == "healthy":
            overall = "degraded"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
