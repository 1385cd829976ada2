"""Health and readiness endpoints.

  /health (liveness): the process answers.  Always 200; the body reports
      per-dependency status so a dashboard can show "degraded".
  /ready (readiness): can this instance serve scans right now?  The
      database is critical when configured (no credential lookups and no
      audit writes without it).  Redis is not: the throttle falls back to
      failing open with a logged error rather than blocking readers.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from tappass.db.engine import engine, ping_database
from tappass.db.redis import redis_pool

router = APIRouter(tags=["health"])


async def _redis_status() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        return "degraded"
    return "ok"


async def _database_status() -> str:
    if engine is None:
        return "not_configured"
    return "ok" if await ping_database() else "degraded"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _database_status(),
        "redis": await _redis_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _database_status() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
