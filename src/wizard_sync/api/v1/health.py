"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.wizard_sync.config import get_settings
from src.wizard_sync.core.database import get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check database connectivity and sync queue state."""
    checks: dict = {"database": "ok", "sync_queue": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    queue = getattr(request.app.state, "sync_queue", None)
    if queue is None:
        checks["sync_queue"] = "not_initialized"
    else:
        checks["sync_queue_depth"] = len(queue.pending)
        checks["sync_queue_busy"] = queue.is_busy

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: database reachable and sync queue running.

    Returns 200 if all pass, 503 otherwise.
    """
    checks = await _check_dependencies(request)
    all_healthy = checks.get("database") == "ok" and checks.get("sync_queue") == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
