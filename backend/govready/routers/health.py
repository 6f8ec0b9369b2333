"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from govready.config import settings
from govready.services.drafts import get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no Redis check)."""
    return {
        "status": "ok",
        "service": "GovReady",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check: verifies the draft store is reachable.

    Returns 503 when a dependency is down.
    """
    checks = {
        "service": "ok",
        "draft_store": "unknown",
    }
    overall_healthy = True

    if settings.draft_store == "memory":
        checks["draft_store"] = "ok (memory)"
    else:
        try:
            redis_client = await get_redis()
            await redis_client.ping()
            checks["draft_store"] = "ok"
        except Exception as e:
            checks["draft_store"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "GovReady",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
