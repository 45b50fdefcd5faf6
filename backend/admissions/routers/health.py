"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from admissions.config import settings
from admissions.deps import get_draft_store, get_gateway
from admissions.services.drafts import DraftStore
from admissions.services.gateway import BackendGateway

router = APIRouter(tags=["health"])

HEALTH_PROBE_KEY = "health_probe"


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no dependency checks).

    Returns 200 OK if the service is running.
    """
    return {
        "status": "ok",
        "service": "admissions",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(
    draft_store: DraftStore = Depends(get_draft_store),
    gateway: BackendGateway = Depends(get_gateway),
):
    """Readiness check: draft storage round-trip and records backend reachability.

    Returns 200 OK only if both are healthy.
    """
    checks = {
        "service": "ok",
        "drafts": "unknown",
        "backend": "unknown",
    }
    overall_healthy = True

    # Draft store: load never raises, so a failed save is the signal
    try:
        await draft_store.save(HEALTH_PROBE_KEY, {"probe": True}, 0)
        await draft_store.clear(HEALTH_PROBE_KEY)
        checks["drafts"] = f"ok ({settings.draft_backend})"
    except Exception as e:
        checks["drafts"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    if await gateway.ping():
        checks["backend"] = "ok"
    else:
        checks["backend"] = "unreachable"
        overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "admissions",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
