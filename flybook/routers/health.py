"""
Health Check Endpoints
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from flybook.config import settings
from flybook.utils.database import get_db
from flybook.utils import redis as redis_utils

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"success": True, "message": "OK", "data": {"service": "flybook-api"}}


@router.get("/health/ready")
async def readiness_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Readiness check - verifies dependencies are available
    """
    checks = {
        "postgres": False,
        "amadeus_configured": request.app.state.amadeus.credentials.is_configured,
    }

    try:
        await db.execute(text("SELECT 1"))
        checks["postgres"] = True
    except Exception as e:
        checks["postgres_error"] = str(e)

    if settings.SEARCH_CACHE_BACKEND == "redis":
        checks["redis"] = False
        try:
            await redis_utils.redis_client.ping()
            checks["redis"] = True
        except Exception as e:
            checks["redis_error"] = str(e)

    all_healthy = checks["postgres"] and checks.get("redis", True)

    return {
        "success": all_healthy,
        "message": "ready" if all_healthy else "degraded",
        "data": checks,
    }


@router.get("/health/live")
async def liveness_check():
    """Liveness check - is the service running"""
    return {"success": True, "message": "alive"}
