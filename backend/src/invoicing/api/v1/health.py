"""Health check endpoints for liveness and readiness probes."""
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_db
from invoicing.config import settings
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """
    Liveness probe.

    Returns basic health status if the process is running. Does not check
    external dependencies.
    """
    return {
        "status": "healthy",
        "service": settings.service_name,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Readiness probe.

    Returns 200 only when the database answers.
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        database = "disconnected"

    ready = database == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ready": ready,
            "checks": {"database": database},
            "timestamp": utcnow().isoformat(),
        },
    )
