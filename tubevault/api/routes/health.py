"""
Health check endpoints for monitoring application status.
"""

import time

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_service
from ..models.common import HealthStatus, SuccessResponse
from ...config.logging_config import get_logger
from ...services.acquisition_service import AcquisitionService

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_model=HealthStatus)
async def health_check(service: AcquisitionService = Depends(get_service)):
    """
    Health summary: database reachability, fetcher availability, job counts
    by status and disk usage of the storage root.
    """
    database_ok = await service.database.ping()
    fetcher = await service.fetcher_status()

    checks = {
        "database": {"status": "healthy" if database_ok else "unhealthy"},
        "fetcher": {"status": "healthy" if fetcher["installed"] else "degraded", **fetcher},
        "acquisitions": {
            "running": service.supervisor.running_count,
            "queued": service.dispatcher.queued,
            "limit": service.dispatcher.max_concurrent,
        },
        "observers": len(service.observers),
    }
    if database_ok:
        checks["jobs"] = await service.store.status_counts()

    try:
        disk = service.layout.disk_usage()
        checks["disk"] = {
            "total": disk.total,
            "free": disk.free,
            "percent": disk.percent,
        }
    except OSError as e:
        logger.warning(f"Disk usage unavailable: {e}")

    if not database_ok:
        overall = "unhealthy"
    elif not fetcher["installed"]:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthStatus(
        status=overall,
        version=service.settings.APP_VERSION,
        uptime=time.time() - (service.started_at or time.time()),
        environment=service.settings.ENVIRONMENT.value,
        checks=checks,
    )


@router.get("/ready", response_model=SuccessResponse)
async def readiness_check(service: AcquisitionService = Depends(get_service)):
    """Ready once the database answers."""
    if not await service.database.ping():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready"
        )
    return SuccessResponse(message="Service is ready")
