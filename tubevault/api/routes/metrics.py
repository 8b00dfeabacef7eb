"""
Prometheus metrics endpoint.
"""

from fastapi import APIRouter, Depends, Response

from ..dependencies import get_service
from ...services.acquisition_service import AcquisitionService

router = APIRouter()


@router.get("")
async def prometheus_metrics(service: AcquisitionService = Depends(get_service)):
    """Metrics in Prometheus text exposition format."""
    service.metrics.observers_connected.set(len(service.observers))
    return Response(
        content=service.metrics.get_metrics(),
        media_type=service.metrics.get_content_type(),
    )
