"""
FastAPI dependencies.
"""

from fastapi import Request

from ..services.acquisition_service import AcquisitionService


def get_service(request: Request) -> AcquisitionService:
    """The acquisition service created by the application lifespan."""
    return request.app.state.service
