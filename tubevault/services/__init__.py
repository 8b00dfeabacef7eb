"""Service layer."""

from .acquisition_service import AcquisitionService, normalize_quality

__all__ = ["AcquisitionService", "normalize_quality"]
