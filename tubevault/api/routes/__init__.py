"""API route modules."""

from .acquire import router as acquire_router
from .health import router as health_router
from .metrics import router as metrics_router

__all__ = ["acquire_router", "health_router", "metrics_router"]
