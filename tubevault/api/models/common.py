"""
Common Pydantic models for API responses.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SuccessResponse(BaseModel):
    """Generic success response."""
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body rendered by the exception handlers."""
    error: str
    errorCode: Optional[str] = None
    status_code: int
    timestamp: float
    path: str
    details: Optional[Dict[str, Any]] = None


class HealthStatus(BaseModel):
    """Health check status."""
    status: str = Field(description="Overall health status")
    version: str
    uptime: float
    environment: str
    timestamp: datetime = Field(default_factory=_now)
    checks: Dict[str, Any] = Field(default_factory=dict)
