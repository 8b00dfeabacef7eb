"""API request/response models."""

from .acquire import (
    AcceptedResponse,
    AcquireRequest,
    BatchAcceptedResponse,
    BatchAcquireRequest,
    BatchPreviewResponse,
    CookiesResponse,
    FetcherStatusResponse,
    HistoryResponse,
    JobModel,
)
from .common import ErrorResponse, HealthStatus, SuccessResponse

__all__ = [
    "AcceptedResponse",
    "AcquireRequest",
    "BatchAcceptedResponse",
    "BatchAcquireRequest",
    "BatchPreviewResponse",
    "CookiesResponse",
    "ErrorResponse",
    "FetcherStatusResponse",
    "HealthStatus",
    "HistoryResponse",
    "JobModel",
    "SuccessResponse",
]
