"""Utility modules for the acquisition service."""

from .clock import utcnow
from .exceptions import (
    AcquisitionError,
    AgeRestrictedError,
    ArtifactMissing,
    BatchEnumerationError,
    ConflictError,
    EmptyBatchError,
    FetcherError,
    FetcherExitError,
    FetcherLaunchError,
    FormatUnavailableError,
    JobNotFoundError,
    MetadataParseError,
    PartialCleanupError,
    StorageError,
    ValidationError,
)

__all__ = [
    "utcnow",
    "AcquisitionError",
    "AgeRestrictedError",
    "ArtifactMissing",
    "BatchEnumerationError",
    "ConflictError",
    "EmptyBatchError",
    "FetcherError",
    "FetcherExitError",
    "FetcherLaunchError",
    "FormatUnavailableError",
    "JobNotFoundError",
    "MetadataParseError",
    "PartialCleanupError",
    "StorageError",
    "ValidationError",
]
