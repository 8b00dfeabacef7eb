"""
Exception classes for the acquisition service.
Provides structured error handling with error codes, context and HTTP status.
"""

from typing import Any, Dict, Optional

from .constants import (
    AGE_RESTRICTED_MESSAGE,
    ERROR_CODES,
    FORMAT_UNAVAILABLE_MESSAGE,
)


class AcquisitionError(Exception):
    """Base exception for all acquisition errors."""

    http_status = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or ERROR_CODES["ACQUISITION_ERROR"]
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


class ValidationError(AcquisitionError):
    """Malformed or missing request input."""

    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        context = context or {}
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)

        super().__init__(
            message=message,
            error_code=ERROR_CODES["VALIDATION_ERROR"],
            context=context,
            cause=cause
        )


class ConflictError(AcquisitionError):
    """An active job already exists for the natural key."""

    http_status = 409

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        existing: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        context = context or {}
        if job_id:
            context["job_id"] = job_id
        self.existing = existing

        super().__init__(
            message=message,
            error_code=ERROR_CODES["CONFLICT"],
            context=context,
            cause=cause
        )


class JobNotFoundError(AcquisitionError):
    """No job (or no active job) exists for the natural key."""

    http_status = 404

    def __init__(self, message: str, job_id: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ERROR_CODES["JOB_NOT_FOUND"],
            context={"job_id": job_id} if job_id else {},
            cause=cause
        )


class FetcherError(AcquisitionError):
    """Base class for failures of the external fetcher."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        context = context or {}
        if url:
            context["url"] = url

        super().__init__(
            message=message,
            error_code=error_code or ERROR_CODES["FETCHER_ERROR"],
            context=context,
            cause=cause
        )


class FetcherLaunchError(FetcherError):
    """The fetcher process could not be started."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        url: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            url=url,
            error_code=ERROR_CODES["FETCHER_LAUNCH_FAILED"],
            context={"command": command} if command else None,
            cause=cause
        )


class FetcherExitError(FetcherError):
    """The fetcher exited with a non-zero code."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
        url: Optional[str] = None,
        error_code: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        self.returncode = returncode
        self.stderr = stderr or ""
        context = {}
        if returncode is not None:
            context["returncode"] = returncode

        super().__init__(
            message=message,
            url=url,
            error_code=error_code or ERROR_CODES["FETCHER_EXIT_FAILED"],
            context=context,
            cause=cause
        )


class AgeRestrictedError(FetcherExitError):
    """The source requires a signed-in session; cookies can fix it."""

    http_status = 403

    def __init__(
        self,
        message: str = AGE_RESTRICTED_MESSAGE,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            returncode=returncode,
            stderr=stderr,
            url=url,
            error_code=ERROR_CODES["AGE_RESTRICTED"],
        )


class FormatUnavailableError(FetcherExitError):
    """The requested quality does not exist for the source."""

    def __init__(
        self,
        message: str = FORMAT_UNAVAILABLE_MESSAGE,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            returncode=returncode,
            stderr=stderr,
            url=url,
            error_code=ERROR_CODES["FORMAT_UNAVAILABLE"],
        )


class MetadataParseError(FetcherError):
    """Fetcher metadata output was not valid JSON."""

    def __init__(self, message: str, url: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            url=url,
            error_code=ERROR_CODES["METADATA_PARSE_FAILED"],
            cause=cause
        )


class ArtifactMissing(AcquisitionError):
    """The fetcher exited cleanly but no media file was produced."""

    def __init__(
        self,
        job_id: str,
        working_dir: Optional[str] = None,
        found: Optional[list] = None,
    ):
        context: Dict[str, Any] = {"job_id": job_id}
        if working_dir:
            context["working_dir"] = working_dir
        if found is not None:
            context["found"] = found

        super().__init__(
            message=f"No media file produced for {job_id}",
            error_code=ERROR_CODES["ARTIFACT_MISSING"],
            context=context
        )


class StorageError(AcquisitionError):
    """Moving or deleting artifacts failed."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        context = context or {}
        if operation:
            context["operation"] = operation
        if path:
            context["path"] = path

        super().__init__(
            message=message,
            error_code=ERROR_CODES["STORAGE_FAILED"],
            context=context,
            cause=cause
        )


class PartialCleanupError(StorageError):
    """A single file could not be deleted during cancellation cleanup.

    Only ever logged, never raised to callers.
    """

    def __init__(self, path: str, job_id: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Could not delete {path}",
            operation="delete",
            path=path,
            context={"job_id": job_id},
            cause=cause
        )
        self.error_code = ERROR_CODES["PARTIAL_CLEANUP"]


class BatchEnumerationError(AcquisitionError):
    """Listing the members of a batch failed."""

    http_status = 500

    def __init__(self, message: str, url: Optional[str] = None, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ERROR_CODES["BATCH_ENUMERATION_FAILED"],
            context={"url": url} if url else {},
            cause=cause
        )


class EmptyBatchError(AcquisitionError):
    """Batch enumeration returned no members."""

    http_status = 400

    def __init__(self, url: Optional[str] = None):
        super().__init__(
            message="No videos found in playlist",
            error_code=ERROR_CODES["EMPTY_BATCH"],
            context={"url": url} if url else {}
        )
