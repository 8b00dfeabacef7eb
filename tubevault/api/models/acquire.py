"""
Request and response models for the acquisition endpoints.

Field names follow the camelCase wire format. The older ``url`` and
``downloadSubtitles`` names are accepted on input.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AcquireRequest(BaseModel):
    """Single item intake."""
    model_config = ConfigDict(populate_by_name=True)

    sourceUrl: str = Field(
        min_length=1,
        validation_alias=AliasChoices("sourceUrl", "url"),
        description="URL of the media to acquire",
    )
    quality: Optional[str] = Field(default=None, description="best, 2160..360, or audio")
    wantSubtitles: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("wantSubtitles", "downloadSubtitles"),
    )
    batchTargetId: Optional[int] = Field(default=None, description="Collection to append the item to")


class BatchAcquireRequest(BaseModel):
    """Playlist intake."""
    model_config = ConfigDict(populate_by_name=True)

    sourceUrl: str = Field(min_length=1, validation_alias=AliasChoices("sourceUrl", "url"))
    quality: Optional[str] = None
    wantSubtitles: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("wantSubtitles", "downloadSubtitles"),
    )
    collectionId: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("collectionId", "playlistId"),
    )


class JobModel(BaseModel):
    id: str
    sourceUrl: str
    title: Optional[str] = None
    status: str
    progress: float
    quality: str
    wantSubtitles: bool
    isBatch: bool
    batchSize: int
    batchCompletedCount: int
    batchTargetId: Optional[int] = None
    startedAt: Optional[str] = None
    completedAt: Optional[str] = None
    errorMessage: Optional[str] = None


class AcceptedResponse(BaseModel):
    message: str = "Download started"
    job: JobModel


class BatchAcceptedResponse(BaseModel):
    message: str = "Playlist download started"
    batchId: str
    title: str
    memberCount: int
    entries: List[Dict[str, Any]]


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class HistoryResponse(BaseModel):
    jobs: List[JobModel]
    pagination: Pagination


class BatchPreviewResponse(BaseModel):
    id: str
    title: str
    memberCount: int
    entries: List[Dict[str, Any]]


class FetcherStatusResponse(BaseModel):
    installed: bool
    version: Optional[str] = None


class CookiesResponse(BaseModel):
    success: bool = True
    message: str
    hasCookies: bool
