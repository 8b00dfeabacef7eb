"""
Acquisition endpoints: intake, queries, cancellation, metadata preview and cookies.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from ..dependencies import get_service
from ..models.acquire import (
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
from ..models.common import SuccessResponse
from ...config.logging_config import get_logger
from ...services.acquisition_service import AcquisitionService
from ...utils.exceptions import JobNotFoundError

logger = get_logger(__name__)
router = APIRouter()


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
async def acquire(
    request: AcquireRequest,
    service: AcquisitionService = Depends(get_service),
):
    """
    Accept a single item for acquisition.

    Returns once the job is durably pending; progress arrives on the push
    channel or through polling.
    """
    job = await service.submit(
        request.sourceUrl,
        quality=request.quality,
        want_subtitles=request.wantSubtitles,
        batch_target_id=request.batchTargetId,
    )
    return AcceptedResponse(job=job.to_dict())


@router.post("/batch", status_code=status.HTTP_202_ACCEPTED, response_model=BatchAcceptedResponse)
async def acquire_batch(
    request: BatchAcquireRequest,
    service: AcquisitionService = Depends(get_service),
):
    """Enumerate a playlist and acquire every member."""
    parent, listing = await service.submit_batch(
        request.sourceUrl,
        quality=request.quality,
        want_subtitles=request.wantSubtitles,
        collection_id=request.collectionId,
    )
    return BatchAcceptedResponse(
        batchId=parent.id,
        title=listing.title,
        memberCount=listing.member_count,
        entries=listing.preview(),
    )


@router.get("/active", response_model=List[JobModel])
async def list_active(service: AcquisitionService = Depends(get_service)):
    """Non-terminal jobs, most recently started first."""
    return [job.to_dict() for job in await service.list_active()]


@router.get("/history", response_model=HistoryResponse)
async def list_history(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    service: AcquisitionService = Depends(get_service),
):
    return await service.list_history(limit=limit, offset=offset)


@router.get("/info")
async def media_info(
    url: str = Query(..., min_length=1),
    service: AcquisitionService = Depends(get_service),
):
    """Fetcher metadata for a URL without acquiring it."""
    return await service.preview(url)


@router.get("/batch/info", response_model=BatchPreviewResponse)
async def batch_info(
    url: str = Query(..., min_length=1),
    service: AcquisitionService = Depends(get_service),
):
    """Playlist member preview without creating a job."""
    return await service.preview_batch(url)


@router.get("/check", response_model=FetcherStatusResponse)
async def check_fetcher(service: AcquisitionService = Depends(get_service)):
    """Whether the fetcher binary can be invoked."""
    return await service.fetcher_status()


@router.post("/cookies", response_model=CookiesResponse)
async def upload_cookies(
    file: UploadFile = File(...),
    service: AcquisitionService = Depends(get_service),
):
    """Store a Netscape cookies file used for age-restricted media."""
    content = await file.read()
    await service.save_cookies(content)
    return CookiesResponse(message="Cookies file uploaded", hasCookies=True)


@router.get("/cookies", response_model=CookiesResponse)
async def cookies_status(service: AcquisitionService = Depends(get_service)):
    has_cookies = service.has_cookies()
    return CookiesResponse(
        message="Cookies file present" if has_cookies else "No cookies file",
        hasCookies=has_cookies,
    )


@router.delete("/cookies", response_model=CookiesResponse)
async def delete_cookies(service: AcquisitionService = Depends(get_service)):
    removed = await service.delete_cookies()
    return CookiesResponse(
        message="Cookies file removed" if removed else "No cookies file",
        hasCookies=False,
    )


@router.get("/{job_id}", response_model=JobModel)
async def get_job(job_id: str, service: AcquisitionService = Depends(get_service)):
    return (await service.get_job(job_id)).to_dict()


@router.delete("/{job_id}", response_model=SuccessResponse)
async def cancel_job(job_id: str, service: AcquisitionService = Depends(get_service)):
    """Cancel a pending or downloading job."""
    if not await service.cancel(job_id):
        raise JobNotFoundError("No active download found", job_id=job_id)
    return SuccessResponse(message="Download cancelled")
