"""
Upload Jobs Router
Queue Drive videos for publishing to YouTube
"""

from datetime import timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..models.job import JobKind, JobStatus, UploadJob, UploadJobCreate
from ..services.job_store import JobStore, get_job_store
from ..utils.exceptions import InvalidMimeTypeError, JobNotFoundError, MediaNotFoundError
from ..utils.logger import get_logger
from .dependencies import get_current_user_id

router = APIRouter(prefix="/api/upload-jobs", tags=["upload-jobs"])
logger = get_logger()

VIDEO_MIME_PREFIX = "video/"


@router.post("", response_model=UploadJob, status_code=status.HTTP_201_CREATED)
async def create_upload_job(
    request: UploadJobCreate,
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    """Queue a PENDING upload job for an existing Drive video."""
    media = await store.get_media_item(request.media_item_id)
    if media is None:
        raise MediaNotFoundError(request.media_item_id, "Video")
    if not media.mime_type.startswith(VIDEO_MIME_PREFIX):
        raise InvalidMimeTypeError(media.id, VIDEO_MIME_PREFIX, media.mime_type)

    scheduled_for = request.scheduled_for
    if scheduled_for is not None and scheduled_for.tzinfo is not None:
        scheduled_for = scheduled_for.astimezone(timezone.utc).replace(tzinfo=None)

    job = await store.create_upload_job(
        requested_by_user_id=user_id,
        media_item_id=media.id,
        title=request.title,
        description=request.description,
        tags=request.tags,
        privacy_status=request.privacy_status,
        scheduled_for=scheduled_for,
    )
    logger.info(f"Upload job {job.id} created by user {user_id} for media item {media.id}")
    return job


@router.get("", response_model=List[UploadJob])
async def list_upload_jobs(
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    return await store.list_upload_jobs(user_id)


@router.delete("/{job_id}")
async def cancel_upload_job(
    job_id: int,
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    """Cancel a job that has not been claimed yet."""
    job = await store.get_upload_job(job_id, with_relations=False)
    if job is None:
        raise JobNotFoundError(job_id, "upload")
    if job.requested_by_user_id != user_id:
        raise HTTPException(status_code=403, detail="Not authorized to cancel this job")
    if job.status != JobStatus.PENDING or not await store.delete_pending_job(JobKind.UPLOAD, job_id):
        raise HTTPException(status_code=400, detail=f"Cannot cancel job with status {job.status.value}")

    logger.info(f"Upload job {job_id} cancelled by user {user_id}")
    return {"ok": True}
