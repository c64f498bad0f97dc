"""
Render Jobs Router
Create and inspect render jobs
"""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from ..models.job import RenderJob, RenderJobCreate
from ..models.render_spec import SlideshowSpec, parse_render_spec, serialize_render_spec
from ..services.job_store import JobStore, get_job_store
from ..services.media_resolver import MediaResolver
from ..utils.exceptions import JobNotFoundError
from ..utils.logger import get_logger
from .dependencies import get_current_user_id

router = APIRouter(prefix="/api/render-jobs", tags=["render-jobs"])
logger = get_logger()


def _as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.post("", response_model=RenderJob, status_code=status.HTTP_201_CREATED)
async def create_render_job(
    request: RenderJobCreate,
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    """Validate the spec and its media, then queue a PENDING render job."""
    spec = parse_render_spec(request.render_spec)

    image_ids = spec.images if isinstance(spec, SlideshowSpec) else []
    audio_items, image_items = await MediaResolver(store).resolve_ids(spec.audios, image_ids)

    job = await store.create_render_job(
        requested_by_user_id=user_id,
        audio_media_item_id=audio_items[0].id,
        image_media_item_id=image_items[0].id if image_items else None,
        render_spec=serialize_render_spec(spec),
        drive_connection_id=request.drive_connection_id,
        scheduled_for=_as_utc_naive(request.scheduled_for),
    )
    logger.info(f"Render job {job.id} created by user {user_id} (mode={spec.mode})")
    return job


@router.get("", response_model=List[RenderJob])
async def list_render_jobs(
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    return await store.list_render_jobs(user_id)


@router.get("/{job_id}", response_model=RenderJob)
async def get_render_job(
    job_id: int,
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    job = await store.get_render_job(job_id)
    if job is None or job.requested_by_user_id != user_id:
        raise JobNotFoundError(job_id)
    return job
