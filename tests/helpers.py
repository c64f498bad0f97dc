"""Shared builders for test records."""

from typing import Optional

from tunecast.models.job import JobKind, JobStatus, RenderJob
from tunecast.models.media_item import MediaItem
from tunecast.models.render_spec import parse_render_spec, serialize_render_spec
from tunecast.services.job_store import JobStore


async def make_media(
    store: JobStore,
    drive_file_id: str,
    name: str,
    mime_type: str,
    connection_id: Optional[int] = None,
    folder_path: Optional[str] = "/",
) -> MediaItem:
    return await store.create_media_item(
        drive_file_id=drive_file_id,
        name=name,
        mime_type=mime_type,
        drive_connection_id=connection_id,
        folder_path=folder_path,
    )


async def make_render_job(
    store: JobStore,
    spec: Optional[dict],
    user_id: int = 1,
    audio_id: Optional[int] = None,
    image_id: Optional[int] = None,
    **kwargs,
) -> RenderJob:
    parsed = parse_render_spec(spec) if spec is not None else None
    if audio_id is None and parsed is not None:
        audio_id = parsed.audios[0]
    job = await store.create_render_job(
        requested_by_user_id=user_id,
        audio_media_item_id=audio_id,
        image_media_item_id=image_id,
        render_spec=serialize_render_spec(parsed) if parsed is not None else None,
        **kwargs,
    )
    return job


async def force_status(store: JobStore, kind: JobKind, job_id: int, status: JobStatus):
    """Overwrite a job's status, bypassing the guarded transitions."""
    async with store._transaction() as conn:
        await conn.execute(f"UPDATE {kind.table} SET status = ? WHERE id = ?", (status.value, job_id))
