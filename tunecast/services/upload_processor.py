"""
Upload Processor
Publishes a claimed upload job's Drive video to YouTube
"""

import shutil
from pathlib import Path
from typing import Optional

from ..config import Settings, get_settings
from ..models.job import JobKind, UploadJob
from ..utils.clock import utc_now
from ..utils.exceptions import DownloadFailedError, MediaNotFoundError, format_error
from ..utils.logger import get_logger
from .drive_client import DriveClient, get_drive_client
from .job_store import JobStore, get_job_store
from .youtube_client import YouTubeClient, get_youtube_client

logger = get_logger()

ERROR_MESSAGE_LIMIT = 1000


class UploadProcessor:
    """Download from Drive, upload to YouTube, record the video id"""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        drive: Optional[DriveClient] = None,
        youtube: Optional[YouTubeClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store or get_job_store()
        self.drive = drive or get_drive_client()
        self.youtube = youtube or get_youtube_client()
        self.settings = settings or get_settings()

    async def process(self, job: UploadJob) -> Optional[str]:
        """
        Publish one upload job

        Returns:
            The YouTube video id, or None when skipped or failed
        """
        if job.youtube_video_id:
            logger.info(f"Upload job {job.id} already has YouTube video {job.youtube_video_id}, skipping")
            await self.store.settle_completed_job(JobKind.UPLOAD, job.id)
            return None

        scratch_dir = Path(self.settings.temp_dir) / f"upload-job-{job.id}"
        try:
            logger.info(f"Processing upload job {job.id}: {job.title}")
            media = job.media_item or await self.store.get_media_item(job.media_item_id)
            if media is None:
                raise MediaNotFoundError(job.media_item_id, "Upload")
            if not media.drive_file_id:
                raise DownloadFailedError(f"Media item {media.id} has no Drive file id")

            scratch_dir.mkdir(parents=True, exist_ok=True)
            suffix = Path(media.name).suffix or ".mp4"
            local_path = await self.drive.download(media.drive_file_id, scratch_dir / f"video-{media.id}{suffix}")

            publish_at = None
            if job.scheduled_for is not None and job.scheduled_for > utc_now():
                publish_at = job.scheduled_for

            video_id = await self.youtube.upload_video(
                local_path,
                title=job.title,
                description=job.description,
                tags=job.tags,
                privacy_status=job.privacy_status,
                publish_at=publish_at,
            )

            await self.store.complete_upload_job(job.id, media.id, video_id)
            logger.info(f"Upload job {job.id} completed: YouTube video {video_id}")
            return video_id

        except Exception as e:
            logger.exception(f"Upload job {job.id} failed: {e}")
            await self.store.fail_job(JobKind.UPLOAD, job.id, format_error(e)[:ERROR_MESSAGE_LIMIT])
            return None

        finally:
            if scratch_dir.exists():
                try:
                    shutil.rmtree(scratch_dir)
                except OSError as e:
                    logger.warning(f"Failed to remove scratch dir {scratch_dir}: {e}")
