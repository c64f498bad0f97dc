"""Tests for publishing upload jobs to YouTube."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from helpers import make_media
from tunecast.models.job import JobStatus
from tunecast.models.media_item import MediaStatus
from tunecast.services.upload_processor import ERROR_MESSAGE_LIMIT, UploadProcessor
from tunecast.utils.clock import utc_now
from tunecast.utils.exceptions import UploadFailedError


@pytest.fixture
def youtube():
    client = AsyncMock()
    client.upload_video.return_value = "yt-123"
    return client


def _processor(store, fake_drive, youtube, settings):
    return UploadProcessor(store=store, drive=fake_drive, youtube=youtube, settings=settings)


class TestUploadProcessor:
    """Tests for UploadProcessor.process."""

    @pytest.mark.asyncio
    async def test_publishes_and_records_video(self, store, fake_drive, youtube, settings):
        media = await make_media(store, "drive-v", "render.mp4", "video/mp4")
        job = await store.create_upload_job(
            1, media.id, "My video", description="desc", tags=["a", "b"], privacy_status="unlisted"
        )

        video_id = await _processor(store, fake_drive, youtube, settings).process(job)

        assert video_id == "yt-123"
        assert fake_drive.downloads == ["drive-v"]
        kwargs = youtube.upload_video.await_args.kwargs
        assert kwargs["title"] == "My video"
        assert kwargs["tags"] == ["a", "b"]
        assert kwargs["privacy_status"] == "unlisted"
        assert kwargs["publish_at"] is None

        stored = await store.get_upload_job(job.id)
        assert stored.status == JobStatus.SUCCESS
        assert stored.youtube_video_id == "yt-123"
        assert (await store.get_media_item(media.id)).status == MediaStatus.UPLOADED

    @pytest.mark.asyncio
    async def test_future_schedule_becomes_publish_time(self, store, fake_drive, youtube, settings):
        media = await make_media(store, "drive-v", "render.mp4", "video/mp4")
        when = utc_now() + timedelta(days=1)
        job = await store.create_upload_job(1, media.id, "Later", scheduled_for=when)

        await _processor(store, fake_drive, youtube, settings).process(job)

        assert youtube.upload_video.await_args.kwargs["publish_at"] == when

    @pytest.mark.asyncio
    async def test_already_published_job_is_skipped(self, store, fake_drive, youtube, settings):
        media = await make_media(store, "drive-v", "render.mp4", "video/mp4")
        job = await store.create_upload_job(1, media.id, "Done")
        await store.complete_upload_job(job.id, media.id, "yt-old")

        result = await _processor(store, fake_drive, youtube, settings).process(
            await store.get_upload_job(job.id)
        )

        assert result is None
        youtube.upload_video.assert_not_awaited()
        assert fake_drive.downloads == []

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_truncated(self, store, fake_drive, youtube, settings):
        media = await make_media(store, "drive-v", "render.mp4", "video/mp4")
        job = await store.create_upload_job(1, media.id, "Broken")
        youtube.upload_video.side_effect = UploadFailedError("quota exceeded " + "x" * 2000, "youtube")

        result = await _processor(store, fake_drive, youtube, settings).process(job)

        assert result is None
        stored = await store.get_upload_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_message.startswith("quota exceeded")
        assert len(stored.error_message) == ERROR_MESSAGE_LIMIT
        assert (await store.get_media_item(media.id)).status == MediaStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_missing_media_fails_job(self, store, fake_drive, youtube, settings):
        job = await store.create_upload_job(1, 4040, "Ghost")

        await _processor(store, fake_drive, youtube, settings).process(job)

        stored = await store.get_upload_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert "4040" in stored.error_message
        youtube.upload_video.assert_not_awaited()
