"""Tests for the render pipeline: download, encode, upload and link."""

from datetime import datetime

import pytest
import pytest_asyncio

from helpers import make_media, make_render_job
from tunecast.models.job import JobKind, JobStatus
from tunecast.models.media_item import MediaStatus
from tunecast.services.render_pipeline import (
    RenderPipeline,
    output_file_name,
    sanitize_file_name,
    scratch_dir_for,
    timestamp_string,
)


def _slideshow(audios, images, interval=5, repeat=False, name=None):
    spec = {
        "mode": "slideshow",
        "audios": audios,
        "images": images,
        "intervalSeconds": interval,
        "autoTime": False,
        "repeatImages": repeat,
    }
    if name is not None:
        spec["outputFileName"] = name
    return spec


def _waveform(audios, style="bars"):
    return {
        "mode": "waveform",
        "audios": audios,
        "backgroundColor": "#000000",
        "waveColor": "#00ffcc",
        "waveStyle": style,
    }


@pytest_asyncio.fixture
async def connection(store):
    return await store.create_drive_connection(1, "root-folder")


def _pipeline(store, fake_drive, encoder, settings):
    return RenderPipeline(store=store, drive=fake_drive, encoder=encoder, settings=settings)


class TestOutputNaming:
    """Tests for output file naming."""

    def test_timestamp_format(self):
        assert timestamp_string(datetime(2024, 1, 2, 3, 4, 5, 678000)) == "2024-01-02T03-04-05-678Z"

    def test_sanitizes_base_name(self):
        when = datetime(2024, 1, 2, 3, 4, 5, 678000)
        assert output_file_name("My Song!.mp3", when) == "My_Song_mp3_2024-01-02T03-04-05-678Z.mp4"

    def test_falls_back_to_default_base(self):
        when = datetime(2024, 1, 2, 3, 4, 5)
        assert output_file_name(None, when) == "rendered_video_2024-01-02T03-04-05-000Z.mp4"
        assert output_file_name("!!!", when).startswith("rendered_video_")

    def test_sanitize_keeps_dashes_and_underscores(self):
        assert sanitize_file_name("a-b_c d") == "a-b_c_d"


class TestRenderPipeline:
    """End-to-end pipeline runs against fake Drive and encoder."""

    @pytest.mark.asyncio
    async def test_waveform_single_audio(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        job = await make_render_job(store, _waveform([audio.id]))

        output = await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        assert fake_encoder.steps() == ["waveform"]
        assert fake_drive.downloads == ["drive-a"]
        assert len(fake_drive.uploads) == 1
        upload = fake_drive.uploads[0]
        assert upload["folder_id"] == "root-folder"
        assert upload["mime_type"] == "video/mp4"
        assert upload["name"].startswith("song_mp3_")

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.SUCCESS
        assert stored.output_media_item_id == output.id
        assert stored.drive_connection_id == connection.id
        assert output.drive_file_id == "uploaded-1"
        assert output.mime_type == "video/mp4"
        assert output.status == MediaStatus.ACTIVE
        assert not scratch_dir_for(job.id, settings.temp_dir).exists()

    @pytest.mark.asyncio
    async def test_slideshow_merges_audio_and_covers_duration(self, store, fake_drive, fake_encoder, settings, connection):
        a1 = await make_media(store, "drive-a1", "one.mp3", "audio/mpeg", connection.id)
        a2 = await make_media(store, "drive-a2", "two.mp3", "audio/mpeg", connection.id)
        image = await make_media(store, "drive-i", "cover.png", "image/png", connection.id)
        encoder = fake_encoder
        encoder.durations = {f"audio-{a1.id}.mp3": 4.0, f"audio-{a2.id}.mp3": 8.0}
        job = await make_render_job(store, _slideshow([a1.id, a2.id], [image.id], name="Mix Tape"))

        await _pipeline(store, fake_drive, encoder, settings).process(job)

        assert encoder.steps() == ["concat", "segment", "mux"]
        concat = encoder.calls[0]
        assert [p.rsplit("/", 1)[-1] for p in concat[1]] == [f"audio-{a1.id}.mp3", f"audio-{a2.id}.mp3"]
        segment = next(c for c in encoder.calls if c[0] == "segment")
        assert segment[2] == pytest.approx(12.0)
        assert fake_drive.uploads[0]["name"].startswith("Mix_Tape_")

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_legacy_job_renders_image_over_audio(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        image = await make_media(store, "drive-i", "cover.png", "image/png", connection.id)
        job = await make_render_job(store, None, audio_id=audio.id, image_id=image.id)

        await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        assert fake_encoder.steps() == ["segment", "mux"]
        segment = next(c for c in fake_encoder.calls if c[0] == "segment")
        assert segment[2] == pytest.approx(10.0)
        assert (await store.get_render_job(job.id)).status == JobStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_missing_media_fails_before_download(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        job = await make_render_job(store, _slideshow([audio.id], [4242]))

        output = await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        assert output is None
        assert fake_drive.downloads == []
        assert fake_encoder.steps() == []
        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert "Image media item 4242 not found" in stored.error_message

    @pytest.mark.asyncio
    async def test_wrong_audio_mime_fails_before_download(self, store, fake_drive, fake_encoder, settings, connection):
        not_audio = await make_media(store, "drive-v", "clip.mp4", "video/mp4", connection.id)
        job = await make_render_job(store, _waveform([not_audio.id]))

        await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert "expected to start with audio/" in stored.error_message
        assert fake_drive.downloads == []
        assert fake_drive.uploads == []

    @pytest.mark.asyncio
    async def test_encoder_failure_is_recorded(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        image = await make_media(store, "drive-i", "cover.png", "image/png", connection.id)
        job = await make_render_job(store, _slideshow([audio.id], [image.id]))
        fake_encoder.fail_step = "mux"

        await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_message.startswith("ffmpeg mux exited with code 1")
        assert fake_drive.uploads == []
        assert not scratch_dir_for(job.id, settings.temp_dir).exists()

    @pytest.mark.asyncio
    async def test_download_failure_is_recorded(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        job = await make_render_job(store, _waveform([audio.id]))
        fake_drive.fail_download = RuntimeError("drive unavailable")

        await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_message.startswith("drive unavailable")

    @pytest.mark.asyncio
    async def test_mixed_connections_fail(self, store, fake_drive, fake_encoder, settings, connection):
        other = await store.create_drive_connection(1, "other-root")
        a1 = await make_media(store, "drive-a1", "one.mp3", "audio/mpeg", connection.id)
        a2 = await make_media(store, "drive-a2", "two.mp3", "audio/mpeg", other.id)
        job = await make_render_job(store, _waveform([a1.id, a2.id]))

        await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert "Mixed drive connections" in stored.error_message
        assert fake_drive.downloads == []

    @pytest.mark.asyncio
    async def test_output_folder_override(self, store, fake_drive, fake_encoder, settings, connection):
        settings.drive_output_folder_id = "renders-folder"
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        job = await make_render_job(store, _waveform([audio.id]))

        await _pipeline(store, fake_drive, fake_encoder, settings).process(job)

        assert fake_drive.uploads[0]["folder_id"] == "renders-folder"

    @pytest.mark.asyncio
    async def test_reprocessing_does_not_upload_twice(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        job = await make_render_job(store, _waveform([audio.id]))
        pipeline = _pipeline(store, fake_drive, fake_encoder, settings)

        first = await pipeline.process(job)
        # stale copy: status guard stops it
        assert await pipeline.process(job) is None
        # fresh copy: output guard stops it
        assert await pipeline.process(await store.get_render_job(job.id)) is None

        assert len(fake_drive.uploads) == 1
        stored = await store.get_render_job(job.id)
        assert stored.output_media_item_id == first.id
        assert stored.status == JobStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_stale_copy_of_failed_job_does_not_rerun(self, store, fake_drive, fake_encoder, settings, connection):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg", connection.id)
        job = await make_render_job(store, _waveform([audio.id]))
        await store.fail_job(JobKind.RENDER, job.id, "earlier attempt failed")

        assert await _pipeline(store, fake_drive, fake_encoder, settings).process(job) is None

        stored = await store.get_render_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_message == "earlier attempt failed"
        assert fake_drive.downloads == []
        assert fake_encoder.steps() == []


class TestCompleteRenderJob:
    """Tests for the output-linking transaction."""

    @pytest.mark.asyncio
    async def test_second_completion_returns_existing_output(self, store):
        audio = await make_media(store, "drive-a", "song.mp3", "audio/mpeg")
        job = await make_render_job(store, _waveform([audio.id]))

        first = await store.complete_render_job(job.id, "out-1", "out.mp4", None)
        second = await store.complete_render_job(job.id, "out-2", "again.mp4", None)

        assert second.id == first.id
        assert await store.get_media_item_by_drive_id("out-2") is None
