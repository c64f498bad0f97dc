"""Tests for the media resolver."""

from unittest.mock import AsyncMock

import pytest

from helpers import make_media, make_render_job
from tunecast.services.media_resolver import MediaResolver
from tunecast.utils.exceptions import (
    InvalidMimeTypeError,
    InvalidSpecError,
    MediaNotFoundError,
)


def _slideshow(audios, images):
    return {
        "mode": "slideshow",
        "audios": audios,
        "images": images,
        "intervalSeconds": 5,
        "autoTime": False,
        "repeatImages": False,
    }


class TestMediaResolver:
    """Tests for MediaResolver.resolve."""

    @pytest.mark.asyncio
    async def test_resolves_in_spec_order(self, store):
        a1 = await make_media(store, "a1", "one.mp3", "audio/mpeg")
        a2 = await make_media(store, "a2", "two.mp3", "audio/mpeg")
        i1 = await make_media(store, "i1", "one.png", "image/png")
        i2 = await make_media(store, "i2", "two.jpg", "image/jpeg")
        job = await make_render_job(store, _slideshow([a2.id, a1.id], [i2.id, i1.id]))

        resolved = await MediaResolver(store).resolve(job)

        assert [item.id for item in resolved.audio_items] == [a2.id, a1.id]
        assert [item.id for item in resolved.image_items] == [i2.id, i1.id]

    @pytest.mark.asyncio
    async def test_single_batched_lookup(self, store):
        audio = await make_media(store, "a1", "one.mp3", "audio/mpeg")
        extra = await make_media(store, "a2", "two.mp3", "audio/mpeg")
        images = [await make_media(store, f"i{n}", f"{n}.png", "image/png") for n in range(3)]
        job = await make_render_job(
            store, _slideshow([audio.id, extra.id], [i.id for i in images]), audio_id=audio.id
        )
        job = await store.get_render_job(job.id)

        spy = AsyncMock(wraps=store.get_media_items)
        store.get_media_items = spy
        await MediaResolver(store).resolve(job)

        spy.assert_awaited_once()
        requested = list(spy.await_args.args[0])
        # the preloaded audio relation is not looked up again
        assert audio.id not in requested
        assert sorted(requested) == sorted([extra.id] + [i.id for i in images])

    @pytest.mark.asyncio
    async def test_legacy_job_uses_columns(self, store):
        audio = await make_media(store, "a1", "one.mp3", "audio/mpeg")
        image = await make_media(store, "i1", "one.png", "image/png")
        job = await make_render_job(store, None, audio_id=audio.id, image_id=image.id)

        resolved = await MediaResolver(store).resolve(job)

        assert resolved.spec is None
        assert [item.id for item in resolved.audio_items] == [audio.id]
        assert [item.id for item in resolved.image_items] == [image.id]

    @pytest.mark.asyncio
    async def test_missing_image(self, store):
        audio = await make_media(store, "a1", "one.mp3", "audio/mpeg")
        job = await make_render_job(store, _slideshow([audio.id], [999]))

        with pytest.raises(MediaNotFoundError) as exc_info:
            await MediaResolver(store).resolve(job)
        assert exc_info.value.message == "Image media item 999 not found"

    @pytest.mark.asyncio
    async def test_missing_audio(self, store):
        job = await make_render_job(store, _slideshow([404], [1]))

        with pytest.raises(MediaNotFoundError) as exc_info:
            await MediaResolver(store).resolve(job)
        assert "Audio media item 404" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_wrong_mime_type(self, store):
        audio = await make_media(store, "a1", "one.mp3", "audio/mpeg")
        not_image = await make_media(store, "v1", "clip.mp4", "video/mp4")
        job = await make_render_job(store, _slideshow([audio.id], [not_image.id]))

        with pytest.raises(InvalidMimeTypeError) as exc_info:
            await MediaResolver(store).resolve(job)
        assert exc_info.value.details["actual"] == "video/mp4"
        assert exc_info.value.details["expected"] == "image/"

    @pytest.mark.asyncio
    async def test_waveform_ignores_images(self, store):
        audio = await make_media(store, "a1", "one.mp3", "audio/mpeg")
        image = await make_media(store, "i1", "one.png", "image/png")
        spec = {
            "mode": "waveform",
            "audios": [audio.id],
            "backgroundColor": "#000",
            "waveColor": "#fff",
            "waveStyle": "line",
        }
        job = await make_render_job(store, spec, image_id=image.id)

        resolved = await MediaResolver(store).resolve(job)

        assert resolved.image_items == []
        assert [item.id for item in resolved.audio_items] == [audio.id]

    @pytest.mark.asyncio
    async def test_resolve_ids_requires_audio(self, store):
        with pytest.raises(InvalidSpecError):
            await MediaResolver(store).resolve_ids([], [1])
