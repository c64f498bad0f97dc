"""
Media Resolver
Maps a render job's referenced media ids to validated MediaItem records
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.job import RenderJob
from ..models.media_item import MediaItem
from ..models.render_spec import RenderSpec, SlideshowSpec, normalize_id_list, parse_render_spec
from ..utils.exceptions import InvalidMimeTypeError, InvalidSpecError, MediaNotFoundError
from .job_store import JobStore

AUDIO_PREFIX = "audio/"
IMAGE_PREFIX = "image/"


@dataclass
class ResolvedMedia:
    spec: Optional[RenderSpec]
    audio_items: List[MediaItem] = field(default_factory=list)
    image_items: List[MediaItem] = field(default_factory=list)


def _validate_mime(item: MediaItem, expected: str):
    if not item.mime_type.startswith(expected):
        raise InvalidMimeTypeError(item.id, expected, item.mime_type)


class MediaResolver:
    """Resolves spec (or legacy column) media ids with one batched lookup"""

    def __init__(self, store: JobStore):
        self.store = store

    async def resolve(self, job: RenderJob, parsed_spec: Optional[RenderSpec] = None) -> ResolvedMedia:
        """
        Resolve and validate all media a render job needs

        Args:
            job: Render job with relations loaded where available
            parsed_spec: Spec already parsed by the caller, if any

        Returns:
            ResolvedMedia with items in normalized id order

        Raises:
            MediaNotFoundError: a referenced id has no record
            InvalidMimeTypeError: a record has the wrong media kind
        """
        spec = parsed_spec if parsed_spec is not None else parse_render_spec(job.render_spec)

        if spec is not None:
            audio_ids = normalize_id_list(spec.audios)
        else:
            audio_ids = normalize_id_list([job.audio_media_item_id])

        if isinstance(spec, SlideshowSpec):
            image_ids = normalize_id_list(spec.images)
        elif spec is None and job.image_media_item_id:
            image_ids = normalize_id_list([job.image_media_item_id])
        else:
            image_ids = []

        audio_items, image_items = await self.resolve_ids(
            audio_ids, image_ids, known=[job.audio_media_item, job.image_media_item]
        )
        return ResolvedMedia(spec=spec, audio_items=audio_items, image_items=image_items)

    async def resolve_ids(
        self,
        audio_ids: List[int],
        image_ids: List[int],
        known: Sequence[Optional[MediaItem]] = (),
    ) -> Tuple[List[MediaItem], List[MediaItem]]:
        """Validated audio and image items for normalized id lists."""
        if not audio_ids:
            raise InvalidSpecError("No audio tracks provided in renderSpec or job")

        cache: Dict[int, MediaItem] = {item.id: item for item in known if item is not None}

        missing = [media_id for media_id in audio_ids + image_ids if media_id not in cache]
        if missing:
            cache.update(await self.store.get_media_items(missing))

        audio_items = []
        for media_id in audio_ids:
            item = cache.get(media_id)
            if item is None:
                raise MediaNotFoundError(media_id, "Audio")
            _validate_mime(item, AUDIO_PREFIX)
            audio_items.append(item)

        image_items = []
        for media_id in image_ids:
            item = cache.get(media_id)
            if item is None:
                raise MediaNotFoundError(media_id, "Image")
            _validate_mime(item, IMAGE_PREFIX)
            image_items.append(item)

        return audio_items, image_items
