"""Models package initialization"""
from .job import JobKind, JobStatus, RenderJob, RenderJobCreate, UploadJob, UploadJobCreate
from .media_item import DriveConnection, DriveConnectionStatus, MediaItem, MediaStatus
from .render_spec import (
    RenderSpec,
    SlideshowSpec,
    WaveformSpec,
    WaveStyle,
    normalize_id_list,
    parse_render_spec,
    safe_parse_render_spec,
    serialize_render_spec,
)

__all__ = [
    "JobKind", "JobStatus", "RenderJob", "RenderJobCreate", "UploadJob", "UploadJobCreate",
    "DriveConnection", "DriveConnectionStatus", "MediaItem", "MediaStatus",
    "RenderSpec", "SlideshowSpec", "WaveformSpec", "WaveStyle",
    "normalize_id_list", "parse_render_spec", "safe_parse_render_spec", "serialize_render_spec",
]
