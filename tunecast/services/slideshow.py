"""
Slideshow Rendering
Timeline maths and the segment -> concat -> mux encode sequence
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..models.render_spec import SlideshowSpec
from ..utils.logger import get_logger
from .encoder import Encoder

logger = get_logger()

MIN_SEGMENT_SECONDS = 0.1
DEFAULT_IMAGE_SECONDS = 5.0


@dataclass
class SlideFrame:
    """One timeline entry: an image shown for a fixed duration"""
    path: str
    duration: float


def per_image_seconds(spec: SlideshowSpec, image_count: int, audio_seconds: Optional[float]) -> float:
    """Seconds each image is shown before timeline adjustments."""
    known = audio_seconds is not None and audio_seconds > 0
    if spec.auto_time and known:
        return audio_seconds / image_count
    if spec.interval_seconds > 0:
        return spec.interval_seconds
    if known:
        return audio_seconds / image_count
    return DEFAULT_IMAGE_SECONDS


def build_slideshow_timeline(
    image_paths: Sequence[str],
    audio_seconds: Optional[float],
    per_image: float,
    repeat_images: bool,
) -> List[SlideFrame]:
    """
    Lay images out over the audio.

    Args:
        image_paths: Local image files in display order
        audio_seconds: Total audio duration, or None if unknown
        per_image: Seconds per image (floored at MIN_SEGMENT_SECONDS)
        repeat_images: Cycle images until the audio is covered

    Returns:
        Frames whose durations sum to the audio duration when it is known
        (repeat mode always; otherwise whenever the per-image time allows)
    """
    if not image_paths:
        raise ValueError("Slideshow requires at least one image")

    safe_per = max(per_image, MIN_SEGMENT_SECONDS)
    known = audio_seconds is not None and audio_seconds > 0
    target = audio_seconds if known else safe_per * len(image_paths)

    if repeat_images:
        frames: List[SlideFrame] = []
        elapsed = 0.0
        index = 0
        while elapsed + MIN_SEGMENT_SECONDS < target or not frames:
            remaining = target - elapsed
            duration = max(MIN_SEGMENT_SECONDS, min(safe_per, remaining))
            frames.append(SlideFrame(image_paths[index % len(image_paths)], duration))
            elapsed += duration
            index += 1
        if known and elapsed < audio_seconds:
            frames[-1].duration += audio_seconds - elapsed
        return frames

    durations = [safe_per] * len(image_paths)
    if known:
        used_before_last = safe_per * (len(image_paths) - 1)
        durations[-1] = max(MIN_SEGMENT_SECONDS, audio_seconds - used_before_last)
    return [SlideFrame(path, duration) for path, duration in zip(image_paths, durations)]


async def render_slideshow(
    encoder: Encoder,
    spec: SlideshowSpec,
    image_paths: Sequence[str],
    audio_path: str,
    audio_seconds: Optional[float],
    scratch_dir: Path,
    temp_files: List[str],
) -> str:
    """Encode one segment per frame, concat them, then mux with the audio."""
    per_image = per_image_seconds(spec, len(image_paths), audio_seconds)
    frames = build_slideshow_timeline(image_paths, audio_seconds, per_image, spec.repeat_images)
    logger.info(
        f"Slideshow timeline: {len(frames)} segments, "
        f"{sum(f.duration for f in frames):.2f}s (audio {audio_seconds})"
    )

    segments = []
    for index, frame in enumerate(frames):
        segment = str(scratch_dir / f"segment-{index:04d}.mp4")
        temp_files.append(segment)
        await encoder.render_image_segment(frame.path, frame.duration, segment)
        segments.append(segment)

    if len(segments) == 1:
        video = segments[0]
    else:
        list_path = str(scratch_dir / "segments.txt")
        video = str(scratch_dir / "slideshow.mp4")
        temp_files.extend([list_path, video])
        await encoder.concat(segments, video, list_path)

    codec = await encoder.probe_audio_codec(audio_path)
    output = str(scratch_dir / "output.mp4")
    temp_files.append(output)
    await encoder.mux(video, audio_path, output, copy_audio=(codec == "aac"))
    return output
