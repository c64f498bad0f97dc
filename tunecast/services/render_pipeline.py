"""
Render Pipeline
Download -> encode -> upload -> link output for one render job
"""

import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..config import Settings, get_settings
from ..models.job import JobKind, RenderJob
from ..models.media_item import MediaItem
from ..models.render_spec import SlideshowSpec, WaveformSpec, parse_render_spec
from ..utils.clock import utc_now
from ..utils.exceptions import ErrorKind, TunecastError, format_error
from ..utils.logger import get_logger
from .drive_client import DriveClient, get_drive_client
from .encoder import Encoder, get_encoder
from .job_store import JobStore, get_job_store
from .media_resolver import MediaResolver, ResolvedMedia
from .slideshow import render_slideshow
from .waveform import render_waveform

logger = get_logger()

OUTPUT_MIME_TYPE = "video/mp4"
DEFAULT_BASE_NAME = "rendered_video"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_]+")


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name).strip("_")


def timestamp_string(when: Optional[datetime] = None) -> str:
    when = when or utc_now()
    iso = when.strftime("%Y-%m-%dT%H:%M:%S.") + f"{when.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def output_file_name(base_name: Optional[str], when: Optional[datetime] = None) -> str:
    """`<sanitized base>_<timestamp>.mp4`, falling back to rendered_video."""
    base = sanitize_file_name(base_name or "") or DEFAULT_BASE_NAME
    return f"{base}_{timestamp_string(when)}.mp4"


def scratch_dir_for(job_id: int, temp_dir: str) -> Path:
    return Path(temp_dir) / f"render-job-{job_id}"


def remove_scratch_dir(job_id: int, temp_dir: str):
    """Remove a job's scratch directory; failures are logged only."""
    path = scratch_dir_for(job_id, temp_dir)
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"Failed to remove scratch dir {path}: {e}")


class RenderPipeline:
    """Turns one render job into an uploaded MP4 linked back to the job"""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        drive: Optional[DriveClient] = None,
        encoder: Optional[Encoder] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store or get_job_store()
        self.drive = drive or get_drive_client()
        self.encoder = encoder or get_encoder()
        self.settings = settings or get_settings()
        self.resolver = MediaResolver(self.store)

    async def process(self, job: RenderJob) -> Optional[MediaItem]:
        """
        Run the full pipeline for a job

        Failures are recorded on the job (FAILED + error message) and not
        raised; scratch files are removed on every exit path.

        Returns:
            The output media item on success, else None
        """
        if job.output_media_item_id:
            logger.info(f"Render job {job.id} already has output {job.output_media_item_id}, skipping")
            await self.store.settle_completed_job(JobKind.RENDER, job.id)
            return None

        temp_files: List[str] = []
        scratch_dir = scratch_dir_for(job.id, self.settings.temp_dir)

        try:
            if not await self.store.mark_job_running(JobKind.RENDER, job.id):
                logger.info(f"Render job {job.id} not eligible to run (status changed), skipping")
                return None

            output = await self._run(job, scratch_dir, temp_files)
            logger.info(f"Render job {job.id} completed: media item {output.id}")
            return output

        except Exception as e:
            logger.exception(f"Render job {job.id} failed: {e}")
            await self.store.fail_job(JobKind.RENDER, job.id, format_error(e))
            return None

        finally:
            self._cleanup(temp_files, scratch_dir)

    async def _run(self, job: RenderJob, scratch_dir: Path, temp_files: List[str]) -> MediaItem:
        spec = parse_render_spec(job.render_spec)
        mode = spec.mode if spec is not None else "legacy"
        logger.info(f"Processing render job {job.id} (mode={mode})")

        resolved = await self.resolver.resolve(job, spec)
        connection_id = await self._resolve_connection(job, resolved)
        folder_id = await self._output_folder(connection_id)

        scratch_dir.mkdir(parents=True, exist_ok=True)
        audio_paths = await self._download_all(resolved.audio_items, "audio", scratch_dir, temp_files)
        image_paths: List[str] = []
        if not isinstance(resolved.spec, WaveformSpec):
            image_paths = await self._download_all(resolved.image_items, "image", scratch_dir, temp_files)

        audio_path = await self._merge_audio(audio_paths, resolved.audio_items, scratch_dir, temp_files)

        if isinstance(resolved.spec, WaveformSpec):
            output_path = await render_waveform(self.encoder, resolved.spec, audio_path, scratch_dir, temp_files)
        else:
            slideshow = resolved.spec or self._legacy_spec(resolved)
            if not image_paths:
                raise TunecastError("Slideshow render requires at least one image", code=ErrorKind.INVALID_SPEC.value)
            duration = await self.encoder.probe_duration(audio_path)
            if duration is None:
                logger.warning(f"Could not probe audio duration for render job {job.id}, using image intervals")
            output_path = await render_slideshow(
                self.encoder, slideshow, image_paths, audio_path, duration, scratch_dir, temp_files
            )

        base_name = None
        if resolved.spec is not None and resolved.spec.output_file_name:
            base_name = resolved.spec.output_file_name
        elif resolved.audio_items:
            base_name = resolved.audio_items[0].name
        uploaded = await self.drive.upload(folder_id, output_file_name(base_name), OUTPUT_MIME_TYPE, Path(output_path))

        return await self.store.complete_render_job(job.id, uploaded.id, uploaded.name, connection_id)

    @staticmethod
    def _legacy_spec(resolved: ResolvedMedia) -> SlideshowSpec:
        return SlideshowSpec(
            audios=[item.id for item in resolved.audio_items],
            images=[item.id for item in resolved.image_items],
            interval_seconds=0,
            auto_time=False,
            repeat_images=False,
        )

    async def _resolve_connection(self, job: RenderJob, resolved: ResolvedMedia) -> int:
        if job.drive_connection_id:
            return job.drive_connection_id

        candidates = {
            item.drive_connection_id
            for item in resolved.audio_items + resolved.image_items
            if item.drive_connection_id
        }
        if not candidates:
            raise TunecastError(
                "driveConnectionId is required (no Drive connection on job or media)",
                code=ErrorKind.NOT_FOUND.value,
            )
        if len(candidates) > 1:
            raise TunecastError(
                "Mixed drive connections detected across media items; expected one",
                code=ErrorKind.INVALID_SPEC.value,
                details={"connections": sorted(candidates)},
            )

        connection_id = candidates.pop()
        await self.store.set_render_job_connection(job.id, connection_id)
        return connection_id

    async def _output_folder(self, connection_id: int) -> str:
        if self.settings.drive_output_folder_id:
            return self.settings.drive_output_folder_id
        connection = await self.store.get_drive_connection(connection_id)
        if connection is None:
            raise TunecastError(f"Drive connection {connection_id} not found", code=ErrorKind.NOT_FOUND.value)
        return connection.root_folder_id

    async def _download_all(
        self, items: List[MediaItem], label: str, scratch_dir: Path, temp_files: List[str]
    ) -> List[str]:
        paths = []
        for item in items:
            suffix = Path(item.name).suffix or ".bin"
            dest = scratch_dir / f"{label}-{item.id}{suffix}"
            temp_files.append(str(dest))
            await self.drive.download(item.drive_file_id, dest)
            paths.append(str(dest))
        return paths

    async def _merge_audio(
        self, audio_paths: List[str], items: List[MediaItem], scratch_dir: Path, temp_files: List[str]
    ) -> str:
        if len(audio_paths) == 1:
            return audio_paths[0]

        suffix = Path(items[0].name).suffix or ".mka"
        merged = str(scratch_dir / f"audio-merged{suffix}")
        list_path = str(scratch_dir / "audio-concat.txt")
        temp_files.extend([list_path, merged])
        await self.encoder.concat(audio_paths, merged, list_path)
        return merged

    @staticmethod
    def _cleanup(temp_files: List[str], scratch_dir: Path):
        for path in temp_files:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to clean up temp file {path}: {e}")
        if scratch_dir.exists():
            try:
                shutil.rmtree(scratch_dir)
            except OSError as e:
                logger.warning(f"Failed to remove scratch dir {scratch_dir}: {e}")
