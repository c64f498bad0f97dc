"""
Encoder Service
FFmpeg/FFprobe wrapper for probing, segment encoding, concat and mux
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import get_settings
from ..utils.exceptions import EncodeFailedError
from ..utils.logger import get_logger

logger = get_logger()

try:
    import resource
except ImportError:  # pragma: no cover - not available on Windows
    resource = None

_STDERR_TAIL_LINES = 10


@dataclass
class EncoderConfig:
    """Output parameters shared by every encode step"""
    width: int = 1280
    height: int = 720
    fps: int = 30
    codec: str = "libx264"
    preset: str = "veryfast"
    crf: int = 20
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


def _restore_rlimits():
    """Give encoder children the full address space the worker capped for itself."""
    if resource is None:
        return
    _soft, hard = resource.getrlimit(resource.RLIMIT_AS)
    resource.setrlimit(resource.RLIMIT_AS, (hard, hard))


def escape_concat_path(path: str) -> str:
    """Quote a path for an ffmpeg concat demuxer list line."""
    forward = str(path).replace("\\", "/")
    return forward.replace("'", "'\\''")


def write_concat_list(paths: Sequence[str], list_path: Path) -> Path:
    lines = [f"file '{escape_concat_path(p)}'" for p in paths]
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


class Encoder:
    """Runs ffmpeg and ffprobe as asynchronous subprocesses"""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        config: Optional[EncoderConfig] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.config = config or EncoderConfig()

    async def _exec(self, cmd: List[str]):
        preexec = _restore_rlimits if os.name == "posix" else None
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            preexec_fn=preexec,
        )
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode("utf-8", "replace"), stderr.decode("utf-8", "replace")

    async def _run_ffmpeg(self, step: str, args: List[str]):
        """Execute one ffmpeg step; non-zero exit raises EncodeFailedError."""
        cmd = [self.ffmpeg_path, "-y", *args]
        logger.debug(f"FFmpeg {step}: {' '.join(cmd)}")

        try:
            code, _stdout, stderr = await self._exec(cmd)
        except FileNotFoundError as exc:
            raise EncodeFailedError(step, None, str(exc)) from exc

        if code != 0:
            tail = "\n".join(stderr.strip().splitlines()[-_STDERR_TAIL_LINES:])
            logger.error(f"FFmpeg {step} failed ({code}): {tail}")
            raise EncodeFailedError(step, code, tail)

    async def _probe(self, path: str, args: List[str]) -> Optional[str]:
        cmd = [self.ffprobe_path, "-v", "error", *args, "-of", "default=noprint_wrappers=1:nokey=1", str(path)]
        try:
            code, stdout, stderr = await self._exec(cmd)
        except OSError as exc:
            logger.warning(f"ffprobe could not run on {path}: {exc}")
            return None
        if code != 0:
            logger.warning(f"ffprobe exited with code {code} for {path}: {stderr.strip()[-200:]}")
            return None
        return stdout.strip() or None

    # =========================================================================
    # Probing
    # =========================================================================

    async def probe_duration(self, path: str) -> Optional[float]:
        """Container duration in seconds, or None when it cannot be determined."""
        output = await self._probe(path, ["-show_entries", "format=duration"])
        if output is None:
            return None
        try:
            duration = float(output.splitlines()[0])
        except ValueError:
            logger.warning(f"Unparseable duration {output!r} for {path}")
            return None
        if duration != duration or duration in (float("inf"), float("-inf")):
            return None
        return duration

    async def probe_audio_codec(self, path: str) -> Optional[str]:
        output = await self._probe(
            path, ["-select_streams", "a:0", "-show_entries", "stream=codec_name"]
        )
        return output.splitlines()[0].strip() if output else None

    # =========================================================================
    # Encoding steps
    # =========================================================================

    async def concat(self, inputs: Sequence[str], output: str, list_path: str) -> str:
        """Join same-codec inputs without re-encoding."""
        write_concat_list(inputs, Path(list_path))
        await self._run_ffmpeg(
            "concat",
            ["-f", "concat", "-safe", "0", "-i", str(list_path), "-c", "copy", str(output)],
        )
        return output

    async def render_image_segment(self, image: str, seconds: float, output: str) -> str:
        """Encode a still image as a fixed-duration video segment."""
        cfg = self.config
        scale = (
            f"scale={cfg.width}:{cfg.height}:force_original_aspect_ratio=decrease,"
            f"pad={cfg.width}:{cfg.height}:(ow-iw)/2:(oh-ih)/2,setsar=1,format={cfg.pix_fmt}"
        )
        await self._run_ffmpeg(
            "segment",
            [
                "-loop", "1",
                "-framerate", str(cfg.fps),
                "-i", str(image),
                "-t", f"{seconds:.3f}",
                "-vf", scale,
                "-r", str(cfg.fps),
                "-c:v", cfg.codec,
                "-preset", cfg.preset,
                "-crf", str(cfg.crf),
                "-pix_fmt", cfg.pix_fmt,
                "-an",
                str(output),
            ],
        )
        return output

    async def render_waveform(self, audio: str, output: str, filter_graph: str) -> str:
        """Single pass: filter graph video muxed with the source audio."""
        cfg = self.config
        await self._run_ffmpeg(
            "waveform",
            [
                "-i", str(audio),
                "-filter_complex", filter_graph,
                "-map", "[vid]",
                "-map", "0:a:0",
                "-c:v", cfg.codec,
                "-preset", cfg.preset,
                "-crf", str(cfg.crf),
                "-pix_fmt", cfg.pix_fmt,
                "-c:a", cfg.audio_codec,
                "-b:a", cfg.audio_bitrate,
                "-shortest",
                "-movflags", "+faststart",
                str(output),
            ],
        )
        return output

    async def mux(self, video: str, audio: str, output: str, copy_audio: bool = False) -> str:
        """Re-encode the video track and attach the audio track."""
        cfg = self.config
        audio_args = ["-c:a", "copy"] if copy_audio else ["-c:a", cfg.audio_codec, "-b:a", cfg.audio_bitrate]
        await self._run_ffmpeg(
            "mux",
            [
                "-i", str(video),
                "-i", str(audio),
                "-map", "0:v:0",
                "-map", "1:a:0",
                "-c:v", cfg.codec,
                "-preset", cfg.preset,
                "-crf", str(cfg.crf),
                "-pix_fmt", cfg.pix_fmt,
                *audio_args,
                "-shortest",
                "-movflags", "+faststart",
                str(output),
            ],
        )
        return output


_encoder: Optional[Encoder] = None


def get_encoder() -> Encoder:
    """Return singleton encoder."""
    global _encoder
    if _encoder is None:
        settings = get_settings()
        _encoder = Encoder(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            config=EncoderConfig(
                width=settings.render_width,
                height=settings.render_height,
                fps=settings.render_fps,
            ),
        )
    return _encoder
