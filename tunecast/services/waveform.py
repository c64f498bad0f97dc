"""
Waveform Rendering
Filter graph for audio visualizations composited on a solid background
"""

import re
from pathlib import Path
from typing import List, Optional

from ..models.render_spec import WaveformSpec, WaveStyle
from .encoder import Encoder

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

DEFAULT_BACKGROUND = "#000000"
DEFAULT_WAVE = "#00ffcc"


def _parse_hex(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    match = _HEX_COLOR.match(value.strip())
    if not match:
        return None
    hex_value = match.group(1)
    if len(hex_value) == 3:
        hex_value = "".join(c * 2 for c in hex_value)
    elif len(hex_value) == 8:
        hex_value = hex_value[:6]
    return hex_value.lower()


def normalize_color(value: Optional[str], fallback: str) -> str:
    """ffmpeg 0xRRGGBB form; alpha is dropped, invalid input uses the fallback."""
    parsed = _parse_hex(value) or _parse_hex(fallback) or "000000"
    return f"0x{parsed}"


def build_waveform_filter_graph(spec: WaveformSpec, width: int = 1280, height: int = 720, fps: int = 30) -> str:
    background = normalize_color(spec.background_color, DEFAULT_BACKGROUND)
    wave = normalize_color(spec.wave_color, DEFAULT_WAVE)
    size = f"{width}x{height}"

    if spec.wave_style is WaveStyle.CIRCLE:
        side = min(width, height)
        square = f"{side}x{side}"
        return ";".join([
            f"color=c={background}:s={size}:r={fps},format=rgba[bg]",
            f"color=c={wave}:s={square}:r={fps},format=rgba[wave]",
            f"[0:a]aformat=channel_layouts=stereo,avectorscope=s={square}:mode=polar:rate={fps}"
            ":draw=aaline:scale=sqrt:rc=255:gc=255:bc=255:ac=255:rf=0:gf=0:bf=0:af=0,format=gray[mask]",
            "[wave][mask]alphamerge[wavea]",
            "[bg][wavea]overlay=x=(main_w-overlay_w)/2:y=(main_h-overlay_h)/2:shortest=1:format=auto[vid]",
        ])

    bars = spec.wave_style is WaveStyle.BARS
    mode = "cline" if bars else "line"
    draw = "full" if bars else "scale"
    return ";".join([
        f"color=c={background}:s={size}:r={fps},format=rgba[bg]",
        f"color=c={wave}:s={size}:r={fps},format=rgba[wave]",
        f"[0:a]aformat=channel_layouts=stereo,showwaves=s={size}:mode={mode}:rate={fps}"
        f":colors=white:scale=sqrt:draw={draw},format=gray[mask]",
        "[wave][mask]alphamerge[wavea]",
        "[bg][wavea]overlay=shortest=1:format=auto[vid]",
    ])


async def render_waveform(
    encoder: Encoder,
    spec: WaveformSpec,
    audio_path: str,
    scratch_dir: Path,
    temp_files: List[str],
) -> str:
    cfg = encoder.config
    graph = build_waveform_filter_graph(spec, cfg.width, cfg.height, cfg.fps)
    output = str(scratch_dir / "output.mp4")
    temp_files.append(output)
    await encoder.render_waveform(audio_path, output, graph)
    return output
