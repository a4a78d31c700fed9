"""FFmpeg/ffprobe wrappers for probing, frame extraction and preview rendering."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from brollindex.exceptions import MediaToolError, SetupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewWindow:
    """Time range actually rendered into a preview, in seconds."""

    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class PreviewOptions:
    fps: int = 9
    width: int = 320
    max_colors: int = 96
    dither: str = "bayer"

    def filter_graph(self) -> str:
        return (
            f"fps={self.fps},scale={self.width}:-1:flags=lanczos,split[s0][s1];"
            f"[s0]palettegen=max_colors={self.max_colors}[p];"
            f"[s1][p]paletteuse=dither={self.dither}"
        )


async def _run(cmd: list[str]) -> str:
    """Run *cmd* and return stdout; raise :class:`MediaToolError` on failure."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise MediaToolError(f"{cmd[0]} not found") from e
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip().splitlines()
        raise MediaToolError(
            f"{cmd[0]} exited with {proc.returncode}: {detail[-1] if detail else 'no output'}"
        )
    return stdout.decode(errors="replace")


class FFmpegMediaTool:
    """Media operations delegated to the ``ffmpeg`` and ``ffprobe`` binaries.

    Args:
        ffmpeg: Name or path of the ffmpeg executable.
        ffprobe: Name or path of the ffprobe executable.
    """

    def __init__(self, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe"):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    async def check(self) -> str:
        """Return ffmpeg's version line, or raise :class:`SetupError`."""
        try:
            out = await _run([self.ffmpeg, "-version"])
        except MediaToolError as e:
            raise SetupError("FFmpeg not found. Install it (e.g. brew install ffmpeg or apt install ffmpeg).") from e
        return out.splitlines()[0] if out else "ffmpeg"

    async def probe_duration(self, video_path: str | Path) -> float:
        out = await _run([
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(video_path),
        ])
        try:
            return float(out.strip())
        except ValueError as e:
            raise MediaToolError(f"ffprobe returned no duration for {video_path}") from e

    async def extract_frame(
        self, video_path: str | Path, time_seconds: float, output_path: str | Path
    ) -> Path:
        """Write the single frame at *time_seconds* to *output_path*."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await _run([
            self.ffmpeg,
            "-v", "error",
            "-ss", f"{max(time_seconds, 0.0):.3f}",
            "-i", str(video_path),
            "-frames:v", "1",
            "-q:v", "2",
            "-y",
            str(output_path),
        ])
        if not output_path.exists():
            raise MediaToolError(f"ffmpeg produced no frame at {time_seconds:.2f}s")
        return output_path

    async def render_preview(
        self,
        video_path: str | Path,
        window: PreviewWindow,
        output_path: str | Path,
        options: PreviewOptions | None = None,
    ) -> Path:
        """Render *window* of *video_path* as a looping animated GIF.

        ``-ss`` must follow ``-i`` (frame-accurate output seeking).
        """
        options = options or PreviewOptions()
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await _run([
            self.ffmpeg,
            "-v", "error",
            "-i", str(video_path),
            "-ss", f"{window.start:.3f}",
            "-t", f"{window.duration:.3f}",
            "-vf", options.filter_graph(),
            "-loop", "0",
            "-y",
            str(output_path),
        ])
        if not output_path.exists():
            raise MediaToolError(f"ffmpeg produced no preview for {output_path.name}")
        return output_path
