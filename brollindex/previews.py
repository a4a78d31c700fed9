"""Preview windows: trim segment edges and render one animated preview per clip."""

from __future__ import annotations

import logging
from pathlib import Path

from brollindex.media import FFmpegMediaTool, PreviewOptions, PreviewWindow

logger = logging.getLogger(__name__)

MIN_RAW_DURATION = 0.2
START_INSET_MAX = 0.18
START_INSET_RATIO = 0.24
END_INSET_MAX = 0.08
END_INSET_RATIO = 0.18
MIN_TIDY_DURATION = 0.38
FALLBACK_HALF_WIDTH = 0.22
MIN_PREVIEW_DURATION = 0.25


def tidy_window(start: float, end: float) -> PreviewWindow:
    """Trim the ragged edges of a segment into the window to render.

    Cuts reported by the classifier tend to include a few frames of the
    neighbouring shot, so a little is shaved off each end. Windows that
    would become too short are replaced by a fixed 0.44s window centred on
    the segment midpoint.
    """
    raw = max(end - start, MIN_RAW_DURATION)
    start_inset = min(START_INSET_MAX, START_INSET_RATIO * raw)
    end_inset = min(END_INSET_MAX, END_INSET_RATIO * raw)
    tidy_start = start + start_inset
    tidy_end = end - end_inset

    if tidy_end - tidy_start <= MIN_TIDY_DURATION:
        mid = (start + end) / 2
        tidy_start = max(0.0, mid - FALLBACK_HALF_WIDTH)
        tidy_end = tidy_start + 2 * FALLBACK_HALF_WIDTH

    tidy_start = max(0.0, tidy_start)
    return PreviewWindow(start=tidy_start, duration=max(tidy_end - tidy_start, MIN_PREVIEW_DURATION))


class PreviewGenerator:
    """Render clip previews into a project's thumbnails directory.

    Args:
        media: Media tool used for rendering.
        thumbnails_dir: Directory preview files are written to.
        options: Frame rate, width and palette settings.
    """

    suffix = ".gif"

    def __init__(
        self,
        media: FFmpegMediaTool,
        thumbnails_dir: str | Path,
        options: PreviewOptions | None = None,
    ):
        self.media = media
        self.thumbnails_dir = Path(thumbnails_dir)
        self.options = options or PreviewOptions()

    def filename_for(self, clip_id: str) -> str:
        return f"{clip_id}{self.suffix}"

    async def render(self, video_path: str | Path, clip_id: str, start: float, end: float) -> str | None:
        """Render the tidied window for one clip.

        Returns:
            The preview filename, or ``None`` if rendering failed.
        """
        filename = self.filename_for(clip_id)
        window = tidy_window(start, end)
        try:
            await self.media.render_preview(video_path, window, self.thumbnails_dir / filename, self.options)
        except Exception as e:
            logger.warning("Couldn't generate preview for %s: %s", clip_id, e)
            return None
        logger.debug("Generated %s (%.2fs from %.2fs)", filename, window.duration, window.start)
        return filename
