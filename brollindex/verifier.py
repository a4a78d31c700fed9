"""Check clip previews against their descriptions and re-pick better frames."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import cv2
import numpy as np
from google.genai import types

from brollindex.classifier import extract_text, parse_json_payload
from brollindex.prompts import build_repick_prompt, build_verify_prompt
from brollindex.types import AnalysisConfig, Clip

logger = logging.getLogger(__name__)

# (video_path, time_seconds, output_path) -> written output path
FrameExtractor = Callable[[Path, float, Path], Awaitable[Path]]


def load_still(path: str | Path) -> np.ndarray | None:
    """Decode one representative BGR frame from an image or animated preview.

    Animated previews yield their middle frame. Returns ``None`` when the file
    cannot be decoded.
    """
    cap = cv2.VideoCapture(str(path))
    frames: list[np.ndarray] = []
    try:
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            frames.append(frame)
    finally:
        cap.release()
    if frames:
        return frames[len(frames) // 2]
    return cv2.imread(str(path))


def encode_jpeg(frame: np.ndarray, quality: int = 85) -> bytes:
    success, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not success:
        raise ValueError("Failed to encode frame to .jpg")
    return buffer.tobytes()


def _image_part(frame: np.ndarray) -> types.Part:
    return types.Part(inline_data=types.Blob(mime_type="image/jpeg", data=encode_jpeg(frame)))


def _verdict_index(result: Any, count: int) -> int | None:
    """Zero-based index from a ``{"index": n}`` verdict, or None if unusable."""
    if not isinstance(result, dict):
        return None
    try:
        idx = int(result.get("index")) - 1
    except (TypeError, ValueError):
        return None
    return idx if 0 <= idx < count else None


class ThumbnailVerifier:
    """Second pass over persisted clips.

    Every readable preview is judged against its stored description in one
    batch request. Mismatched clips get a set of candidate frames around
    their representative moment, and the provider picks the best. The
    description itself is never rewritten.

    Args:
        client: A ``google.genai.Client``.
        config: Model name, re-pick offsets and pacing.
        frame_extractor: Coroutine writing a single frame to disk (normally
            ``FFmpegMediaTool.extract_frame``). Without it mismatches are only
            flagged.
    """

    def __init__(self, client, config: AnalysisConfig | None = None, frame_extractor: FrameExtractor | None = None):
        self.client = client
        self.config = config or AnalysisConfig()
        self.frame_extractor = frame_extractor

    async def verify(
        self,
        clips: list[Clip],
        thumbnails_dir: str | Path,
        video_paths: dict[str, Path],
    ) -> list[Clip]:
        """Update ``verified``/``mismatch`` on *clips* in place and return them.

        Args:
            clips: Clips to check.
            thumbnails_dir: Directory holding the preview files.
            video_paths: Source video path per video id, used for re-picks.
        """
        thumbnails_dir = Path(thumbnails_dir)
        checked: list[Clip] = []
        parts: list[types.Part] = []
        for clip in clips:
            if not clip.thumbnail:
                continue
            preview = thumbnails_dir / clip.thumbnail
            frame = load_still(preview) if preview.exists() else None
            if frame is None:
                logger.debug("Skipping %s: no readable preview", clip.id)
                continue
            parts.append(_image_part(frame))
            checked.append(clip)

        if not checked:
            return clips

        prompt = build_verify_prompt([(c.start_time, c.end_time, c.description) for c in checked])
        try:
            response = await self.client.aio.models.generate_content(
                model=self.config.model,
                contents=[*parts, prompt],
            )
            results = parse_json_payload(extract_text(response))
        except Exception as e:
            logger.warning("Verification check failed: %s", e)
            return clips
        if isinstance(results, dict):
            results = [results]
        if not isinstance(results, list):
            logger.warning("Verification check returned %s instead of a list", type(results).__name__)
            return clips

        mismatched: dict[str, Clip] = {}
        for result in results:
            idx = _verdict_index(result, len(checked))
            if idx is None:
                continue
            clip = checked[idx]
            if result.get("matches"):
                clip.verified, clip.mismatch = True, False
                mismatched.pop(clip.id, None)
            else:
                clip.verified, clip.mismatch = False, True
                mismatched[clip.id] = clip

        matched = sum(1 for c in checked if c.verified)
        logger.info("Verified %d/%d previews, %d mismatched", matched, len(checked), len(mismatched))

        if not mismatched or self.frame_extractor is None:
            return clips

        for n, clip in enumerate(mismatched.values()):
            if n:
                await asyncio.sleep(self.config.repick_pacing)
            video_path = video_paths.get(clip.video_id)
            if video_path is None:
                logger.warning("Could not re-pick %s: source video for %s not found", clip.id, clip.video_id)
                continue
            try:
                await self.repick(clip, thumbnails_dir, Path(video_path))
            except Exception as e:
                logger.warning("Could not re-pick %s: %s", clip.id, e)
        return clips

    async def repick(self, clip: Clip, thumbnails_dir: Path, video_path: Path) -> bool:
        """Replace *clip*'s preview with the candidate frame that best fits its description.

        Returns:
            True if a candidate was chosen and copied over the preview.
        """
        preview = thumbnails_dir / clip.thumbnail
        base = clip.representative_seconds
        attempted: list[Path] = []
        candidates: list[tuple[int, Path, np.ndarray]] = []
        try:
            for offset in self.config.repick_offsets:
                t = base + offset
                if t < 0:
                    continue
                path = thumbnails_dir / f"{clip.id}_candidate_{offset}{preview.suffix}"
                attempted.append(path)
                try:
                    await self.frame_extractor(video_path, t, path)
                except Exception as e:
                    logger.debug("No candidate at %.2fs for %s: %s", t, clip.id, e)
                    continue
                frame = load_still(path)
                if frame is not None:
                    candidates.append((offset, path, frame))

            if not candidates:
                return False

            response = await self.client.aio.models.generate_content(
                model=self.config.model,
                contents=[
                    *(_image_part(frame) for _, _, frame in candidates),
                    build_repick_prompt(clip.description, len(candidates)),
                ],
            )
            pick = parse_json_payload(extract_text(response))
            if not isinstance(pick, dict):
                return False
            try:
                best = int(pick.get("bestImage") or 1) - 1
            except (TypeError, ValueError):
                return False
            if not 0 <= best < len(candidates):
                return False

            offset, winner, _ = candidates[best]
            shutil.copyfile(winner, preview)
            clip.verified, clip.mismatch = True, False
            logger.info("Re-picked %s at %+ds", clip.id, offset)
            return True
        finally:
            for path in attempted:
                path.unlink(missing_ok=True)
