"""Clip catalog: identifier allocation, re-analysis merging and clip edits."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from brollindex.exceptions import CatalogIntegrityError
from brollindex.types import TAG_KEYS, Clip, VideoAsset

logger = logging.getLogger(__name__)

INDEX_VERSION = "2.0"

_VIDEO_ID_RE = re.compile(r"^vid_(\d+)$")
_CLIP_ID_RE = re.compile(r"^clip_(\d+)$")

# Fields a user edit may never touch.
_IMMUTABLE_CLIP_FIELDS = {"id", "videoId"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sequence_numbers(ids, pattern: re.Pattern) -> list[int]:
    nums = []
    for value in ids:
        m = pattern.match(value or "")
        if m:
            nums.append(int(m.group(1)))
    return nums


def next_video_id(video_ids) -> str:
    """Next ``vid_NNN`` id: max existing numeric suffix + 1, starting at 1."""
    nums = _sequence_numbers(video_ids, _VIDEO_ID_RE)
    return f"vid_{(max(nums) + 1 if nums else 1):03d}"


@dataclass
class CatalogIndex:
    """The persisted clip catalog for one project.

    ``clip_sequence`` is the highest clip number ever issued. It is stored
    alongside the clips so that deleting the newest clip never frees its id.
    """

    version: str = INDEX_VERSION
    last_updated: str = field(default_factory=now_iso)
    videos: dict[str, VideoAsset] = field(default_factory=dict)
    clips: list[Clip] = field(default_factory=list)
    clip_sequence: int = 0

    def allocate_clip_id(self) -> str:
        """Issue the next ``clip_NNNN`` id and advance the high-water mark."""
        current = max([self.clip_sequence, *_sequence_numbers((c.id for c in self.clips), _CLIP_ID_RE)])
        self.clip_sequence = current + 1
        return f"clip_{self.clip_sequence:04d}"

    def allocate_video_id(self) -> str:
        return next_video_id(self.videos)

    def get_clip(self, clip_id: str) -> Clip | None:
        return next((c for c in self.clips if c.id == clip_id), None)

    def video_ids_for(self, filename: str) -> list[str]:
        return [vid for vid, meta in self.videos.items() if meta.filename == filename]

    def indexed_filenames(self) -> set[str]:
        return {meta.filename for meta in self.videos.values()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "clipSequence": self.clip_sequence,
            "videos": {vid: meta.to_dict() for vid, meta in self.videos.items()},
            "clips": [c.to_dict() for c in self.clips],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CatalogIndex:
        clips = [Clip.from_dict(c) for c in data.get("clips", [])]
        stored_sequence = int(data.get("clipSequence") or 0)
        issued = _sequence_numbers((c.id for c in clips), _CLIP_ID_RE)
        return cls(
            version=data.get("version", INDEX_VERSION),
            last_updated=data.get("lastUpdated") or now_iso(),
            videos={
                vid: VideoAsset.from_dict(vid, meta)
                for vid, meta in (data.get("videos") or {}).items()
            },
            clips=clips,
            clip_sequence=max([stored_sequence, *issued]),
        )


def _remove_preview(thumbnails_dir: Path | None, clip: Clip) -> None:
    if thumbnails_dir is None or not clip.thumbnail:
        return
    try:
        (Path(thumbnails_dir) / clip.thumbnail).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not delete preview %s: %s", clip.thumbnail, e)


def remove_previews(thumbnails_dir: Path | None, clips: list[Clip]) -> None:
    """Delete the preview files of *clips*, logging any that cannot be removed."""
    for clip in clips:
        _remove_preview(thumbnails_dir, clip)


def remove_video_entries(
    index: CatalogIndex, filename: str, thumbnails_dir: Path | None = None
) -> list[Clip]:
    """Drop every video entry for *filename* along with its clips.

    Previews are deleted only when *thumbnails_dir* is given.

    Returns:
        The removed clips.
    """
    stale_ids = set(index.video_ids_for(filename))
    if not stale_ids:
        return []
    stale_clips = [c for c in index.clips if c.video_id in stale_ids]
    remove_previews(thumbnails_dir, stale_clips)
    index.clips = [c for c in index.clips if c.video_id not in stale_ids]
    for vid in stale_ids:
        del index.videos[vid]
    return stale_clips


def merge_video(
    index: CatalogIndex,
    asset: VideoAsset,
    clips: list[Clip],
    thumbnails_dir: Path | None = None,
) -> list[Clip]:
    """Commit one analyzed video and its clips into *index*.

    Any earlier entries for the same filename are replaced, so analyzing a
    file twice never duplicates its clips. Callers that persist *index*
    should leave *thumbnails_dir* unset and pass the returned clips to
    :func:`remove_previews` once the index is saved.

    Returns:
        The prior clips that were replaced.

    Raises:
        CatalogIntegrityError: If a clip does not belong to *asset*.
    """
    foreign = [c.id for c in clips if c.video_id != asset.id]
    if foreign:
        raise CatalogIntegrityError(
            f"Clips {', '.join(foreign)} do not belong to video {asset.id}"
        )

    # The new asset may reuse a stale id, so remove first and add after.
    replaced = remove_video_entries(index, asset.filename, thumbnails_dir)
    index.videos[asset.id] = asset
    index.clips.extend(clips)
    return replaced


def find_orphans(index: CatalogIndex) -> list[Clip]:
    """Clips whose ``video_id`` has no entry in ``index.videos``."""
    return [c for c in index.clips if c.video_id not in index.videos]


def update_clip(index: CatalogIndex, clip_id: str, changes: dict[str, Any]) -> Clip:
    """Apply a user edit (camelCase JSON fields) to one clip.

    Tag fields are accepted either nested under ``tags`` or flat on *changes*.

    Raises:
        KeyError: If no clip has *clip_id*.
        ValueError: If *changes* touches ``id`` or ``videoId``.
    """
    position = next((i for i, c in enumerate(index.clips) if c.id == clip_id), None)
    if position is None:
        raise KeyError(clip_id)
    blocked = _IMMUTABLE_CLIP_FIELDS & set(changes)
    if blocked:
        raise ValueError(f"Cannot edit {', '.join(sorted(blocked))} on a clip")

    data = index.clips[position].to_dict()
    changes = dict(changes)
    tags = dict(data["tags"])
    tags.update(changes.pop("tags", None) or {})
    # Tag fields may also arrive flat, as the clip list presents them.
    for key in TAG_KEYS:
        if key in changes:
            tags[key] = changes.pop(key)
    data.update(changes)
    data["tags"] = tags
    data["userEdited"] = True
    updated = Clip.from_dict(data)
    index.clips[position] = updated
    return updated


def delete_clip(index: CatalogIndex, clip_id: str, thumbnails_dir: Path | None = None) -> bool:
    """Delete a clip (and its preview when *thumbnails_dir* is given).

    The clip's id stays retired: ``clip_sequence`` is left untouched.
    """
    clip = index.get_clip(clip_id)
    if clip is None:
        return False
    _remove_preview(thumbnails_dir, clip)
    index.clips = [c for c in index.clips if c.id != clip_id]
    return True


def tag_counts(index: CatalogIndex, tag: str, top: int = 5) -> list[tuple[str, int]]:
    """Most common values of a list tag (``equipment``, ``technique``...) across clips."""
    counts: Counter[str] = Counter()
    for clip in index.clips:
        counts.update(getattr(clip.tags, tag, None) or [])
    return counts.most_common(top)
