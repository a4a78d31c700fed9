"""Core records for the B-roll analysis pipeline and its configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from brollindex.retry import CLASSIFY_RETRY, UPLOAD_RETRY, RetryPolicy
from brollindex.timecode import parse_timestamp

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_MINIMUM_SCORE = 0.5

VIDEO_MIME_TYPES: dict[str, str] = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
}
VIDEO_EXTENSIONS = frozenset(VIDEO_MIME_TYPES)


def to_list(value: Any) -> list[str]:
    """Coerce a tag value to a list of non-empty strings."""
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    if isinstance(value, str) and value.strip():
        return [value]
    return []


@dataclass
class AnalysisConfig:
    """Configuration for an analysis or verification run.

    Args:
        model: Gemini model used for classification and verification.
        upload_retry: Retry policy for the upload/activate sequence.
        classify_retry: Retry policy for the classification request.
        poll_interval: Seconds between file-status polls.
        poll_timeout: Seconds to wait for an uploaded file to become ACTIVE.
        preview_fps: Frame rate sampled into animated previews.
        preview_width: Preview width in pixels (height keeps aspect).
        preview_colors: Palette size for GIF quantization.
        repick_offsets: Offsets (seconds) around the representative moment
            tried when a preview does not match its description.
        repick_pacing: Seconds to wait between successive re-pick requests.
        default_minimum_score: Threshold used when the taxonomy sets none.
    """

    model: str = DEFAULT_MODEL
    upload_retry: RetryPolicy = UPLOAD_RETRY
    classify_retry: RetryPolicy = CLASSIFY_RETRY
    poll_interval: float = 3.0
    poll_timeout: float = 120.0
    preview_fps: int = 9
    preview_width: int = 320
    preview_colors: int = 96
    repick_offsets: tuple[int, ...] = (-2, -1, 0, 1, 2, 3)
    repick_pacing: float = 2.0
    default_minimum_score: float = DEFAULT_MINIMUM_SCORE


@dataclass
class RemoteFileHandle:
    """An uploaded video on the provider's file store."""

    file_uri: str
    file_name: str
    mime_type: str


@dataclass
class Segment:
    """One B-roll candidate reported by the classifier, already normalized."""

    start_time: str
    end_time: str
    shot_type: str | None = None
    broll_score: float = 0.0
    equipment: list[str] = field(default_factory=list)
    products: list[str] = field(default_factory=list)
    technique: list[str] = field(default_factory=list)
    subject_descriptors: list[str] = field(default_factory=list)
    description: str = ""
    presenter_visible: bool = False
    other: list[str] = field(default_factory=list)
    best_moment: str | None = None

    @property
    def start_seconds(self) -> float:
        return parse_timestamp(self.start_time)

    @property
    def end_seconds(self) -> float:
        return parse_timestamp(self.end_time)


@dataclass
class ClipTags:
    shot_type: str | None = None
    equipment: list[str] = field(default_factory=list)
    technique: list[str] = field(default_factory=list)
    subject_descriptors: list[str] = field(default_factory=list)
    products: list[str] = field(default_factory=list)
    other: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shotType": self.shot_type,
            "equipment": list(self.equipment),
            "technique": list(self.technique),
            "subjectDescriptors": list(self.subject_descriptors),
            "products": list(self.products),
            "other": list(self.other),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClipTags:
        return cls(
            shot_type=data.get("shotType"),
            equipment=to_list(data.get("equipment")),
            technique=to_list(data.get("technique")),
            subject_descriptors=to_list(data.get("subjectDescriptors")),
            products=to_list(data.get("products")),
            other=to_list(data.get("other")),
        )


TAG_KEYS = ("shotType", "equipment", "technique", "subjectDescriptors", "products", "other")

_CLIP_KEYS = {
    "id", "videoId", "startTime", "endTime", "startSeconds", "endSeconds",
    "thumbnail", "tags", "description", "brollScore", "presenterVisible",
    "userVerified", "userEdited", "userNotes", "excluded", "verified",
    "mismatch", "bestMoment",
}


@dataclass
class Clip:
    """A persisted catalog entry derived from an accepted segment."""

    id: str
    video_id: str
    start_time: str
    end_time: str
    start_seconds: float
    end_seconds: float
    thumbnail: str | None = None
    tags: ClipTags = field(default_factory=ClipTags)
    description: str = ""
    broll_score: float = 0.0
    presenter_visible: bool = False
    user_verified: bool = False
    user_edited: bool = False
    user_notes: str = ""
    excluded: bool = False
    verified: bool | None = None
    mismatch: bool | None = None
    best_moment: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def representative_seconds(self) -> float:
        """Timestamp that best shows the clip: ``bestMoment`` or the midpoint."""
        if self.best_moment:
            return parse_timestamp(self.best_moment)
        return (self.start_seconds + self.end_seconds) / 2

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "videoId": self.video_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "startSeconds": self.start_seconds,
            "endSeconds": self.end_seconds,
            "thumbnail": self.thumbnail,
            "tags": self.tags.to_dict(),
            "description": self.description,
            "brollScore": self.broll_score,
            "presenterVisible": self.presenter_visible,
            "userVerified": self.user_verified,
            "userEdited": self.user_edited,
            "userNotes": self.user_notes,
            "excluded": self.excluded,
        }
        if self.best_moment is not None:
            data["bestMoment"] = self.best_moment
        if self.verified is not None:
            data["verified"] = self.verified
        if self.mismatch is not None:
            data["mismatch"] = self.mismatch
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Clip:
        tags_data = data.get("tags")
        if not isinstance(tags_data, dict):
            # Older catalogs stored tag fields flat on the clip.
            tags_data = {k: data[k] for k in TAG_KEYS if k in data}
        start_time = data.get("startTime", "0:00")
        end_time = data.get("endTime", "0:00")
        return cls(
            id=data["id"],
            video_id=data.get("videoId", ""),
            start_time=start_time,
            end_time=end_time,
            start_seconds=float(data.get("startSeconds", parse_timestamp(start_time))),
            end_seconds=float(data.get("endSeconds", parse_timestamp(end_time))),
            thumbnail=data.get("thumbnail"),
            tags=ClipTags.from_dict(tags_data),
            description=data.get("description") or "",
            broll_score=float(data.get("brollScore") or 0.0),
            presenter_visible=bool(data.get("presenterVisible", False)),
            user_verified=bool(data.get("userVerified", False)),
            user_edited=bool(data.get("userEdited", False)),
            user_notes=data.get("userNotes") or "",
            excluded=bool(data.get("excluded", False)),
            verified=data.get("verified"),
            mismatch=data.get("mismatch"),
            best_moment=data.get("bestMoment"),
            extra={
                k: v for k, v in data.items()
                if k not in _CLIP_KEYS and k not in TAG_KEYS
            },
        )


@dataclass
class VideoAsset:
    """Metadata for one analyzed source video."""

    id: str
    filename: str
    title: str
    duration: str
    source_path: str
    date_analyzed: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "title": self.title,
            "duration": self.duration,
            "dateAnalyzed": self.date_analyzed,
            "sourcePath": self.source_path,
        }

    @classmethod
    def from_dict(cls, video_id: str, data: dict[str, Any]) -> VideoAsset:
        return cls(
            id=video_id,
            filename=data.get("filename", ""),
            title=data.get("title", ""),
            duration=data.get("duration", "0:00"),
            source_path=data.get("sourcePath", ""),
            date_analyzed=data.get("dateAnalyzed", ""),
        )
