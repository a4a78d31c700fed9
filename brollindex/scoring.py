"""Segment normalization and score filtering.

Provider output is loosely shaped: list fields may arrive as a single string,
subject descriptors may use an older field name, and scores may be strings.
:func:`normalize_segment` coerces all of that once, at ingestion, so the rest
of the pipeline only sees strict :class:`~brollindex.types.Segment` records.
"""

from __future__ import annotations

import logging
from typing import Any

from brollindex.timecode import format_timestamp
from brollindex.types import DEFAULT_MINIMUM_SCORE, Segment, to_list

logger = logging.getLogger(__name__)

# Subject descriptors were first emitted under a domain-specific key.
_LEGACY_DESCRIPTOR_KEYS = ("beans",)


def _to_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return min(max(score, 0.0), 1.0)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _to_timestamp(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_timestamp(value)
    if value is None:
        return "0:00"
    return str(value).strip()


def normalize_segment(raw: dict[str, Any]) -> Segment:
    """Build a :class:`Segment` from one provider-returned object."""
    descriptors = raw.get("subjectDescriptors")
    if not descriptors:
        for key in _LEGACY_DESCRIPTOR_KEYS:
            if raw.get(key):
                descriptors = raw[key]
                break

    best_moment = raw.get("bestMoment")
    shot_type = raw.get("shotType")
    return Segment(
        start_time=_to_timestamp(raw.get("startTime")),
        end_time=_to_timestamp(raw.get("endTime")),
        best_moment=_to_timestamp(best_moment) if best_moment not in (None, "") else None,
        shot_type=str(shot_type) if shot_type else None,
        broll_score=_to_score(raw.get("brollScore")),
        equipment=to_list(raw.get("equipment")),
        products=to_list(raw.get("products")),
        technique=to_list(raw.get("technique")),
        subject_descriptors=to_list(descriptors),
        description=str(raw.get("description") or ""),
        presenter_visible=_to_bool(raw.get("presenterVisible")),
        other=to_list(raw.get("other")),
    )


def normalize_segments(raw_items: list[Any]) -> list[Segment]:
    segments = []
    for item in raw_items:
        if not isinstance(item, dict):
            logger.warning("Dropping non-object segment from response: %r", item)
            continue
        segments.append(normalize_segment(item))
    return segments


def resolve_minimum_score(taxonomy_value: Any, default: float = DEFAULT_MINIMUM_SCORE) -> float:
    """Threshold from the taxonomy, or *default* when unset or invalid."""
    if taxonomy_value is None or isinstance(taxonomy_value, bool):
        return default
    try:
        return float(taxonomy_value)
    except (TypeError, ValueError):
        return default


def filter_segments(segments: list[Segment], minimum_score: float) -> list[Segment]:
    """Keep segments whose score is at least *minimum_score* (inclusive)."""
    return [s for s in segments if s.broll_score >= minimum_score]

