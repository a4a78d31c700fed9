"""Classification requests against an uploaded video."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from google.genai import types

from brollindex.exceptions import ClassificationError
from brollindex.prompts import build_classification_prompt
from brollindex.retry import retry_async
from brollindex.scoring import normalize_segments
from brollindex.taxonomy import Taxonomy
from brollindex.types import AnalysisConfig, RemoteFileHandle, Segment

logger = logging.getLogger(__name__)

_FENCE_START = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_END = re.compile(r"\n?```\s*$")


def extract_text(response: Any) -> str:
    """Text of a generate-content response.

    ``response.text`` can raise on some SDK versions when the first candidate
    has no text part; in that case the candidate parts are walked directly.
    """
    try:
        text = response.text
    except (ValueError, AttributeError):
        text = None

    if text is not None:
        return text

    text_parts: list[str] = []
    if getattr(response, "candidates", None):
        content = response.candidates[0].content
        for part in (getattr(content, "parts", None) or []):
            if getattr(part, "thought", False):
                continue
            if getattr(part, "text", None):
                text_parts.append(part.text)
    return "".join(text_parts)


def parse_json_payload(text: str) -> Any:
    """Parse JSON out of model text, tolerating a surrounding markdown fence.

    Raises:
        ClassificationError: If *text* is empty or not valid JSON.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        raise ClassificationError("No text in Gemini response")
    cleaned = _FENCE_END.sub("", _FENCE_START.sub("", cleaned))
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Invalid JSON in Gemini response: {e}") from e


class GeminiClassifier:
    """Ask Gemini for the B-roll segments of an uploaded video.

    Args:
        client: A ``google.genai.Client``.
        config: Model name and classification retry policy.
    """

    def __init__(self, client, config: AnalysisConfig | None = None):
        self.client = client
        self.config = config or AnalysisConfig()

    async def classify(self, handle: RemoteFileHandle, taxonomy: Taxonomy) -> list[Segment]:
        """Classify the video behind *handle*.

        Each attempt issues one request; an empty or unparseable reply counts
        as a failed attempt.

        Raises:
            RetryExhaustedError: When every attempt failed.
        """
        prompt = build_classification_prompt(taxonomy)

        async def _attempt() -> list[Any]:
            return await self._request(handle, prompt)

        raw_items = await retry_async("Classification", _attempt, self.config.classify_retry)
        segments = normalize_segments(raw_items)
        logger.info("Gemini returned %d segment(s)", len(segments))
        return segments

    async def _request(self, handle: RemoteFileHandle, prompt: str) -> list[Any]:
        response = await self.client.aio.models.generate_content(
            model=self.config.model,
            contents=[
                types.Part(file_data=types.FileData(file_uri=handle.file_uri, mime_type=handle.mime_type)),
                prompt,
            ],
        )
        payload = parse_json_payload(extract_text(response))
        return payload if isinstance(payload, list) else [payload]
