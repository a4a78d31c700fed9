"""Tests for preview verification and frame re-picking."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from brollindex.types import Clip
from brollindex.verifier import ThumbnailVerifier, encode_jpeg


def _clip(clip_id: str, start: float, end: float, best_moment: str | None = None, description: str = "") -> Clip:
    return Clip(
        id=clip_id,
        video_id="vid_001",
        start_time=f"0:{int(start):02d}",
        end_time=f"0:{int(end):02d}",
        start_seconds=start,
        end_seconds=end,
        thumbnail=f"{clip_id}.gif",
        description=description or f"Description of {clip_id}",
        best_moment=best_moment,
    )


def _reply(payload) -> SimpleNamespace:
    return SimpleNamespace(text=json.dumps(payload))


def _client(*responses) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=list(responses))
    return client


def _extractor() -> AsyncMock:
    async def extract(video_path, t, out):
        Path(out).write_bytes(f"frame@{t:.2f}".encode())
        return Path(out)

    return AsyncMock(side_effect=extract)


def _write_previews(thumbs: Path, *clips: Clip) -> None:
    for clip in clips:
        (thumbs / clip.thumbnail).write_bytes(b"original")


@pytest.fixture(autouse=True)
def fake_decode():
    frame = np.zeros((8, 8, 3), dtype=np.uint8)
    with patch("brollindex.verifier.load_still", return_value=frame) as load:
        yield load


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("brollindex.verifier.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


VIDEOS = {"vid_001": Path("/videos/pour.mp4")}


def test_encode_jpeg_produces_jpeg_bytes():
    data = encode_jpeg(np.zeros((4, 4, 3), dtype=np.uint8))
    assert data[:2] == b"\xff\xd8"


class TestBatchCheck:
    async def test_marks_matches_and_mismatches(self, tmp_path):
        clips = [_clip("clip_0001", 10, 13), _clip("clip_0002", 20, 24)]
        _write_previews(tmp_path, *clips)
        client = _client(_reply([{"index": 1, "matches": True}, {"index": 2, "matches": False}]))

        await ThumbnailVerifier(client).verify(clips, tmp_path, VIDEOS)

        assert (clips[0].verified, clips[0].mismatch) == (True, False)
        assert (clips[1].verified, clips[1].mismatch) == (False, True)
        contents = client.aio.models.generate_content.await_args.kwargs["contents"]
        assert len(contents) == 3
        assert contents[0].inline_data.mime_type == "image/jpeg"
        assert 'Image 2 (0:20-0:24): "Description of clip_0002"' in contents[-1]

    async def test_clips_without_readable_preview_are_skipped(self, tmp_path):
        present, missing = _clip("clip_0001", 10, 13), _clip("clip_0002", 20, 24)
        _write_previews(tmp_path, present)
        client = _client(_reply([{"index": 1, "matches": True}, {"index": 2, "matches": False}]))

        await ThumbnailVerifier(client).verify([present, missing], tmp_path, VIDEOS)

        assert present.verified is True
        assert missing.verified is None and missing.mismatch is None

    async def test_unjudged_and_out_of_range_indices_ignored(self, tmp_path):
        clips = [_clip("clip_0001", 10, 13), _clip("clip_0002", 20, 24)]
        _write_previews(tmp_path, *clips)
        client = _client(_reply([{"index": 2, "matches": True}, {"index": 9, "matches": False}, "junk"]))

        await ThumbnailVerifier(client).verify(clips, tmp_path, VIDEOS)

        assert clips[0].verified is None
        assert clips[1].verified is True

    async def test_failed_check_leaves_clips_unchanged(self, tmp_path):
        clips = [_clip("clip_0001", 10, 13)]
        _write_previews(tmp_path, *clips)
        client = _client(RuntimeError("quota"))

        result = await ThumbnailVerifier(client, frame_extractor=_extractor()).verify(clips, tmp_path, VIDEOS)

        assert result is clips
        assert clips[0].verified is None and clips[0].mismatch is None

    async def test_no_previews_means_no_request(self, tmp_path):
        client = _client()
        await ThumbnailVerifier(client).verify([_clip("clip_0001", 1, 3)], tmp_path, VIDEOS)
        client.aio.models.generate_content.assert_not_awaited()

    async def test_without_extractor_mismatches_are_only_flagged(self, tmp_path):
        clips = [_clip("clip_0001", 10, 13)]
        _write_previews(tmp_path, *clips)
        client = _client(_reply([{"index": 1, "matches": False}]))

        await ThumbnailVerifier(client).verify(clips, tmp_path, VIDEOS)

        assert clips[0].mismatch is True
        assert client.aio.models.generate_content.await_count == 1
        assert (tmp_path / "clip_0001.gif").read_bytes() == b"original"


class TestRepick:
    async def test_mismatch_replaced_by_chosen_candidate(self, tmp_path):
        first = _clip("clip_0001", 10, 13)
        second = _clip("clip_0002", 20, 24, best_moment="0:22", description="Water blooming the grounds")
        _write_previews(tmp_path, first, second)
        client = _client(
            _reply([{"index": 1, "matches": True}, {"index": 2, "matches": False}]),
            _reply({"bestImage": 4}),
        )
        extractor = _extractor()

        await ThumbnailVerifier(client, frame_extractor=extractor).verify([first, second], tmp_path, VIDEOS)

        # offsets -2..+3 around 0:22; the fourth candidate is +1
        assert (tmp_path / "clip_0002.gif").read_bytes() == b"frame@23.00"
        assert (second.verified, second.mismatch) == (True, False)
        assert second.description == "Water blooming the grounds"
        assert (tmp_path / "clip_0001.gif").read_bytes() == b"original"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["clip_0001.gif", "clip_0002.gif"]
        assert [c.args[1] for c in extractor.await_args_list] == [20.0, 21.0, 22.0, 23.0, 24.0, 25.0]
        assert extractor.await_args_list[0].args[0] == Path("/videos/pour.mp4")
        repick_prompt = client.aio.models.generate_content.await_args.kwargs["contents"][-1]
        assert "Water blooming the grounds" in repick_prompt

    async def test_midpoint_used_without_best_moment(self, tmp_path):
        clip = _clip("clip_0001", 10, 13)
        _write_previews(tmp_path, clip)
        client = _client(_reply([{"index": 1, "matches": False}]), _reply({"bestImage": 3}))

        await ThumbnailVerifier(client, frame_extractor=_extractor()).verify([clip], tmp_path, VIDEOS)

        assert (tmp_path / "clip_0001.gif").read_bytes() == b"frame@11.50"

    async def test_negative_candidate_times_dropped(self, tmp_path):
        clip = _clip("clip_0001", 0, 2, best_moment="0:01")
        _write_previews(tmp_path, clip)
        client = _client(_reply([{"index": 1, "matches": False}]), _reply({"bestImage": 1}))
        extractor = _extractor()

        await ThumbnailVerifier(client, frame_extractor=extractor).verify([clip], tmp_path, VIDEOS)

        assert [c.args[1] for c in extractor.await_args_list] == [0.0, 1.0, 2.0, 3.0, 4.0]
        assert (tmp_path / "clip_0001.gif").read_bytes() == b"frame@0.00"

    async def test_out_of_range_choice_keeps_mismatch(self, tmp_path):
        clip = _clip("clip_0001", 10, 13)
        _write_previews(tmp_path, clip)
        client = _client(_reply([{"index": 1, "matches": False}]), _reply({"bestImage": 42}))

        await ThumbnailVerifier(client, frame_extractor=_extractor()).verify([clip], tmp_path, VIDEOS)

        assert clip.mismatch is True
        assert (tmp_path / "clip_0001.gif").read_bytes() == b"original"
        assert [p.name for p in tmp_path.iterdir()] == ["clip_0001.gif"]

    async def test_failure_on_one_clip_does_not_stop_others(self, tmp_path, no_sleep):
        a, b = _clip("clip_0001", 10, 13), _clip("clip_0002", 20, 24)
        _write_previews(tmp_path, a, b)
        client = _client(
            _reply([{"index": 1, "matches": False}, {"index": 2, "matches": False}]),
            RuntimeError("rate limited"),
            _reply({"bestImage": 1}),
        )

        await ThumbnailVerifier(client, frame_extractor=_extractor()).verify([a, b], tmp_path, VIDEOS)

        assert a.mismatch is True
        assert b.verified is True
        no_sleep.assert_awaited_once_with(2.0)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["clip_0001.gif", "clip_0002.gif"]

    async def test_unknown_source_video_skipped(self, tmp_path):
        clip = _clip("clip_0001", 10, 13)
        _write_previews(tmp_path, clip)
        client = _client(_reply([{"index": 1, "matches": False}]))
        extractor = _extractor()

        await ThumbnailVerifier(client, frame_extractor=extractor).verify([clip], tmp_path, {})

        extractor.assert_not_awaited()
        assert clip.mismatch is True
