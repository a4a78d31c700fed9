"""Tests for preview window tidying, ffmpeg command construction and preview rendering."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from brollindex.exceptions import MediaToolError, SetupError
from brollindex.media import FFmpegMediaTool, PreviewOptions, PreviewWindow
from brollindex.previews import PreviewGenerator, tidy_window


def _fake_process(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    return proc


class TestTidyWindow:
    def test_normal_segment_is_inset(self):
        window = tidy_window(10.0, 13.0)
        assert window.start == pytest.approx(10.18)
        assert window.end == pytest.approx(12.92)

    def test_short_segment_insets_scale_with_duration(self):
        # raw 0.7s: start inset min(0.18, 0.168), end inset min(0.08, 0.126)
        window = tidy_window(5.0, 5.7)
        assert window.start == pytest.approx(5.168)
        assert window.duration == pytest.approx(0.452)

    def test_degenerate_window_falls_back_to_centered(self):
        window = tidy_window(5.0, 5.4)
        assert window.start == pytest.approx(5.2 - 0.22)
        assert window.duration == pytest.approx(0.44)

    def test_zero_length_segment(self):
        window = tidy_window(3.0, 3.0)
        assert window.start == pytest.approx(2.78)
        assert window.duration == pytest.approx(0.44)

    def test_fallback_clamped_at_zero(self):
        window = tidy_window(0.0, 0.1)
        assert window.start == 0.0
        assert window.duration == pytest.approx(0.44)

    @pytest.mark.parametrize("start, end", [(0.0, 1.0), (2.0, 2.5), (1.0, 30.0), (0.05, 0.3), (7.3, 7.31)])
    def test_invariants(self, start, end):
        window = tidy_window(start, end)
        assert window.start >= 0.0
        assert window.duration >= 0.25

    def test_non_degenerate_window_stays_inside_segment(self):
        window = tidy_window(4.0, 6.0)
        assert window.start >= 4.0
        assert window.end <= 6.0


class TestPreviewOptions:
    def test_default_filter_graph(self):
        assert PreviewOptions().filter_graph() == (
            "fps=9,scale=320:-1:flags=lanczos,split[s0][s1];"
            "[s0]palettegen=max_colors=96[p];[s1][p]paletteuse=dither=bayer"
        )


class TestFFmpegMediaTool:
    async def test_render_preview_seeks_after_input(self, tmp_path):
        out = tmp_path / "thumbs" / "clip_0001.gif"

        async def fake_exec(*cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"GIF89a")
            return _fake_process()

        with patch("brollindex.media.asyncio.create_subprocess_exec", side_effect=fake_exec) as exec_mock:
            await FFmpegMediaTool().render_preview("in.mp4", PreviewWindow(10.18, 2.74), out)

        cmd = list(exec_mock.call_args.args)
        assert cmd.index("-i") < cmd.index("-ss")
        assert cmd[cmd.index("-ss") + 1] == "10.180"
        assert cmd[cmd.index("-t") + 1] == "2.740"
        assert cmd[cmd.index("-loop") + 1] == "0"
        assert out.exists()

    async def test_extract_frame_seeks_before_input(self, tmp_path):
        out = tmp_path / "frame.jpg"

        async def fake_exec(*cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"\xff\xd8")
            return _fake_process()

        with patch("brollindex.media.asyncio.create_subprocess_exec", side_effect=fake_exec) as exec_mock:
            await FFmpegMediaTool().extract_frame("in.mp4", 12.5, out)

        cmd = list(exec_mock.call_args.args)
        assert cmd.index("-ss") < cmd.index("-i")
        assert "-frames:v" in cmd

    async def test_nonzero_exit_raises_with_stderr(self, tmp_path):
        proc = _fake_process(returncode=1, stderr=b"header\nInvalid data found\n")
        with patch("brollindex.media.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            with pytest.raises(MediaToolError, match="Invalid data found"):
                await FFmpegMediaTool().render_preview("in.mp4", PreviewWindow(0, 1), tmp_path / "x.gif")

    async def test_missing_output_raises(self, tmp_path):
        with patch("brollindex.media.asyncio.create_subprocess_exec", new=AsyncMock(return_value=_fake_process())):
            with pytest.raises(MediaToolError):
                await FFmpegMediaTool().extract_frame("in.mp4", 1.0, tmp_path / "none.jpg")

    async def test_probe_duration(self):
        proc = _fake_process(stdout=b"125.400000\n")
        with patch("brollindex.media.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            assert await FFmpegMediaTool().probe_duration("in.mp4") == pytest.approx(125.4)

    async def test_check_missing_binary_is_setup_error(self):
        with patch("brollindex.media.asyncio.create_subprocess_exec", new=AsyncMock(side_effect=FileNotFoundError)):
            with pytest.raises(SetupError, match="FFmpeg not found"):
                await FFmpegMediaTool().check()

    async def test_check_returns_version_line(self):
        proc = _fake_process(stdout=b"ffmpeg version 7.0\nbuilt with gcc\n")
        with patch("brollindex.media.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            assert await FFmpegMediaTool().check() == "ffmpeg version 7.0"


class TestPreviewGenerator:
    async def test_render_returns_filename(self, tmp_path):
        media = MagicMock()
        media.render_preview = AsyncMock()
        gen = PreviewGenerator(media, tmp_path)

        assert await gen.render("in.mp4", "clip_0007", 10.0, 13.0) == "clip_0007.gif"
        _, window, out, options = media.render_preview.await_args.args
        assert window.start == pytest.approx(10.18)
        assert out == tmp_path / "clip_0007.gif"
        assert options.fps == 9

    async def test_render_failure_returns_none(self, tmp_path):
        media = MagicMock()
        media.render_preview = AsyncMock(side_effect=MediaToolError("ffmpeg exited with 1"))
        gen = PreviewGenerator(media, tmp_path)

        assert await gen.render("in.mp4", "clip_0001", 0.0, 3.0) is None
