"""Unit tests for ProcessExecutor"""

import pytest
from unittest.mock import AsyncMock, patch

from compositor.encoder import EncoderNotFoundError
from compositor.executor import (
    EncoderError,
    ProcessExecutor,
    diagnostic_excerpt,
    parse_progress_time,
)
from tests.mocks.ffmpeg import FAKE_ENCODER, FakeProcess


PROGRESS_STDERR = (
    b"Input #0, image2, from 'bg.png':\n"
    b"frame=   30 fps=0.0 q=28.0 size=       0kB time=00:00:01.00 bitrate=N/A\r"
    b"frame=  300 fps=120 q=28.0 size=     256kB time=00:00:10.50 bitrate=199.7kbits/s\r"
    b"frame=  900 fps=120 q=-1.0 Lsize=    1024kB time=00:00:30.00 bitrate=279.6kbits/s\n"
)


class TestParsing:
    """Tests for stderr parsing helpers"""

    def test_parse_progress_time(self):
        assert parse_progress_time("frame=1 time=00:01:02.50 bitrate=1") == 62.5
        assert parse_progress_time("time=01:00:00.00") == 3600.0
        assert parse_progress_time("time=N/A") is None
        assert parse_progress_time("no marker") is None

    def test_excerpt_prefers_failure_lines(self):
        lines = [
            "Input #0",
            "[Parsed_drawtext_0 @ 0x1] Cannot find a valid font",
            "frame=1",
            "Error initializing filter 'drawtext'",
            "Conversion done",
        ]
        excerpt = diagnostic_excerpt(lines)
        assert excerpt.splitlines() == [
            "[Parsed_drawtext_0 @ 0x1] Cannot find a valid font",
            "Error initializing filter 'drawtext'",
        ]

    def test_excerpt_falls_back_to_tail(self):
        lines = [f"line {i}" for i in range(20)]
        assert diagnostic_excerpt(lines, limit=3) == "line 17\nline 18\nline 19"


class TestProcessExecutor:
    """Tests for running commands"""

    @pytest.mark.asyncio
    async def test_success_reports_progress(self, tmp_path):
        output = tmp_path / "out.mp4"
        process = FakeProcess(PROGRESS_STDERR, returncode=0, on_wait=lambda: output.write_bytes(b"data"))
        progress = []

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as spawn:
            result = await ProcessExecutor(FAKE_ENCODER).run(
                ["ffmpeg", "-y", str(output)], str(output), on_progress=progress.append
            )

        assert result == str(output)
        assert progress == [1.0, 10.5, 30.0]
        assert spawn.call_args.args == ("ffmpeg", "-y", str(output))

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_diagnostics(self, tmp_path):
        stderr = b"Input #0\n[AVFilterGraph @ 0x1] No such filter: 'drawtext'\nError initializing complex filters.\n"
        process = FakeProcess(stderr, returncode=1)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(EncoderError) as exc_info:
                await ProcessExecutor(FAKE_ENCODER).run(["ffmpeg"], str(tmp_path / "out.mp4"))

        err = exc_info.value
        assert err.returncode == 1
        assert "No such filter: 'drawtext'" in err.diagnostics
        assert "Error initializing complex filters." in str(err)
        assert "Input #0" not in err.diagnostics

    @pytest.mark.asyncio
    async def test_missing_output_is_failure(self, tmp_path):
        process = FakeProcess(b"done\n", returncode=0)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(EncoderError, match="missing or empty"):
                await ProcessExecutor(FAKE_ENCODER).run(["ffmpeg"], str(tmp_path / "out.mp4"))

    @pytest.mark.asyncio
    async def test_empty_output_is_failure(self, tmp_path):
        output = tmp_path / "out.mp4"
        process = FakeProcess(b"", returncode=0, on_wait=lambda: output.write_bytes(b""))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(EncoderError):
                await ProcessExecutor(FAKE_ENCODER).run(["ffmpeg"], str(output))

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError())):
            with pytest.raises(EncoderNotFoundError):
                await ProcessExecutor(FAKE_ENCODER).run(["nope-ffmpeg"], str(tmp_path / "out.mp4"))
