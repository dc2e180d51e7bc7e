"""Unit tests for the CLI"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from cli import main
from cli.compose import load_manifest
from compositor.models.composition import CompositionError, LayerKind
from tests.mocks.ffmpeg import FAKE_ENCODER


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def manifest(media, tmp_path):
    data = {
        "background": "background.png",
        "audio": "audio.mp3",
        "output": "renders/out.mp4",
        "duration": 20,
        "style": "look_hard_bw_street_doc",
        "fade": {"lead": 6},
        "layers": [
            {"kind": "image", "source": "logo.png", "width": 720, "height": 720, "stack_order": 10},
            {"kind": "text", "source": "Artist", "x": 360, "y": 600, "width": 200, "height": 40,
             "start": 10, "duration": 4, "stack_order": 400, "font_path": "/fonts/test.ttf"},
            {"kind": "image", "source": "logo2.png", "width": 200, "height": 200,
             "start": 14, "duration": 6, "stack_order": 20, "add_after_fade": True},
        ],
    }
    path = tmp_path / "job.json"
    path.write_text(json.dumps(data))
    return path


class TestManifest:
    """Tests for manifest loading"""

    def test_paths_resolved_against_manifest(self, manifest, media, tmp_path):
        composition = load_manifest(manifest)

        assert composition.background_path == media["background"]
        assert composition.audio_path == media["audio"]
        assert composition.output_path == str(tmp_path / "renders" / "out.mp4")
        assert composition.layers[0].source == media["logo"]

    def test_values(self, manifest):
        composition = load_manifest(manifest)

        assert composition.duration == 20
        assert composition.fade.lead == 6
        assert composition.fade.duration == 3
        assert composition.style_filter.startswith("scale=720:720")
        text = composition.layers[1]
        assert text.kind == LayerKind.TEXT
        assert text.source == "Artist"
        assert (text.time_window.start, text.time_window.end) == (10, 14)
        assert composition.layers[2].add_after_fade

    def test_raw_style_kept(self, tmp_path, media):
        path = tmp_path / "raw.json"
        path.write_text(json.dumps({"background": "background.png", "audio": "audio.mp3", "style": "hue=s=0.2"}))
        assert load_manifest(path).style_filter == "hue=s=0.2"

    @pytest.mark.parametrize("content", [
        "{not json",
        json.dumps({"audio": "audio.mp3"}),
        json.dumps({"background": "b.png", "audio": "a.mp3", "layers": [{"kind": "sprite", "source": "x"}]}),
    ])
    def test_invalid_manifest(self, tmp_path, content):
        path = tmp_path / "bad.json"
        path.write_text(content)
        with pytest.raises(CompositionError):
            load_manifest(path)


class TestCommands:
    """Tests for CLI commands"""

    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("compose", "segments", "promo", "filters", "status"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_filters_single(self, runner):
        result = runner.invoke(main, ["filters", "look_pixel_grit", "-w", "1080", "-h", "1920"])
        assert result.exit_code == 0
        assert result.output.strip().startswith("scale=360:640:")

    def test_filters_unknown(self, runner):
        result = runner.invoke(main, ["filters", "look_nope"])
        assert result.exit_code == 1

    def test_compose_dry_run(self, runner, manifest, media):
        with patch("cli.compose.encoder_from_settings", return_value=FAKE_ENCODER):
            result = runner.invoke(main, ["compose", str(manifest), "--dry-run"])

        assert result.exit_code == 0, result.output
        command = result.output.strip().splitlines()[-1]
        assert command.startswith("ffmpeg -hide_banner")
        assert "-filter_complex" in command
        assert "drawtext=" in command
        assert "format=gray" in command

    def test_compose_bad_manifest(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[]")
        result = runner.invoke(main, ["compose", str(path), "--dry-run"])
        assert result.exit_code == 1

    def test_compose_missing_background(self, runner, tmp_path, media):
        path = tmp_path / "job.json"
        path.write_text(json.dumps({"background": "nope.png", "audio": "audio.mp3"}))
        with patch("cli.compose.encoder_from_settings", return_value=FAKE_ENCODER):
            result = runner.invoke(main, ["compose", str(path), "--dry-run"])
        assert result.exit_code == 1

    def test_status_json(self, runner):
        ffmpeg = {
            "installed": True,
            "path": "/usr/bin/ffmpeg",
            "probe_path": "/usr/bin/ffprobe",
            "version": "ffmpeg version 6.1",
            "drawtext": True,
        }
        with patch("cli.status.check_ffmpeg_installed", AsyncMock(return_value=ffmpeg)), \
             patch("cli.status.encoder_from_settings", return_value=FAKE_ENCODER), \
             patch("cli.status.find_font", return_value="/fonts/test.ttf"):
            result = runner.invoke(main, ["status", "--json"])

        assert result.exit_code == 0, result.output
        status = json.loads(result.output)
        assert status["ffmpeg"]["drawtext"] is True
        assert status["font"] == "/fonts/test.ttf"
        assert status["settings"]["width"] == 720
