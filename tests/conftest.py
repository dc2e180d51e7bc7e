"""Shared pytest fixtures"""

import pytest

from tests.mocks.fixtures import (
    make_media_files,
    make_composition,
)
from tests.mocks.ffmpeg import FakeExecutor, FakeProbe


# ============================================================
# Media Files
# ============================================================

@pytest.fixture
def media(tmp_path):
    """Placeholder background/audio/logo/video files on disk"""
    return make_media_files(tmp_path)


@pytest.fixture
def sample_composition(media, tmp_path):
    """Composition with no layers over the placeholder media"""
    return make_composition(media, output_path=str(tmp_path / "out.mp4"))


# ============================================================
# FFmpeg Fakes
# ============================================================

@pytest.fixture
def fake_executor():
    """Executor that writes output files instead of running FFmpeg"""
    return FakeExecutor()


@pytest.fixture
def fake_probe():
    """Probe returning configurable durations"""
    return FakeProbe()


# ============================================================
# Markers Configuration
# ============================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that run the real FFmpeg binary"
    )
