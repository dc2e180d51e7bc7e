"""
Render models for FFmpeg composition

These models represent the encoding configuration and the result records
returned by each pipeline stage (segments, background, render, promo).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class AudioPolicy(Enum):
    """What to do when the audio input has no audio stream"""
    REQUIRE = "require"
    OPTIONAL = "optional"


class BackgroundSource(Enum):
    """Which background path a promo render ended up using"""
    SEGMENTS = "segments"
    STATIC = "static"
    PROVIDED = "provided"


@dataclass
class RenderConfig:
    """
    Encoding configuration.

    Attributes:
        video_codec: Video codec (libx264, libx265, etc.)
        audio_codec: Audio codec (aac, mp3, etc.)
        audio_bitrate: Audio bitrate (e.g., "192k")
        pixel_format: Pixel format (yuv420p for compatibility)
        faststart: Move the moov atom to the front of the file
    """
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    pixel_format: str = "yuv420p"

    # Quality preset (ultrafast, fast, medium, slow, veryslow)
    preset: str = "medium"

    # CRF for quality-based encoding (0-51, lower = better, 23 is default)
    crf: int = 23

    faststart: bool = True


@dataclass
class RenderResult:
    """
    Result from a composition render.

    Attributes:
        success: Whether the render completed successfully
        output_path: Path to the rendered video file
        duration: Duration of the rendered video in seconds
        file_size: Size of the output file in bytes
        render_time: Time taken to render in seconds
        error_message: Error message if render failed
        ffmpeg_command: The FFmpeg command that was executed
        ffmpeg_stderr: Diagnostic excerpt from FFmpeg on failure
    """
    success: bool
    output_path: Optional[str] = None
    duration: Optional[float] = None
    file_size: Optional[int] = None
    render_time: Optional[float] = None
    error_message: Optional[str] = None
    ffmpeg_command: Optional[str] = None
    ffmpeg_stderr: Optional[str] = None

    # Layers dropped by the graph builder (missing files, late windows)
    skipped_layers: List[str] = field(default_factory=list)


@dataclass
class SegmentResult:
    """
    Result from segment assembly.

    Attributes:
        success: Whether a background video of the target duration was produced
        output_path: Concatenated background video
        duration: Target duration the output was trimmed to
        segments_used: Source paths in concat order
        error_message: Why assembly failed
    """
    success: bool
    output_path: Optional[str] = None
    duration: Optional[float] = None
    segments_used: List[str] = field(default_factory=list)
    error_message: Optional[str] = None


@dataclass
class BackgroundResult:
    """Result from the static background fallback"""
    success: bool
    output_path: Optional[str] = None
    color: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class GenerationResult:
    """
    Result handed back to the job orchestration collaborator.

    Attributes:
        success: Whether the promo clip was produced
        output_path: Final location of the clip
        size_bytes: Size of the final clip
        duration_seconds: Probed duration of the final clip
        background_source: Which background path was used
        error_message: Error message if generation failed
    """
    success: bool
    output_path: Optional[str] = None
    size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None
    background_source: Optional[BackgroundSource] = None
    error_message: Optional[str] = None
