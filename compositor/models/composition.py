"""
Composition models for layered FFmpeg rendering

A Composition is one render request: a background, an audio track and an
ordered list of timed layers drawn on a fixed canvas, closed by a global
fade-to-black envelope.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".bmp")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".m4v", ".avi", ".mkv", ".webm")

# Text layers whose x lies this close to the canvas centre are centred
CENTER_TOLERANCE = 10


class CompositionError(ValueError):
    """Raised when a composition or one of its layers is invalid."""
    pass


class LayerKind(Enum):
    """Kinds of layers the compositor knows how to draw"""
    BACKGROUND = "background"
    IMAGE = "image"
    VIDEO = "video"
    TEXT = "text"


@dataclass(frozen=True)
class Position:
    """Top-left corner of a layer in canvas pixels"""
    x: float = 0
    y: float = 0

    def is_centered(self, canvas_width: int) -> bool:
        """True when x is the 'centre me' sentinel (canvas centre)"""
        return abs(self.x - canvas_width / 2) < CENTER_TOLERANCE


@dataclass(frozen=True)
class Size:
    """Target size of a layer before the scale factor is applied"""
    width: float
    height: float


@dataclass(frozen=True)
class TimeWindow:
    """
    Visibility window of a layer.

    Attributes:
        start: Seconds into the output when the layer appears
        duration: How long the layer stays visible
    """
    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration

    def contains(self, t: float) -> bool:
        """Inclusive on both ends, matching FFmpeg's between()"""
        return self.start <= t <= self.end

    def clamp(self, total_duration: float) -> Optional["TimeWindow"]:
        """Clip the window to [0, total_duration]; None if nothing is left"""
        if self.start >= total_duration:
            return None
        end = min(self.end, total_duration)
        return TimeWindow(start=self.start, duration=end - self.start)

    def covers(self, total_duration: float) -> bool:
        """True when the window spans the whole output"""
        return self.start <= 0 and self.end >= total_duration


@dataclass(frozen=True)
class FadeEnvelope:
    """
    Global fade-to-black near the end of the output.

    The fade starts `lead` seconds before the end and lasts `duration`
    seconds; frames stay black afterwards unless an after-fade layer is
    drawn on top of them.
    """
    lead: float = 8.0
    duration: float = 3.0

    def start(self, total_duration: float) -> float:
        return total_duration - self.lead


@dataclass
class Layer:
    """
    A timed visual element composited into the output.

    Attributes:
        kind: What the layer draws (image, video, text)
        source: File path for image/video layers, literal text for text layers
        position: Top-left corner in canvas pixels (text: x at canvas centre = centred)
        size: Target size before scale
        opacity: 0.0 to 1.0
        stack_order: Rendering order, lower first (bottom), higher last (top)
        scale: Uniform scale factor applied to size
        time_window: Visibility window, None = whole output
        blend_mode: FFmpeg blend mode (video layers only), e.g. "overlay"
        add_after_fade: Draw after the global fade so the layer stays visible
    """
    kind: LayerKind
    source: str
    position: Position = field(default_factory=Position)
    size: Size = field(default_factory=lambda: Size(0, 0))
    opacity: float = 1.0
    stack_order: int = 0
    scale: float = 1.0
    time_window: Optional[TimeWindow] = None
    blend_mode: Optional[str] = None
    add_after_fade: bool = False

    # Text-only fields
    font_path: Optional[str] = None
    font_size: Optional[int] = None
    text_color: str = "0xFFFFFF"
    line_height: float = 1.0

    @property
    def is_text(self) -> bool:
        return self.kind == LayerKind.TEXT

    @property
    def has_file(self) -> bool:
        """Image and video layers are backed by a file on disk"""
        return self.kind in (LayerKind.IMAGE, LayerKind.VIDEO)

    @property
    def final_width(self) -> int:
        return max(1, round(self.size.width * (self.scale or 1)))

    @property
    def final_height(self) -> int:
        return max(1, round(self.size.height * (self.scale or 1)))

    @property
    def resolved_font_size(self) -> int:
        """Explicit font size, else 70% of the layer height"""
        if self.font_size:
            return int(self.font_size)
        return max(1, round(self.size.height * 0.7))


@dataclass
class Composition:
    """
    Root render request.

    Attributes:
        background_path: Still image or video used as the base layer
        audio_path: Audio track muxed into the output
        layers: Layers to composite, in insertion order
        output_path: Where FFmpeg writes the result
        duration: Output duration in seconds
        width: Canvas width in pixels
        height: Canvas height in pixels
        style_filter: FFmpeg filter chain applied to the background only
        fade: Global fade-to-black envelope
        frame_rate: Frame rate used for looped still inputs and the output
    """
    background_path: str
    audio_path: str
    layers: List[Layer] = field(default_factory=list)
    output_path: str = "output.mp4"
    duration: float = 30.0
    width: int = 720
    height: int = 720
    style_filter: Optional[str] = None
    fade: FadeEnvelope = field(default_factory=FadeEnvelope)
    frame_rate: int = 30

    @property
    def background_is_image(self) -> bool:
        return is_image_path(self.background_path)


def is_image_path(path: str) -> bool:
    return str(path).lower().endswith(IMAGE_EXTENSIONS)


def is_video_path(path: str) -> bool:
    return str(path).lower().endswith(VIDEO_EXTENSIONS)


def validate_layer(layer: Layer, index: int = 0) -> None:
    """Reject layer data that would produce an invalid graph."""
    label = f"Layer {index} ({layer.kind.value})"

    if not 0.0 <= layer.opacity <= 1.0:
        raise CompositionError(f"{label}: opacity must be within 0.0-1.0, got {layer.opacity}")

    if layer.time_window is not None:
        if layer.time_window.start < 0:
            raise CompositionError(
                f"{label}: time window start must be >= 0, got {layer.time_window.start}"
            )
        if layer.time_window.duration <= 0:
            raise CompositionError(
                f"{label}: time window duration must be > 0, got {layer.time_window.duration}"
            )

    if layer.has_file:
        if layer.size.width <= 0 or layer.size.height <= 0:
            raise CompositionError(f"{label}: size must be positive, got {layer.size}")
        if layer.scale <= 0:
            raise CompositionError(f"{label}: scale must be > 0, got {layer.scale}")

    if layer.blend_mode and layer.kind != LayerKind.VIDEO:
        raise CompositionError(f"{label}: blend_mode is only supported on video layers")

    if layer.is_text and layer.line_height <= 0:
        raise CompositionError(f"{label}: line_height must be > 0, got {layer.line_height}")


def validate_composition(composition: Composition) -> None:
    """
    Validate a composition before it reaches the graph builder.

    Missing layer files are not an error here; the builder skips them.

    Raises:
        CompositionError: If the request can never render
    """
    if composition.width <= 0 or composition.height <= 0:
        raise CompositionError(
            f"Canvas size must be positive, got {composition.width}x{composition.height}"
        )
    if composition.duration <= 0:
        raise CompositionError(f"Duration must be > 0, got {composition.duration}")
    if composition.frame_rate <= 0:
        raise CompositionError(f"Frame rate must be > 0, got {composition.frame_rate}")
    if composition.fade.duration <= 0:
        raise CompositionError(f"Fade duration must be > 0, got {composition.fade.duration}")

    if not os.path.exists(composition.background_path):
        raise CompositionError(f"Background not found: {composition.background_path}")
    if not os.path.exists(composition.audio_path):
        raise CompositionError(f"Audio file not found: {composition.audio_path}")

    for i, layer in enumerate(composition.layers):
        validate_layer(layer, i)
