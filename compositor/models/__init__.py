"""Data models for the promo compositor"""

from .composition import (
    CompositionError,
    LayerKind,
    Position,
    Size,
    TimeWindow,
    FadeEnvelope,
    Layer,
    Composition,
    is_image_path,
    is_video_path,
    validate_layer,
    validate_composition,
)
from .render import (
    AudioPolicy,
    BackgroundSource,
    RenderConfig,
    RenderResult,
    SegmentResult,
    BackgroundResult,
    GenerationResult,
)

__all__ = [
    # Composition
    "CompositionError",
    "LayerKind",
    "Position",
    "Size",
    "TimeWindow",
    "FadeEnvelope",
    "Layer",
    "Composition",
    "is_image_path",
    "is_video_path",
    "validate_layer",
    "validate_composition",
    # Render
    "AudioPolicy",
    "BackgroundSource",
    "RenderConfig",
    "RenderResult",
    "SegmentResult",
    "BackgroundResult",
    "GenerationResult",
]
