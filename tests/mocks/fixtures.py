"""Test data factories for consistent test setup"""

from pathlib import Path
from typing import Dict, List, Optional

from compositor.models.composition import (
    Composition,
    FadeEnvelope,
    Layer,
    LayerKind,
    Position,
    Size,
    TimeWindow,
)


def make_media_files(root: Path) -> Dict[str, str]:
    """Write placeholder media files and return their paths by role"""
    files = {
        "background": "background.png",
        "background_video": "background.mp4",
        "audio": "audio.mp3",
        "logo": "logo.png",
        "logo2": "logo2.png",
        "overlay": "overlay.mp4",
        "overlay2": "overlay2.mp4",
    }
    paths = {}
    for role, name in files.items():
        path = Path(root) / name
        path.write_bytes(b"\x00placeholder")
        paths[role] = str(path)
    return paths


def make_layer(
    kind: LayerKind = LayerKind.IMAGE,
    source: str = "logo.png",
    stack_order: int = 0,
    window: Optional[tuple] = None,
    **kwargs
) -> Layer:
    """Factory for Layer objects"""
    defaults = {
        "kind": kind,
        "source": source,
        "position": Position(0, 0),
        "size": Size(100, 100),
        "stack_order": stack_order,
        "time_window": TimeWindow(*window) if window else None,
    }
    defaults.update(kwargs)
    return Layer(**defaults)


def make_text_layer(
    text: str = "Artist",
    stack_order: int = 400,
    window: Optional[tuple] = None,
    **kwargs
) -> Layer:
    """Factory for text layers with a fixed font so no system lookup happens"""
    defaults = {
        "size": Size(200, 40),
        "font_path": "/fonts/test.ttf",
    }
    defaults.update(kwargs)
    return make_layer(LayerKind.TEXT, text, stack_order, window, **defaults)


def make_composition(
    media: Dict[str, str],
    layers: Optional[List[Layer]] = None,
    **kwargs
) -> Composition:
    """Factory for Composition objects"""
    defaults = {
        "background_path": media["background"],
        "audio_path": media["audio"],
        "layers": layers or [],
        "output_path": "out.mp4",
        "duration": 30.0,
        "width": 720,
        "height": 720,
        "fade": FadeEnvelope(),
    }
    defaults.update(kwargs)
    return Composition(**defaults)
