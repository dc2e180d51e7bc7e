"""Compositor components - filter graphs, FFmpeg execution and promo assembly"""

from .encoder import EncoderConfig, EncoderNotFoundError, detect_encoder
from .executor import EncoderError, ProcessExecutor
from .graph import FilterGraph, GraphError
from .graph_builder import FilterGraphBuilder, GraphBuild
from .command_builder import CommandBuilder
from .renderer import CompositionRenderer

# Note: PromoVideoGenerator is NOT imported here to keep the core import light
# Import it directly: from compositor.promo import PromoVideoGenerator

__all__ = [
    # Encoder
    "EncoderConfig",
    "EncoderNotFoundError",
    "detect_encoder",
    "EncoderError",
    "ProcessExecutor",

    # Graph
    "FilterGraph",
    "GraphError",
    "FilterGraphBuilder",
    "GraphBuild",
    "CommandBuilder",
    "CompositionRenderer",
]
