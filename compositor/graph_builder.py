"""
Filter-graph builder for layered compositions

Turns a Composition into a typed FilterGraph plus the ordered list of
inputs the command builder has to declare. Layers are folded onto the
background one at a time: first the layers drawn under the global fade,
then the fade itself, then the layers that stay visible after it.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import reduce
from typing import Dict, List, Optional, Tuple

from compositor.graph import (
    Filter,
    FilterGraph,
    GraphError,
    InputRef,
    Label,
    Stage,
    format_value,
    parse_chain,
)
from compositor.models.composition import Composition, Layer, LayerKind, TimeWindow


logger = logging.getLogger(__name__)

BACKGROUND_SLOT = 0
AUDIO_SLOT = 1

BASE_LABEL = Label("base")
FADED_LABEL = Label("faded")

# Characters drawtext would otherwise interpret; backslash is handled first
DRAWTEXT_SPECIAL = ("'", '"', ":", "[", "]", "(", ")", "$", "@", "%", ",", ";")


class Phase(Enum):
    """Where the fold is relative to the global fade"""
    UNRENDERED = "unrendered"
    BEFORE_FADE = "before_fade"
    FADED = "faded"
    AFTER_FADE = "after_fade"
    FINAL = "final"


class InputRole(Enum):
    BACKGROUND = "background"
    AUDIO = "audio"
    VIDEO = "video"
    IMAGE = "image"


@dataclass(frozen=True)
class InputSpec:
    """
    One -i input of the final command.

    Attributes:
        index: Input slot number
        path: File to read
        role: What the slot carries
        still: Loop a single image (-loop 1) instead of looping a stream
    """
    index: int
    path: str
    role: InputRole
    still: bool = False


@dataclass(frozen=True)
class GraphState:
    """Accumulator threaded through the layer fold"""
    graph: FilterGraph
    current: Label
    phase: Phase
    counter: int = 0
    text_labels: Tuple[Label, ...] = ()
    image_labels: Tuple[Label, ...] = ()


@dataclass
class GraphBuild:
    """
    Output of FilterGraphBuilder.build.

    Attributes:
        graph: Validated filter graph
        final_label: Label to map as the video output
        inputs: Inputs in slot order
        text_labels: Labels produced by text stages, in render order
        image_labels: Labels produced by image stages, in render order
        base_label: Label of the prepared background
        skipped_layers: Descriptions of layers left out of the graph
    """
    graph: FilterGraph
    final_label: Label
    inputs: List[InputSpec]
    text_labels: List[Label] = field(default_factory=list)
    image_labels: List[Label] = field(default_factory=list)
    base_label: Label = BASE_LABEL
    skipped_layers: List[str] = field(default_factory=list)

    def filter_complex(self) -> str:
        return self.graph.serialize()


def escape_drawtext(text: str) -> str:
    """Escape literal text for drawtext's own expansion."""
    out = text.replace("\\", "\\\\")
    for ch in DRAWTEXT_SPECIAL:
        out = out.replace(ch, "\\" + ch)
    return out


def inverse_color(color: str) -> str:
    """Inverse of a 0xRRGGBB / #RRGGBB colour, used for the text border."""
    value = color.strip()
    lowered = value.lower()
    if lowered == "white":
        return "black"
    if lowered == "black":
        return "white"

    digits = value[2:] if lowered.startswith("0x") else value.lstrip("#")
    if len(digits) in (6, 8):
        try:
            rgb = int(digits[:6], 16)
        except ValueError:
            return "black"
        return "0x%06X" % (0xFFFFFF - rgb)
    return "black"


def find_font() -> Optional[str]:
    """Find a suitable font file for text overlays."""
    font_paths = [
        # Linux
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
        # macOS
        "/System/Library/Fonts/Helvetica.ttc",
        "/Library/Fonts/Arial.ttf",
        # Windows
        r"C:\Windows\Fonts\arial.ttf",
        r"C:\Windows\Fonts\segoeui.ttf",
    ]

    for path in font_paths:
        if os.path.exists(path):
            return path

    return None


def enable_expression(window: Optional[TimeWindow], duration: float) -> Optional[str]:
    """between(t,start,end) for a window narrower than the output, else None"""
    if window is None or window.covers(duration):
        return None
    return f"between(t,{format_value(float(window.start))},{format_value(float(window.end))})"


def render_order(layers: List[Layer]) -> Tuple[List[Layer], List[Layer]]:
    """
    Partition layers around the fade and sort each side by stack order.

    sorted() is stable, so equal stack orders keep insertion order.
    """
    before = [l for l in layers if not l.add_after_fade]
    after = [l for l in layers if l.add_after_fade]
    key = lambda l: l.stack_order
    return sorted(before, key=key), sorted(after, key=key)


class FilterGraphBuilder:
    """
    Builds the filter graph for a composition.

    Usage:
        build = FilterGraphBuilder().build(composition)
        text = build.filter_complex()
    """

    def __init__(self, font_finder=find_font):
        self._font_finder = font_finder

    def build(self, composition: Composition) -> GraphBuild:
        """
        Build the filter graph and input plan.

        Args:
            composition: Validated composition

        Returns:
            GraphBuild with the graph, final label and input slots

        Raises:
            GraphError: If the resulting graph is malformed
        """
        skipped: List[str] = []
        renderable = self._renderable_layers(composition, skipped)
        before, after = render_order(renderable)
        inputs, slots = self._plan_inputs(composition, before + after)

        state = GraphState(
            graph=FilterGraph(),
            current=BASE_LABEL,
            phase=Phase.UNRENDERED,
        )
        state = self._background(state, composition)

        fold = lambda s, layer: self._fold_layer(s, layer, composition, slots)
        state = reduce(fold, before, state)
        state = self._fade(state, composition)
        state = reduce(fold, after, state)
        state = replace(state, phase=Phase.FINAL)

        state.graph.validate(state.current, input_count=len(inputs))

        logger.debug(
            "Built graph with %d stages, %d inputs, final %s",
            len(state.graph.stages), len(inputs), state.current.text()
        )

        return GraphBuild(
            graph=state.graph,
            final_label=state.current,
            inputs=inputs,
            text_labels=list(state.text_labels),
            image_labels=list(state.image_labels),
            base_label=BASE_LABEL,
            skipped_layers=skipped,
        )

    def _renderable_layers(self, composition: Composition, skipped: List[str]) -> List[Layer]:
        layers = []
        for i, layer in enumerate(composition.layers):
            if layer.kind == LayerKind.BACKGROUND:
                logger.debug("Ignoring background-kind layer %d, background comes from the composition", i)
                continue

            if layer.time_window is not None and layer.time_window.start >= composition.duration:
                logger.debug(
                    "Layer %d starts at %.2fs, after the end of the output (%.2fs)",
                    i, layer.time_window.start, composition.duration
                )
                skipped.append(f"{layer.kind.value}:{layer.source} (starts after end)")
                continue

            if layer.has_file and not os.path.exists(layer.source):
                logger.warning("Layer %d source not found, skipping: %s", i, layer.source)
                skipped.append(f"{layer.kind.value}:{layer.source} (missing)")
                continue

            layers.append(layer)
        return layers

    def _plan_inputs(
        self,
        composition: Composition,
        ordered: List[Layer]
    ) -> Tuple[List[InputSpec], Dict[int, int]]:
        """Slots: background, audio, videos in render order, images in render order"""
        inputs = [
            InputSpec(BACKGROUND_SLOT, composition.background_path, InputRole.BACKGROUND,
                      still=composition.background_is_image),
            InputSpec(AUDIO_SLOT, composition.audio_path, InputRole.AUDIO),
        ]
        slots: Dict[int, int] = {}

        for kind, role, still in (
            (LayerKind.VIDEO, InputRole.VIDEO, False),
            (LayerKind.IMAGE, InputRole.IMAGE, True),
        ):
            for layer in ordered:
                if layer.kind != kind:
                    continue
                index = len(inputs)
                inputs.append(InputSpec(index, layer.source, role, still=still))
                slots[id(layer)] = index

        return inputs, slots

    def _background(self, state: GraphState, composition: Composition) -> GraphState:
        if state.phase != Phase.UNRENDERED:
            raise GraphError("Background stage can only be built once")

        w, h = composition.width, composition.height
        if composition.style_filter:
            style = parse_chain(composition.style_filter)
        else:
            style = [Filter.of("hue", s=0)]

        stage = Stage(
            name="background",
            inputs=(InputRef(BACKGROUND_SLOT),),
            filters=(
                Filter.of("scale", w, h, force_original_aspect_ratio="increase"),
                Filter.of("crop", w, h),
                Filter.of("setsar", 1),
                *style,
                Filter.of("format", "yuv420p"),
            ),
            output=BASE_LABEL,
        )
        return replace(state, graph=state.graph.add(stage), current=BASE_LABEL, phase=Phase.BEFORE_FADE)

    def _fade(self, state: GraphState, composition: Composition) -> GraphState:
        if state.phase != Phase.BEFORE_FADE:
            raise GraphError(f"Fade applied in phase {state.phase.value}")

        fade = composition.fade
        fade_start = fade.start(composition.duration)
        if fade_start <= 0:
            logger.debug("Fade lead %.2fs >= duration, no fade stage", fade.lead)
            return replace(state, phase=Phase.FADED)

        stage = Stage(
            name="fade",
            inputs=(state.current,),
            filters=(Filter.of("fade", t="out", st=float(fade_start), d=float(fade.duration)),),
            output=FADED_LABEL,
        )
        return replace(state, graph=state.graph.add(stage), current=FADED_LABEL, phase=Phase.FADED)

    def _fold_layer(
        self,
        state: GraphState,
        layer: Layer,
        composition: Composition,
        slots: Dict[int, int]
    ) -> GraphState:
        if layer.add_after_fade and state.phase == Phase.FADED:
            state = replace(state, phase=Phase.AFTER_FADE)
        state = replace(state, counter=state.counter + 1)

        if layer.kind == LayerKind.TEXT:
            return self._text(state, layer, composition)
        if layer.kind == LayerKind.VIDEO and layer.blend_mode:
            return self._blend(state, layer, composition, slots[id(layer)])
        return self._overlay(state, layer, composition, slots[id(layer)])

    def _window(self, layer: Layer, composition: Composition) -> Optional[TimeWindow]:
        if layer.time_window is None:
            return None
        return layer.time_window.clamp(composition.duration)

    def _timeline(self, window: Optional[TimeWindow], composition: Composition) -> Tuple[Filter, ...]:
        """Trim a looped video to its window and shift it to the window start"""
        if window is None or window.covers(composition.duration):
            return ()
        return (
            Filter.of("trim", duration=float(window.duration)),
            Filter.of("setpts", f"PTS-STARTPTS+{format_value(float(window.start))}/TB"),
        )

    def _alpha(self, state: GraphState, source: Label, layer: Layer) -> Tuple[GraphState, Label]:
        if layer.opacity >= 1.0:
            return state, source

        label = Label(f"l{state.counter}_alpha")
        stage = Stage(
            name=f"layer {state.counter} opacity",
            inputs=(source,),
            filters=(
                Filter.of("format", "rgba"),
                Filter.of("colorchannelmixer", aa=float(layer.opacity)),
            ),
            output=label,
        )
        return replace(state, graph=state.graph.add(stage)), label

    def _overlay(self, state: GraphState, layer: Layer, composition: Composition, slot: int) -> GraphState:
        n = state.counter
        w, h = layer.final_width, layer.final_height
        window = self._window(layer, composition)

        if layer.kind == LayerKind.IMAGE:
            prepare = (Filter.of("scale", w, h, force_original_aspect_ratio="decrease"),)
            prefix = "img"
        else:
            prepare = (
                Filter.of("scale", w, h, force_original_aspect_ratio="increase"),
                Filter.of("crop", w, h),
                Filter.of("setsar", 1),
            ) + self._timeline(window, composition)
            prefix = "vid"

        source = Label(f"l{n}_src")
        state = replace(state, graph=state.graph.add(Stage(
            name=f"layer {n} {layer.kind.value} prepare",
            inputs=(InputRef(slot),),
            filters=prepare,
            output=source,
        )))
        state, source = self._alpha(state, source, layer)

        output = Label(f"{prefix}{n}")
        overlay = Filter.of(
            "overlay",
            x=int(round(layer.position.x)),
            y=int(round(layer.position.y)),
            enable=enable_expression(window, composition.duration),
        )
        state = replace(
            state,
            graph=state.graph.add(Stage(
                name=f"layer {n} {layer.kind.value} overlay",
                inputs=(state.current, source),
                filters=(overlay,),
                output=output,
            )),
            current=output,
        )
        if layer.kind == LayerKind.IMAGE:
            state = replace(state, image_labels=state.image_labels + (output,))
        return state

    def _blend(self, state: GraphState, layer: Layer, composition: Composition, slot: int) -> GraphState:
        """Full-canvas blend of a video layer; opacity goes to all_opacity"""
        n = state.counter
        w, h = composition.width, composition.height
        window = self._window(layer, composition)

        source = Label(f"l{n}_src")
        prepare = (
            Filter.of("scale", w, h, force_original_aspect_ratio="increase"),
            Filter.of("crop", w, h),
            Filter.of("setsar", 1),
            Filter.of("format", "yuv420p"),
        ) + self._timeline(window, composition)

        output = Label(f"blend{n}")
        blend = Filter.of(
            "blend",
            all_mode=layer.blend_mode,
            all_opacity=float(layer.opacity),
            enable=enable_expression(window, composition.duration),
        )
        graph = state.graph.add(Stage(
            name=f"layer {n} blend prepare",
            inputs=(InputRef(slot),),
            filters=prepare,
            output=source,
        )).add(Stage(
            name=f"layer {n} blend",
            inputs=(state.current, source),
            filters=(blend,),
            output=output,
        ))
        return replace(state, graph=graph, current=output)

    def _text(self, state: GraphState, layer: Layer, composition: Composition) -> GraphState:
        n = state.counter
        window = self._window(layer, composition)
        font_size = layer.resolved_font_size

        font = layer.font_path or self._font_finder()
        if font:
            font = font.replace("\\", "/")

        if layer.position.is_centered(composition.width):
            x = "(w-text_w)/2"
        else:
            x = int(round(layer.position.x))

        line_spacing = None
        if layer.line_height != 1.0:
            line_spacing = int(round((layer.line_height - 1.0) * font_size))

        drawtext = Filter.of(
            "drawtext",
            fontfile=font,
            text=escape_drawtext(layer.source),
            fontsize=font_size,
            fontcolor=layer.text_color,
            borderw=2,
            bordercolor=inverse_color(layer.text_color),
            x=x,
            y=int(round(layer.position.y)),
            line_spacing=line_spacing,
            alpha=float(layer.opacity) if layer.opacity < 1.0 else None,
            enable=enable_expression(window, composition.duration),
        )

        output = Label(f"txt{n}")
        stage = Stage(
            name=f"layer {n} text",
            inputs=(state.current,),
            filters=(drawtext,),
            output=output,
        )
        return replace(
            state,
            graph=state.graph.add(stage),
            current=output,
            text_labels=state.text_labels + (output,),
        )
