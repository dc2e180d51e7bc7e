"""Unit tests for FilterGraphBuilder"""

import re

import pytest

from compositor.graph import FilterGraph, GraphError, InputRef, Label, parse_graph_labels
from compositor.graph_builder import (
    FADED_LABEL,
    FilterGraphBuilder,
    GraphState,
    InputRole,
    Phase,
    escape_drawtext,
    inverse_color,
    render_order,
)
from compositor.models.composition import FadeEnvelope, LayerKind, Position, Size
from tests.mocks.fixtures import make_composition, make_layer, make_text_layer


@pytest.fixture
def builder():
    return FilterGraphBuilder(font_finder=lambda: None)


def _stage_for(build, output_name):
    index = build.graph.index_of(Label(output_name))
    assert index >= 0, f"no stage produces [{output_name}]"
    return index, build.graph.stages[index]


def _between(expr):
    match = re.fullmatch(r"between\(t,([\d.]+),([\d.]+)\)", expr)
    assert match, expr
    return float(match.group(1)), float(match.group(2))


class TestBackground:
    """Tests for the background stage"""

    def test_default_desaturation(self, builder, media):
        build = builder.build(make_composition(media))
        assert build.graph.stages[0].serialize() == (
            "[0:v]scale=720:720:force_original_aspect_ratio=increase,"
            "crop=720:720,setsar=1,hue=s=0,format=yuv420p[base]"
        )
        assert build.base_label == Label("base")

    def test_style_filter_replaces_default(self, builder, media):
        build = builder.build(make_composition(media, style_filter="eq=contrast=1.2,vignette=0.4"))
        text = build.graph.stages[0].serialize()
        assert "hue=s=0" not in text
        assert "setsar=1,eq=contrast=1.2,vignette=0.4,format=yuv420p[base]" in text

    def test_no_layers_ends_with_fade(self, builder, media):
        build = builder.build(make_composition(media))
        assert build.final_label == FADED_LABEL
        fade = build.graph.stages[-1].filters[0]
        assert fade.serialize() == "fade=t=out:st=22:d=3"

    def test_fade_skipped_when_lead_exceeds_duration(self, builder, media):
        build = builder.build(make_composition(media, duration=5.0, fade=FadeEnvelope(lead=8, duration=3)))
        assert build.final_label == Label("base")
        assert not build.graph.produces(FADED_LABEL)


class TestInputs:
    """Tests for the input slot plan"""

    def test_slot_plan(self, builder, media):
        layers = [
            make_layer(LayerKind.IMAGE, media["logo"], stack_order=10),
            make_layer(LayerKind.VIDEO, media["overlay"], stack_order=250,
                       size=Size(720, 720), blend_mode="overlay", opacity=0.5),
            make_layer(LayerKind.IMAGE, media["logo2"], stack_order=20, add_after_fade=True),
        ]
        build = builder.build(make_composition(media, layers))

        assert [(i.index, i.role) for i in build.inputs] == [
            (0, InputRole.BACKGROUND),
            (1, InputRole.AUDIO),
            (2, InputRole.VIDEO),
            (3, InputRole.IMAGE),
            (4, InputRole.IMAGE),
        ]
        assert [i.path for i in build.inputs[2:]] == [media["overlay"], media["logo"], media["logo2"]]
        assert build.inputs[0].still is True
        assert build.inputs[3].still is True
        assert build.inputs[2].still is False

    def test_missing_file_skipped_without_slot(self, builder, media, tmp_path):
        missing = str(tmp_path / "nope.png")
        layers = [
            make_layer(LayerKind.IMAGE, missing, stack_order=5),
            make_layer(LayerKind.IMAGE, media["logo"], stack_order=10),
        ]
        build = builder.build(make_composition(media, layers))

        assert [i.path for i in build.inputs] == [media["background"], media["audio"], media["logo"]]
        assert len(build.skipped_layers) == 1
        assert "missing" in build.skipped_layers[0]

    def test_late_window_is_noop(self, builder, media):
        layers = [make_layer(LayerKind.IMAGE, media["logo"], window=(30, 5))]
        build = builder.build(make_composition(media, layers))
        assert len(build.inputs) == 2
        assert build.image_labels == []

    def test_background_kind_ignored(self, builder, media):
        layers = [make_layer(LayerKind.BACKGROUND, media["background_video"])]
        build = builder.build(make_composition(media, layers))
        assert len(build.inputs) == 2
        assert len(build.graph.stages) == 2


class TestOrdering:
    """Tests for stacking order and the fade partition"""

    def test_render_order_stable(self, media):
        a = make_layer(source="a", stack_order=5)
        b = make_layer(source="b", stack_order=1)
        c = make_layer(source="c", stack_order=5)
        d = make_layer(source="d", stack_order=0, add_after_fade=True)
        before, after = render_order([a, b, c, d])
        assert [l.source for l in before] == ["b", "a", "c"]
        assert [l.source for l in after] == ["d"]

    def test_higher_stack_order_rendered_later(self, builder, media):
        layers = [
            make_layer(LayerKind.IMAGE, media["logo"], stack_order=300),
            make_text_layer("Caption", stack_order=400),
            make_layer(LayerKind.IMAGE, media["logo2"], stack_order=10),
        ]
        build = builder.build(make_composition(media, layers))

        # logo2 (z=10) gets the first image slot and the first overlay
        assert build.inputs[2].path == media["logo2"]
        assert build.inputs[3].path == media["logo"]
        positions = [
            build.graph.index_of(build.image_labels[0]),
            build.graph.index_of(build.image_labels[1]),
            build.graph.index_of(build.text_labels[0]),
        ]
        assert positions == sorted(positions)
        _, first_prepare = _stage_for(build, "l1_src")
        assert first_prepare.inputs == (InputRef(2),)

    def test_fade_partition(self, builder, media):
        layers = [
            make_layer(LayerKind.IMAGE, media["logo2"], stack_order=20, window=(22, 8), add_after_fade=True),
            make_layer(LayerKind.IMAGE, media["logo"], stack_order=10),
            make_text_layer("Caption", stack_order=400, window=(10, 12)),
        ]
        build = builder.build(make_composition(media, layers))

        fade_index = build.graph.index_of(FADED_LABEL)
        before = [build.graph.index_of(build.image_labels[0]), build.graph.index_of(build.text_labels[0])]
        after = build.graph.index_of(build.image_labels[1])

        assert all(i < fade_index for i in before)
        assert after > fade_index
        assert build.final_label == build.image_labels[1]
        assert build.graph.stages[after].inputs[0] == FADED_LABEL

    def test_label_closure(self, builder, media):
        layers = [
            make_layer(LayerKind.IMAGE, media["logo"], stack_order=10, opacity=0.5),
            make_layer(LayerKind.VIDEO, media["overlay"], stack_order=250, size=Size(720, 720),
                       blend_mode="overlay", opacity=0.5, window=(0, 10)),
            make_layer(LayerKind.VIDEO, media["overlay2"], stack_order=250, size=Size(200, 200),
                       window=(10, 10)),
            make_text_layer("A: [b], c", stack_order=400, window=(10, 12)),
            make_layer(LayerKind.IMAGE, media["logo2"], stack_order=300, window=(25, 5), add_after_fade=True),
        ]
        build = builder.build(make_composition(media, layers))

        produced = []
        consumed = []
        for inputs, outputs in parse_graph_labels(build.filter_complex()):
            for name in inputs:
                if ":" in name:
                    continue
                assert name in produced, f"[{name}] consumed before it is produced"
                consumed.append(name)
            produced.extend(outputs)

        assert len(produced) == len(set(produced))
        assert sorted(consumed) == sorted(p for p in produced if p != build.final_label.name)
        assert build.final_label.name not in consumed

    def test_fade_applied_once(self, builder, media):
        composition = make_composition(media)
        state = GraphState(graph=FilterGraph(), current=Label("base"), phase=Phase.UNRENDERED)
        state = builder._background(state, composition)
        state = builder._fade(state, composition)

        assert state.phase == Phase.FADED
        with pytest.raises(GraphError):
            builder._fade(state, composition)
        with pytest.raises(GraphError):
            builder._background(state, composition)


class TestLayers:
    """Tests for per-kind layer stages"""

    def test_image_overlay(self, builder, media):
        layers = [make_layer(LayerKind.IMAGE, media["logo"], position=Position(216, 288),
                             size=Size(216, 216), scale=1.5)]
        build = builder.build(make_composition(media, layers))

        _, prepare = _stage_for(build, "l1_src")
        assert prepare.serialize() == "[2:v]scale=324:324:force_original_aspect_ratio=decrease[l1_src]"
        _, overlay = _stage_for(build, "img1")
        assert overlay.serialize() == "[base][l1_src]overlay=x=216:y=288[img1]"

    def test_opacity_stage(self, builder, media):
        layers = [make_layer(LayerKind.IMAGE, media["logo"], opacity=0.5)]
        build = builder.build(make_composition(media, layers))

        _, alpha = _stage_for(build, "l1_alpha")
        assert alpha.serialize() == "[l1_src]format=rgba,colorchannelmixer=aa=0.5[l1_alpha]"
        _, overlay = _stage_for(build, "img1")
        assert overlay.inputs == (Label("base"), Label("l1_alpha"))

    def test_video_overlay_crop_and_shift(self, builder, media):
        layers = [make_layer(LayerKind.VIDEO, media["overlay"], size=Size(300, 200), window=(10, 5))]
        build = builder.build(make_composition(media, layers))

        _, prepare = _stage_for(build, "l1_src")
        assert prepare.serialize() == (
            "[2:v]scale=300:200:force_original_aspect_ratio=increase,crop=300:200,setsar=1,"
            "trim=duration=5,setpts=PTS-STARTPTS+10/TB[l1_src]"
        )

    def test_blend_video(self, builder, media):
        layers = [make_layer(LayerKind.VIDEO, media["overlay"], size=Size(720, 720),
                             blend_mode="overlay", opacity=0.5, window=(10, 10))]
        build = builder.build(make_composition(media, layers))

        _, blend = _stage_for(build, "blend1")
        flt = blend.filters[0]
        assert flt.name == "blend"
        assert flt.param("all_mode") == "overlay"
        assert flt.param("all_opacity") == 0.5
        assert flt.param("enable") == "between(t,10,20)"
        assert not build.graph.produces(Label("l1_alpha"))

    def test_window_gating(self, builder, media):
        layers = [make_text_layer("Hello", window=(10, 5))]
        build = builder.build(make_composition(media, layers))

        _, stage = _stage_for(build, build.text_labels[0].name)
        start, end = _between(stage.filters[0].param("enable"))
        visible = lambda t: start <= t <= end
        assert not visible(9.9)
        assert visible(12)
        assert not visible(15.1)

    def test_full_window_has_no_enable(self, builder, media):
        layers = [make_layer(LayerKind.IMAGE, media["logo"], window=(0, 30))]
        build = builder.build(make_composition(media, layers))
        _, overlay = _stage_for(build, "img1")
        assert overlay.filters[0].param("enable") is None

    def test_window_clamped_to_duration(self, builder, media):
        layers = [make_layer(LayerKind.IMAGE, media["logo"], window=(25, 20), add_after_fade=True)]
        build = builder.build(make_composition(media, layers))
        _, overlay = _stage_for(build, "img1")
        assert overlay.filters[0].param("enable") == "between(t,25,30)"


class TestText:
    """Tests for drawtext generation"""

    def test_drawtext_params(self, builder, media):
        layers = [make_text_layer("Artist", position=Position(10, 600), size=Size(200, 40))]
        build = builder.build(make_composition(media, layers))

        flt = build.graph.stages[1].filters[0]
        assert flt.name == "drawtext"
        assert flt.param("fontfile") == "/fonts/test.ttf"
        assert flt.param("text") == "Artist"
        assert flt.param("fontsize") == 28
        assert flt.param("fontcolor") == "0xFFFFFF"
        assert flt.param("borderw") == 2
        assert flt.param("bordercolor") == "0x000000"
        assert flt.param("x") == 10
        assert flt.param("y") == 600
        assert flt.param("alpha") is None
        assert flt.param("line_spacing") is None

    def test_centered_sentinel(self, builder, media):
        for x, expected in ((360, "(w-text_w)/2"), (355, "(w-text_w)/2"), (340, 340)):
            layers = [make_text_layer("T", position=Position(x, 10))]
            build = builder.build(make_composition(media, layers))
            assert build.graph.stages[1].filters[0].param("x") == expected

    def test_explicit_font_size_and_spacing(self, builder, media):
        layers = [make_text_layer("A\nB", font_size=20, line_height=0.75, opacity=0.8)]
        build = builder.build(make_composition(media, layers))

        flt = build.graph.stages[1].filters[0]
        assert flt.param("fontsize") == 20
        assert flt.param("line_spacing") == -5
        assert flt.param("alpha") == 0.8

    def test_system_font_fallback(self, media):
        builder = FilterGraphBuilder(font_finder=lambda: r"C:\Windows\Fonts\arial.ttf")
        layers = [make_text_layer("T", font_path=None)]
        build = builder.build(make_composition(media, layers))
        assert build.graph.stages[1].filters[0].param("fontfile") == "C:/Windows/Fonts/arial.ttf"

    def test_no_font_found(self, builder, media):
        layers = [make_text_layer("T", font_path=None)]
        build = builder.build(make_composition(media, layers))
        assert build.graph.stages[1].filters[0].param("fontfile") is None

    def test_text_escaping(self, builder, media):
        text = "Mix: Vol [1], 100% it's $5 @club (live); \\o/"
        layers = [make_text_layer(text)]
        build = builder.build(make_composition(media, layers))
        assert build.graph.stages[1].filters[0].param("text") == escape_drawtext(text)

    def test_escape_drawtext(self):
        assert escape_drawtext("a:b") == "a\\:b"
        assert escape_drawtext("100%") == "100\\%"
        assert escape_drawtext("\\") == "\\\\"
        assert escape_drawtext("it's") == "it\\'s"
        assert escape_drawtext("[x](y)") == "\\[x\\]\\(y\\)"
        assert escape_drawtext("$@,;\"") == "\\$\\@\\,\\;\\\""

    def test_inverse_color(self):
        assert inverse_color("0xFFFFFF") == "0x000000"
        assert inverse_color("#FF0000") == "0x00FFFF"
        assert inverse_color("white") == "black"
        assert inverse_color("red") == "black"
