"""
FFmpeg command builder

Maps a GraphBuild onto the final argument vector: input declarations in
slot order, the serialized filter graph, stream maps and encoding options.
"""

import logging
from typing import List, Optional, Union

from compositor.encoder import EncoderConfig
from compositor.graph import Label, format_value
from compositor.graph_builder import GraphBuild, InputRole, InputSpec
from compositor.models.composition import Composition, CompositionError
from compositor.models.render import AudioPolicy, RenderConfig


logger = logging.getLogger(__name__)


class CommandBuilder:
    """
    Builds the FFmpeg argument vector for a composition.

    The same composition, graph and options always produce the same vector.
    """

    def __init__(
        self,
        encoder: EncoderConfig,
        render_config: Optional[RenderConfig] = None,
        audio_policy: AudioPolicy = AudioPolicy.REQUIRE
    ):
        self.encoder = encoder
        self.config = render_config or RenderConfig()
        self.audio_policy = audio_policy

    def build(
        self,
        composition: Composition,
        graph_build: GraphBuild,
        audio_present: bool = True,
        final_hint: Optional[Label] = None
    ) -> List[str]:
        """
        Build the full argument vector, binary first.

        Args:
            composition: The composition being rendered
            graph_build: Output of FilterGraphBuilder.build
            audio_present: Whether the audio input has an audio stream
            final_hint: Label to map; defaults to the graph's final label

        Returns:
            Argument vector for ProcessExecutor.run

        Raises:
            CompositionError: If audio is missing and the policy requires it
        """
        cmd = [self.encoder.binary_path, "-hide_banner"]

        for spec in graph_build.inputs:
            cmd.extend(self._input_args(spec, composition))

        video_map = self.resolve_video_map(
            graph_build, final_hint if final_hint is not None else graph_build.final_label
        )
        filter_text = graph_build.filter_complex()
        if filter_text:
            cmd.extend(["-filter_complex", filter_text])
        cmd.extend(["-map", video_map])
        cmd.extend(self._audio_args(composition, audio_present))

        cmd.extend([
            "-c:v", self.config.video_codec,
            "-preset", self.config.preset,
            "-crf", str(self.config.crf),
            "-pix_fmt", self.config.pixel_format,
            "-c:a", self.config.audio_codec,
            "-b:a", self.config.audio_bitrate,
            "-t", format_value(float(composition.duration)),
            "-s", f"{composition.width}x{composition.height}",
            "-r", str(composition.frame_rate),
        ])
        if self.config.faststart:
            cmd.extend(["-movflags", "+faststart"])
        cmd.extend(["-y", composition.output_path])

        return cmd

    def _input_args(self, spec: InputSpec, composition: Composition) -> List[str]:
        if spec.role == InputRole.AUDIO:
            return ["-i", spec.path]
        if spec.still:
            return ["-loop", "1", "-framerate", str(composition.frame_rate), "-i", spec.path]
        return ["-stream_loop", "-1", "-i", spec.path]

    def _audio_args(self, composition: Composition, audio_present: bool) -> List[str]:
        if audio_present:
            fade = composition.fade
            fade_start = max(0.0, composition.duration - fade.duration)
            afade = (
                f"afade=t=out:st={format_value(float(fade_start))}"
                f":d={format_value(float(fade.duration))}"
            )
            return ["-map", "1:a", "-af", afade]

        if self.audio_policy == AudioPolicy.REQUIRE:
            raise CompositionError(f"Audio input has no audio stream: {composition.audio_path}")

        logger.warning("Audio input has no audio stream, rendering without audio fade")
        return ["-map", "1:a?"]

    def resolve_video_map(self, graph_build: GraphBuild, hint: Optional[Label]) -> str:
        """
        Pick the label to map as video output.

        Only labels no stage consumes can be mapped. Falls back to the last
        text label, then the last image label, then the base label, then the
        graph's final label, then the raw background stream. Never raises.
        """
        graph = graph_build.graph
        candidates: List[Union[Label, None]] = [
            hint,
            graph_build.text_labels[-1] if graph_build.text_labels else None,
            graph_build.image_labels[-1] if graph_build.image_labels else None,
            graph_build.base_label,
            graph_build.final_label,
        ]
        for i, label in enumerate(candidates):
            if graph.is_terminal(label):
                if i > 0:
                    logger.warning(
                        "Output label %s not mappable, falling back to %s",
                        hint.text() if hint else None, label.text()
                    )
                return label.text()

        logger.warning("No usable graph label, mapping raw background stream")
        return "0:v"
