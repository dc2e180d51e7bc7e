"""
Composition renderer

Validates a Composition, builds its filter graph and FFmpeg command, runs
the encoder and reports everything as a RenderResult.
"""

import logging
import os
import shlex
import time
from typing import List, Optional

from compositor.command_builder import CommandBuilder
from compositor.encoder import EncoderConfig, EncoderNotFoundError
from compositor.executor import EncoderError, ProcessExecutor, ProgressCallback
from compositor.graph import GraphError
from compositor.graph_builder import FilterGraphBuilder
from compositor.models.composition import Composition, CompositionError, validate_composition
from compositor.models.render import AudioPolicy, RenderConfig, RenderResult
from compositor.probe import MediaProbe


logger = logging.getLogger(__name__)


class CompositionRenderer:
    """
    Renders compositions with FFmpeg.

    Usage:
        renderer = CompositionRenderer(detect_encoder())
        result = await renderer.render(composition)
        if result.success:
            print(result.output_path)
    """

    def __init__(
        self,
        encoder: EncoderConfig,
        config: Optional[RenderConfig] = None,
        audio_policy: AudioPolicy = AudioPolicy.REQUIRE,
        graph_builder: Optional[FilterGraphBuilder] = None,
        executor: Optional[ProcessExecutor] = None,
        probe: Optional[MediaProbe] = None
    ):
        """
        Initialize the renderer.

        Args:
            encoder: Resolved encoder binaries
            config: Encoding configuration (uses defaults if not provided)
            audio_policy: Behaviour when the audio input has no audio stream
            graph_builder: Filter graph builder (default instance if not provided)
            executor: Process executor (default instance if not provided)
            probe: Media probe (default instance if not provided)
        """
        self.encoder = encoder
        self.config = config or RenderConfig()
        self.graph_builder = graph_builder or FilterGraphBuilder()
        self.command_builder = CommandBuilder(encoder, self.config, audio_policy)
        self.executor = executor or ProcessExecutor(encoder)
        self.probe = probe or MediaProbe(encoder)

    async def render(
        self,
        composition: Composition,
        on_progress: Optional[ProgressCallback] = None
    ) -> RenderResult:
        """
        Render a composition.

        Args:
            composition: What to render
            on_progress: Called with seconds encoded so far

        Returns:
            RenderResult; failures are reported, never raised
        """
        start_time = time.time()
        cmd: List[str] = []
        skipped: List[str] = []

        try:
            validate_composition(composition)

            audio_present = await self.probe.has_audio(composition.audio_path)
            if audio_present is None:
                logger.warning(
                    "Could not probe audio streams of %s, assuming audio is present",
                    composition.audio_path
                )
                audio_present = True
            build = self.graph_builder.build(composition)
            skipped = build.skipped_layers

            cmd = self.command_builder.build(composition, build, audio_present=audio_present)

            output_dir = os.path.dirname(os.path.abspath(composition.output_path))
            os.makedirs(output_dir, exist_ok=True)

            logger.info(
                "Rendering %dx%d %.1fs composition with %d layers -> %s",
                composition.width, composition.height, composition.duration,
                len(composition.layers), composition.output_path
            )
            await self.executor.run(cmd, composition.output_path, on_progress=on_progress)

            duration = await self.probe.duration(composition.output_path)
            file_size = os.path.getsize(composition.output_path)

            return RenderResult(
                success=True,
                output_path=composition.output_path,
                duration=duration,
                file_size=file_size,
                render_time=time.time() - start_time,
                ffmpeg_command=shlex.join(cmd),
                skipped_layers=skipped,
            )

        except EncoderError as e:
            logger.error("Render failed: %s", e)
            return RenderResult(
                success=False,
                error_message=str(e),
                render_time=time.time() - start_time,
                ffmpeg_command=shlex.join(cmd) if cmd else None,
                ffmpeg_stderr=e.diagnostics,
                skipped_layers=skipped,
            )

        except (CompositionError, GraphError, EncoderNotFoundError, OSError) as e:
            logger.error("Render failed: %s", e)
            return RenderResult(
                success=False,
                error_message=str(e),
                render_time=time.time() - start_time,
                ffmpeg_command=shlex.join(cmd) if cmd else None,
                skipped_layers=skipped,
            )
