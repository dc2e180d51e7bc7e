"""
Promo clip generator

Job-facing orchestration: picks or builds a background, lays out the
standard promo layers (logos, caption, overlay videos), renders the
composition and copies the result to the output directory.
"""

import logging
import math
import os
import random
import re
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from compositor.backgrounds import BackgroundFactory
from compositor.encoder import EncoderConfig
from compositor.executor import ProcessExecutor
from compositor.filters import get_filter
from compositor.models.composition import (
    Composition,
    CompositionError,
    FadeEnvelope,
    Layer,
    LayerKind,
    Position,
    Size,
    TimeWindow,
)
from compositor.models.render import (
    AudioPolicy,
    BackgroundSource,
    GenerationResult,
    RenderConfig,
)
from compositor.probe import MediaProbe
from compositor.renderer import CompositionRenderer
from compositor.segments import SegmentAssembler
from compositor.sources import Pools, Source, as_source


logger = logging.getLogger(__name__)

OVERLAY_CATEGORIES = ("analog_film", "gritt", "noise", "retro_dust")
SITE_NAME = "UndergroundExistence.info"

MAIN_LOGO_Z = 10
INTERSTITIAL_LOGO_Z = 20
OVERLAY_VIDEO_Z = 250
END_LOGO_Z = 300
CAPTION_Z = 400


@dataclass
class AudioClip:
    """Audio handed over by the audio/caption collaborator"""
    path: str
    artist: str
    title: str


@dataclass
class PromoAssets:
    """
    Media available to a promo render.

    Attributes:
        background_pools: Category -> background clips for segment assembly
        overlay_pools: Category -> overlay clips (analog film, grit, noise...)
        main_logo: Full-canvas logo drawn over the background
        interstitial_logos: One is picked for the after-fade interstitial
        end_logos: One is picked for the closing logo
        background_path: Ready background, skips segment assembly
    """
    background_pools: Pools = field(default_factory=dict)
    overlay_pools: Pools = field(default_factory=dict)
    main_logo: Optional[str] = None
    interstitial_logos: List[str] = field(default_factory=list)
    end_logos: List[str] = field(default_factory=list)
    background_path: Optional[str] = None


@dataclass
class PromoRequest:
    """
    One promo job.

    Attributes:
        duration: Clip length in seconds
        width: Canvas width
        height: Canvas height
        prompt: Background description (static fallback colour)
        style: Look key (look_*) or a raw filter chain
        selected_categories: Background pool categories to draw from (empty = all)
        enable_overlay: Add overlay videos
        overlay_opacity: Opacity of overlay videos
        overlay_interval: Seconds per overlay video
        segment_duration: Length of each background segment
        fade: Global fade envelope
        caption_start: When the caption appears
        end_logo: Add the closing logo
        end_logo_lead: Seconds before the end the closing logo appears
        output_dir: Where the final clip is copied
    """
    duration: float = 30.0
    width: int = 720
    height: int = 720
    prompt: Optional[str] = None
    style: Optional[str] = None
    selected_categories: List[str] = field(default_factory=list)
    enable_overlay: bool = True
    overlay_opacity: float = 0.5
    overlay_interval: float = 10.0
    segment_duration: float = 5.0
    fade: FadeEnvelope = field(default_factory=FadeEnvelope)
    caption_start: float = 10.0
    end_logo: bool = True
    end_logo_lead: float = 5.0
    output_dir: str = "output"

    @classmethod
    def from_settings(cls, settings, **overrides) -> "PromoRequest":
        """Defaults from compositor settings, then explicit overrides"""
        values = dict(
            duration=settings.duration,
            width=settings.width,
            height=settings.height,
            overlay_opacity=settings.overlay_opacity,
            overlay_interval=settings.overlay_interval,
            segment_duration=settings.segment_duration,
            fade=FadeEnvelope(lead=settings.fade_lead, duration=settings.fade_duration),
            output_dir=settings.output_dir,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def fade_start(self) -> float:
        return self.fade.start(self.duration)


def resolve_style(style: Optional[str], width: int, height: int) -> Optional[str]:
    """Look key -> filter chain; anything containing '=' is used as-is"""
    if not style:
        return None
    expression = get_filter(style, width, height)
    if expression:
        return expression
    if "=" in style:
        return style
    logger.warning("Unknown style '%s', using default black & white", style)
    return None


def validate_request(request: PromoRequest) -> None:
    """
    Reject job parameters the layout cannot be computed from.

    Raises:
        CompositionError: On a non-positive duration, canvas, overlay
            interval or segment length, or an opacity outside 0..1
    """
    if request.duration <= 0:
        raise CompositionError(f"Duration must be > 0, got {request.duration}")
    if request.width <= 0 or request.height <= 0:
        raise CompositionError(f"Canvas size must be positive, got {request.width}x{request.height}")
    if request.overlay_interval <= 0:
        raise CompositionError(f"Overlay interval must be > 0, got {request.overlay_interval}")
    if request.segment_duration <= 0:
        raise CompositionError(f"Segment duration must be > 0, got {request.segment_duration}")
    if not 0.0 <= request.overlay_opacity <= 1.0:
        raise CompositionError(f"Overlay opacity must be within 0..1, got {request.overlay_opacity}")


def slugify(text: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", text) or "promo"


class PromoVideoGenerator:
    """
    Generates promo clips.

    Usage:
        generator = PromoVideoGenerator(encoder)
        result = await generator.generate(PromoRequest(), assets, audio)
    """

    def __init__(
        self,
        encoder: EncoderConfig,
        temp_dir: Optional[str] = None,
        render_config: Optional[RenderConfig] = None,
        audio_policy: AudioPolicy = AudioPolicy.REQUIRE,
        renderer: Optional[CompositionRenderer] = None,
        assembler: Optional[SegmentAssembler] = None,
        backgrounds: Optional[BackgroundFactory] = None,
        rng: Optional[random.Random] = None
    ):
        self.encoder = encoder
        self.temp_dir = temp_dir or os.path.join(tempfile.gettempdir(), "promo-compositor")
        self.rng = rng or random.Random()

        executor = ProcessExecutor(encoder)
        probe = MediaProbe(encoder)
        self.renderer = renderer or CompositionRenderer(
            encoder, render_config, audio_policy, executor=executor, probe=probe
        )
        self.assembler = assembler or SegmentAssembler(executor, probe, self.temp_dir, rng=self.rng)
        self.backgrounds = backgrounds or BackgroundFactory(executor, self.temp_dir)

    async def generate(
        self,
        request: PromoRequest,
        assets: PromoAssets,
        audio: AudioClip
    ) -> GenerationResult:
        """
        Produce one promo clip.

        Args:
            request: Job parameters
            assets: Pools and logos
            audio: Audio track with artist/title for the caption

        Returns:
            GenerationResult; failures are reported, never raised
        """
        try:
            validate_request(request)
        except CompositionError as e:
            logger.error("Invalid promo request: %s", e)
            return GenerationResult(success=False, error_message=str(e))

        if not os.path.exists(audio.path):
            return GenerationResult(success=False, error_message=f"Audio file not found: {audio.path}")

        os.makedirs(self.temp_dir, exist_ok=True)
        tag = f"{int(time.time())}_{uuid.uuid4().hex[:8]}"
        temp_files: List[str] = []

        try:
            logger.info("Generating %.0fs promo for %s - %s", request.duration, audio.artist, audio.title)

            background_path, background_source = await self._background(request, assets, temp_files)
            if background_path is None:
                return GenerationResult(
                    success=False,
                    error_message="No background available (segments and static fallback failed)"
                )

            layers = await self.build_layers(request, assets, audio)
            temp_output = os.path.join(self.temp_dir, f"{slugify(audio.artist)}_render_{tag}.mp4")
            temp_files.append(temp_output)

            composition = Composition(
                background_path=background_path,
                audio_path=audio.path,
                layers=layers,
                output_path=temp_output,
                duration=request.duration,
                width=request.width,
                height=request.height,
                style_filter=resolve_style(request.style, request.width, request.height),
                fade=request.fade,
            )

            result = await self.renderer.render(composition)
            if not result.success:
                return GenerationResult(
                    success=False,
                    background_source=background_source,
                    error_message=result.error_message,
                )

            os.makedirs(request.output_dir, exist_ok=True)
            final_path = os.path.join(request.output_dir, f"{slugify(audio.artist)}_video_{tag}.mp4")
            shutil.copy(temp_output, final_path)
            size_bytes = os.path.getsize(final_path)

            logger.info(
                "Promo generated: %s (%.2fMB, background: %s)",
                final_path, size_bytes / (1024 * 1024), background_source.value
            )
            return GenerationResult(
                success=True,
                output_path=final_path,
                size_bytes=size_bytes,
                duration_seconds=result.duration,
                background_source=background_source,
            )

        except (CompositionError, OSError) as e:
            logger.error("Promo generation failed: %s", e)
            return GenerationResult(success=False, error_message=str(e))

        finally:
            self._cleanup(temp_files)

    async def _background(self, request: PromoRequest, assets: PromoAssets, temp_files: List[str]):
        """Provided background, else segments, else a static colour frame"""
        if assets.background_path:
            return assets.background_path, BackgroundSource.PROVIDED

        pools = assets.background_pools
        if request.selected_categories:
            pools = {k: v for k, v in pools.items() if k in request.selected_categories}

        self.assembler.width, self.assembler.height = request.width, request.height
        segments = await self.assembler.create_video_from_segments(
            pools, request.duration, request.segment_duration
        )
        if segments.success:
            temp_files.append(segments.output_path)
            return segments.output_path, BackgroundSource.SEGMENTS

        logger.warning("Segment background failed (%s), using static background", segments.error_message)
        static = await self.backgrounds.generate(request.prompt, request.width, request.height)
        if static.success:
            temp_files.append(static.output_path)
            return static.output_path, BackgroundSource.STATIC

        return None, None

    async def build_layers(
        self,
        request: PromoRequest,
        assets: PromoAssets,
        audio: AudioClip
    ) -> List[Layer]:
        """
        Standard promo layer set; offsets follow the duration and fade.

        Raises:
            CompositionError: If the request fails validate_request
        """
        validate_request(request)
        w, h = request.width, request.height
        duration = request.duration
        fade_start = request.fade_start
        layers: List[Layer] = []

        if assets.main_logo:
            layers.append(Layer(
                kind=LayerKind.IMAGE,
                source=assets.main_logo,
                position=Position(0, 0),
                size=Size(w, h),
                stack_order=MAIN_LOGO_Z,
            ))

        if assets.interstitial_logos and 0 < fade_start < duration:
            logo_w = round(w * 0.30)
            layers.append(Layer(
                kind=LayerKind.IMAGE,
                source=self.rng.choice(assets.interstitial_logos),
                position=Position(round((w - logo_w) / 2), round(h * 0.4)),
                size=Size(logo_w, logo_w),
                stack_order=INTERSTITIAL_LOGO_Z,
                time_window=TimeWindow(fade_start, duration - fade_start),
                add_after_fade=True,
            ))

        if fade_start > request.caption_start:
            font_size = max(1, round(h * 0.03))
            layers.append(Layer(
                kind=LayerKind.TEXT,
                source=f"{audio.artist}\n{audio.title}\n{SITE_NAME}",
                position=Position(10, round(h - font_size * 3.5 - 30)),
                size=Size(round(w * 0.15), font_size * 4),
                stack_order=CAPTION_Z,
                time_window=TimeWindow(request.caption_start, fade_start - request.caption_start),
                font_size=font_size,
                text_color="0xFFFFFF",
                line_height=0.75,
            ))

        if request.enable_overlay:
            layers.extend(await self._overlay_layers(request, assets))

        if request.end_logo and assets.end_logos and duration > request.end_logo_lead:
            logo_w = round(w * 0.35)
            layers.append(Layer(
                kind=LayerKind.IMAGE,
                source=self.rng.choice(assets.end_logos),
                position=Position(round((w - logo_w) / 2), round((h - logo_w) / 2)),
                size=Size(logo_w, logo_w),
                stack_order=END_LOGO_Z,
                time_window=TimeWindow(duration - request.end_logo_lead, request.end_logo_lead),
                add_after_fade=True,
            ))

        return layers

    async def _overlay_layers(self, request: PromoRequest, assets: PromoAssets) -> List[Layer]:
        """One overlay video per interval, all from a single overlay category"""
        categories = [c for c, sources in assets.overlay_pools.items() if sources]
        if not categories:
            logger.info("No overlay videos available, skipping overlays")
            return []

        category = self.rng.choice(categories)
        sources: List[Source] = [as_source(s) for s in assets.overlay_pools[category]]
        count = math.ceil(request.duration / request.overlay_interval)
        logger.info("Using %d overlay videos from '%s'", count, category)

        layers = []
        used = set()
        for i in range(count):
            start = i * request.overlay_interval
            end = min(start + request.overlay_interval, request.duration)
            if end <= start:
                break

            if len(used) >= len(sources):
                used.clear()
            available = [s for s in range(len(sources)) if s not in used]
            index = self.rng.choice(available)
            used.add(index)

            try:
                path = await sources[index].resolve()
            except OSError as e:
                logger.warning("Overlay %s unavailable: %s", sources[index].name, e)
                continue

            layers.append(Layer(
                kind=LayerKind.VIDEO,
                source=path,
                position=Position(0, 0),
                size=Size(request.width, request.height),
                opacity=request.overlay_opacity,
                stack_order=OVERLAY_VIDEO_Z,
                time_window=TimeWindow(start, end - start),
                blend_mode="overlay",
            ))
        return layers

    def _cleanup(self, paths: List[str]) -> None:
        for path in paths:
            if not path or not os.path.exists(path):
                continue
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Cleanup warning for %s: %s", path, e)
