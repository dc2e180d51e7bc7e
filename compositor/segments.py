"""
Segment assembler

Builds a background video of an exact duration by cutting short random
segments from category pools, normalizing each one to the canvas format
and joining them with the concat demuxer.
"""

import logging
import math
import os
import random
import tempfile
import time
import uuid
from typing import Dict, List, Optional, Set, Tuple

from compositor.encoder import EncoderNotFoundError
from compositor.executor import EncoderError, ProcessExecutor
from compositor.graph import Filter, FilterGraph, InputRef, Label, Stage, format_value
from compositor.models.render import SegmentResult
from compositor.probe import MediaProbe
from compositor.sources import Pools, Source, as_source


logger = logging.getLogger(__name__)

# Accumulated duration within this margin of the target counts as complete
DURATION_EPSILON = 0.05

# Upper bound on segments per target, relative to segments_needed
MAX_SEGMENT_FACTOR = 4


def source_key(source: Source) -> str:
    return getattr(source, "path", None) or source.name


class SegmentAssembler:
    """
    Assembles background videos from pools of source clips.

    Usage:
        assembler = SegmentAssembler(executor, probe, temp_dir="/tmp/work")
        result = await assembler.create_video_from_segments(pools, 30, 5)
    """

    def __init__(
        self,
        executor: ProcessExecutor,
        probe: MediaProbe,
        temp_dir: Optional[str] = None,
        width: int = 720,
        height: int = 720,
        frame_rate: int = 30,
        rng: Optional[random.Random] = None
    ):
        self.executor = executor
        self.probe = probe
        self.temp_dir = temp_dir or tempfile.gettempdir()
        self.width = width
        self.height = height
        self.frame_rate = frame_rate
        self.rng = rng or random.Random()

    async def create_video_from_segments(
        self,
        pools_by_category: Pools,
        total_duration: float = 30.0,
        segment_duration: float = 5.0,
        output_path: Optional[str] = None
    ) -> SegmentResult:
        """
        Build a background video of exactly total_duration seconds.

        Args:
            pools_by_category: Category name -> sources (paths or references)
            total_duration: Target duration in seconds
            segment_duration: Length of each cut segment
            output_path: Where to write the result (default: private temp file)

        Returns:
            SegmentResult; never raises for pool or encoder problems
        """
        if total_duration <= 0 or segment_duration <= 0:
            return SegmentResult(
                success=False,
                error_message=f"Invalid durations: total={total_duration}, segment={segment_duration}"
            )

        pools = {
            category: [as_source(s) for s in sources]
            for category, sources in pools_by_category.items()
            if sources
        }
        if not pools:
            logger.warning("No source videos available in any pool")
            return SegmentResult(success=False, error_message="No source videos available in any pool")

        os.makedirs(self.temp_dir, exist_ok=True)
        tag = f"{int(time.time())}_{uuid.uuid4().hex[:8]}"
        output_path = output_path or os.path.join(self.temp_dir, f"background_{tag}.mp4")
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

        segments_needed = math.ceil(total_duration / segment_duration)
        logger.info(
            "Assembling %.1fs background from %d segments of %.1fs (%d categories)",
            total_duration, segments_needed, segment_duration, len(pools)
        )

        categories = list(pools.keys())
        used: Dict[str, Set[str]] = {c: set() for c in categories}
        segment_paths: List[str] = []
        segments_used: List[str] = []
        created: List[str] = []
        accumulated = 0.0
        turn = 0

        try:
            while accumulated + DURATION_EPSILON < total_duration:
                if len(segment_paths) >= segments_needed * MAX_SEGMENT_FACTOR:
                    raise EncoderError(
                        f"Gave up after {len(segment_paths)} segments covering {accumulated:.2f}s"
                    )

                category = self._pick_category(categories, turn)
                turn += 1
                source = self._pick_source(pools[category], used[category])

                extracted = await self._extract_with_retry(
                    category, source, pools, used, segment_duration, tag, created
                )
                if extracted is None:
                    return self._failed(output_path, "Segment extraction failed twice")

                path, length, name = extracted
                segment_paths.append(path)
                segments_used.append(name)
                accumulated += length

            await self._concatenate(segment_paths, output_path, total_duration, tag, created)

        except (EncoderError, EncoderNotFoundError) as e:
            logger.error("Segment assembly failed: %s", e)
            return self._failed(output_path, str(e))

        finally:
            self._cleanup(created)

        logger.info("Background video created: %s (%d segments)", output_path, len(segment_paths))
        return SegmentResult(
            success=True,
            output_path=output_path,
            duration=total_duration,
            segments_used=segments_used,
        )

    def _pick_category(self, categories: List[str], turn: int) -> str:
        """Random over more than two categories, otherwise alternate"""
        if len(categories) > 2:
            return self.rng.choice(categories)
        return categories[turn % len(categories)]

    def _pick_source(self, sources: List[Source], used: Set[str]) -> Source:
        """Prefer unused sources; reset the used set once all are taken"""
        available = [s for s in sources if source_key(s) not in used]
        if not available:
            used.clear()
            available = list(sources)
        source = self.rng.choice(available)
        used.add(source_key(source))
        return source

    def _alternative(self, category: str, failed: Source, pools: Pools) -> Optional[Tuple[str, Source]]:
        """A different source, same category first"""
        key = source_key(failed)
        same = [s for s in pools[category] if source_key(s) != key]
        if same:
            return category, self.rng.choice(same)

        for other, sources in pools.items():
            if other == category:
                continue
            candidates = [s for s in sources if source_key(s) != key]
            if candidates:
                return other, self.rng.choice(candidates)
        return None

    async def _extract_with_retry(
        self,
        category: str,
        source: Source,
        pools: Pools,
        used: Dict[str, Set[str]],
        segment_duration: float,
        tag: str,
        created: List[str]
    ) -> Optional[Tuple[str, float, str]]:
        try:
            return await self._extract(source, segment_duration, tag, created)
        except (EncoderError, OSError, ValueError) as e:
            logger.warning("Segment from %s failed, retrying with another source: %s", source.name, e)

        alternative = self._alternative(category, source, pools)
        if alternative is None:
            logger.error("No alternative source for %s", source.name)
            return None

        retry_category, retry_source = alternative
        used[retry_category].add(source_key(retry_source))
        try:
            return await self._extract(retry_source, segment_duration, tag, created)
        except (EncoderError, OSError, ValueError) as e:
            logger.error("Retry with %s failed: %s", retry_source.name, e)
            return None

    async def _extract(
        self,
        source: Source,
        segment_duration: float,
        tag: str,
        created: List[str]
    ) -> Tuple[str, float, str]:
        """Cut one normalized segment; returns (path, seconds, source name)"""
        local_path = await source.resolve()
        if not os.path.exists(local_path):
            raise OSError(f"Source video not found: {local_path}")

        source_duration = await self.probe.duration(local_path)
        if source_duration and source_duration <= segment_duration:
            start, length = 0.0, source_duration
        elif source_duration:
            start, length = self.rng.uniform(0, source_duration - segment_duration), segment_duration
        else:
            logger.warning("Could not probe %s, using segment length", source.name)
            start, length = 0.0, segment_duration

        segment_path = os.path.join(self.temp_dir, f"segment_{tag}_{len(created)}.mp4")
        created.append(segment_path)

        has_audio = await self.probe.has_audio(local_path)
        cmd = self.extract_command(local_path, segment_path, start, length, has_audio)

        logger.info("Extracting %.1fs from %s (start %.1fs)", length, source.name, start)
        await self.executor.run(cmd, segment_path)

        actual = await self.probe.duration(segment_path)
        return segment_path, actual or length, source.name

    def extract_command(
        self,
        source_path: str,
        segment_path: str,
        start: float,
        length: float,
        has_audio: Optional[bool]
    ) -> List[str]:
        """Re-encode a segment to the canonical canvas format."""
        w, h = self.width, self.height
        cmd = [
            self.executor.encoder.binary_path, "-hide_banner",
            "-ss", format_value(float(start)),
            "-t", format_value(float(length)),
            "-i", source_path,
        ]
        if has_audio:
            audio_in = InputRef(0, "a")
        else:
            cmd.extend(["-f", "lavfi", "-i", "anullsrc=channel_layout=stereo:sample_rate=44100"])
            audio_in = InputRef(1, "a")

        video_out, audio_out = Label("v"), Label("a")
        graph = FilterGraph().add(Stage(
            name="segment video",
            inputs=(InputRef(0),),
            filters=(
                Filter.of("scale", w, h, force_original_aspect_ratio="increase"),
                Filter.of("crop", w, h),
                Filter.of("setsar", 1),
                Filter.of("fps", self.frame_rate),
                Filter.of("format", "yuv420p"),
            ),
            output=video_out,
        )).add(Stage(
            name="segment audio",
            inputs=(audio_in,),
            filters=(
                Filter.of("aformat", sample_rates=44100, channel_layouts="stereo"),
                Filter.of("apad"),
                Filter.of("atrim", duration=float(length)),
            ),
            output=audio_out,
        ))
        graph.validate(video_out, input_count=2 if not has_audio else 1, extra_outputs=(audio_out,))

        cmd.extend([
            "-filter_complex", graph.serialize(),
            "-map", video_out.text(),
            "-map", audio_out.text(),
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-c:a", "aac",
            "-b:a", "128k",
            "-ar", "44100",
            "-ac", "2",
            "-t", format_value(float(length)),
            "-avoid_negative_ts", "make_zero",
            "-y", segment_path,
        ])
        return cmd

    def _generate_concat_file(self, segment_paths: List[str], tag: str) -> str:
        """Write a concat demuxer list for the segments."""
        concat_path = os.path.join(self.temp_dir, f"concat_{tag}.txt")
        with open(concat_path, "w") as f:
            for path in segment_paths:
                abs_path = os.path.abspath(path)
                escaped_path = abs_path.replace("'", "'\\''")
                f.write(f"file '{escaped_path}'\n")
        return concat_path

    async def _concatenate(
        self,
        segment_paths: List[str],
        output_path: str,
        total_duration: float,
        tag: str,
        created: List[str]
    ) -> None:
        concat_path = self._generate_concat_file(segment_paths, tag)
        created.append(concat_path)

        cmd = [
            self.executor.encoder.binary_path, "-hide_banner",
            "-f", "concat",
            "-safe", "0",
            "-i", concat_path,
            "-c", "copy",
            "-t", format_value(float(total_duration)),
            "-y", output_path,
        ]
        await self.executor.run(cmd, output_path)

    def _failed(self, output_path: str, message: str) -> SegmentResult:
        # Never leave a partial or zero-byte background behind
        self._cleanup([output_path])
        return SegmentResult(success=False, error_message=message)

    def _cleanup(self, paths: List[str]) -> None:
        for path in paths:
            if not os.path.exists(path):
                continue
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Could not remove temp file %s: %s", path, e)
