"""FFprobe queries: duration, audio presence, resolution"""

import asyncio
import logging
import os
from typing import List, Optional, Tuple

from compositor.encoder import EncoderConfig


logger = logging.getLogger(__name__)


class MediaProbe:
    """Thin async wrapper around ffprobe."""

    def __init__(self, encoder: EncoderConfig):
        self.encoder = encoder

    async def _run(self, args: List[str]) -> Optional[str]:
        if not self.encoder.probe_binary_path:
            logger.warning("ffprobe not available, cannot probe media")
            return None

        cmd = [self.encoder.probe_binary_path, "-v", "error", *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
            stdout, stderr = await process.communicate()
        except FileNotFoundError:
            logger.warning("ffprobe not found at %s", self.encoder.probe_binary_path)
            return None

        if process.returncode != 0:
            logger.debug("ffprobe failed: %s", stderr.decode(errors="replace").strip())
            return None
        return stdout.decode(errors="replace").strip()

    async def duration(self, path: str) -> Optional[float]:
        """Get duration of a media file in seconds."""
        if not os.path.exists(path):
            return None

        out = await self._run([
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            path
        ])
        try:
            return float(out) if out else None
        except ValueError:
            return None

    async def has_audio(self, path: str) -> Optional[bool]:
        """
        True if the file has at least one audio stream.

        Returns None when ffprobe is unavailable or fails, so callers can
        tell an unknown answer from a confirmed silent file.
        """
        if not os.path.exists(path):
            return False

        out = await self._run([
            "-select_streams", "a",
            "-show_entries", "stream=index",
            "-of", "csv=p=0",
            path
        ])
        if out is None:
            return None
        return bool(out)

    async def video_size(self, path: str) -> Optional[Tuple[int, int]]:
        """Width and height of the first video stream."""
        if not os.path.exists(path):
            return None

        out = await self._run([
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height",
            "-of", "csv=s=x:p=0",
            path
        ])
        if not out:
            return None
        try:
            width, height = out.splitlines()[0].split("x")[:2]
            return int(width), int(height)
        except ValueError:
            return None
