"""
Static background fallback

When no background video can be assembled, a single solid-colour frame is
rendered with the lavfi colour source; the colour follows keywords in the
background prompt.
"""

import logging
import os
import tempfile
import time
import uuid
from typing import Optional, Tuple

from compositor.executor import EncoderError, ProcessExecutor
from compositor.encoder import EncoderNotFoundError
from compositor.models.render import BackgroundResult


logger = logging.getLogger(__name__)

SKYLINE_COLOR = "0x87CEEB"
ABSTRACT_COLOR = "0x2D1B4E"
NEON_COLOR = "0x000000"

# First matching keyword group wins
KEYWORD_COLORS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("chicago", "skyline"), SKYLINE_COLOR),
    (("abstract", "geometric"), ABSTRACT_COLOR),
    (("neon", "cyber"), NEON_COLOR),
)


def color_for_prompt(prompt: Optional[str]) -> str:
    """Pick the fallback colour from prompt keywords (sky blue by default)."""
    if prompt:
        lowered = prompt.lower()
        for keywords, color in KEYWORD_COLORS:
            if any(k in lowered for k in keywords):
                return color
    return SKYLINE_COLOR


class BackgroundFactory:
    """Renders one-frame PNG backgrounds."""

    def __init__(self, executor: ProcessExecutor, temp_dir: Optional[str] = None):
        self.executor = executor
        self.temp_dir = temp_dir or tempfile.gettempdir()

    async def generate(
        self,
        prompt: Optional[str],
        width: int = 720,
        height: int = 720
    ) -> BackgroundResult:
        """
        Render a solid-colour background frame.

        Args:
            prompt: Background description, used for keyword matching only
            width: Frame width
            height: Frame height

        Returns:
            BackgroundResult with the PNG path
        """
        color = color_for_prompt(prompt)
        os.makedirs(self.temp_dir, exist_ok=True)
        output_path = os.path.join(
            self.temp_dir, f"background_{int(time.time())}_{uuid.uuid4().hex[:8]}.png"
        )

        cmd = [
            self.executor.encoder.binary_path,
            "-hide_banner",
            "-f", "lavfi",
            "-i", f"color=c={color}:s={width}x{height}:d=1",
            "-frames:v", "1",
            "-y", output_path,
        ]

        try:
            await self.executor.run(cmd, output_path)
        except (EncoderError, EncoderNotFoundError) as e:
            logger.error("Static background generation failed: %s", e)
            return BackgroundResult(success=False, color=color, error_message=str(e))

        logger.info("Static background created (%s): %s", color, output_path)
        return BackgroundResult(success=True, output_path=output_path, color=color)
