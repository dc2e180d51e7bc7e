"""
Async FFmpeg process executor

Runs an argument vector, streams progress from stderr and decides success
from the exit code and the output file.
"""

import asyncio
import logging
import os
import re
from collections import deque
from typing import Callable, List, Optional

from compositor.encoder import EncoderConfig, EncoderNotFoundError


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

TIME_PATTERN = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
LINE_SPLIT = re.compile(r"[\r\n]+")

FAILURE_MARKERS = (
    "error",
    "invalid",
    "failed",
    "no such",
    "not found",
    "cannot",
    "unable",
)

DIAGNOSTIC_LINES = 10
TAIL_LINES = 200


class EncoderError(Exception):
    """
    Raised when an FFmpeg run fails.

    Attributes:
        returncode: Process exit code (None if the process never ran)
        diagnostics: Relevant stderr lines
    """

    def __init__(self, message: str, returncode: Optional[int] = None, diagnostics: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.diagnostics = diagnostics


def parse_progress_time(line: str) -> Optional[float]:
    """Seconds from the last time=HH:MM:SS.xx marker in a stderr line"""
    matches = TIME_PATTERN.findall(line)
    if not matches:
        return None
    hours, minutes, seconds = matches[-1]
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def diagnostic_excerpt(lines: List[str], limit: int = DIAGNOSTIC_LINES) -> str:
    """Last lines mentioning a failure marker, else the stderr tail"""
    flagged = [l for l in lines if any(m in l.lower() for m in FAILURE_MARKERS)]
    chosen = flagged[-limit:] if flagged else lines[-limit:]
    return "\n".join(chosen)


class ProcessExecutor:
    """
    Runs FFmpeg commands.

    Usage:
        executor = ProcessExecutor(encoder)
        await executor.run(cmd, "out.mp4", on_progress=print)
    """

    def __init__(self, encoder: EncoderConfig):
        self.encoder = encoder

    async def run(
        self,
        args: List[str],
        output_path: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> str:
        """
        Run a command to completion.

        Args:
            args: Full argument vector, binary first
            output_path: File the command is expected to produce
            on_progress: Called with seconds encoded so far

        Returns:
            output_path on success

        Raises:
            EncoderNotFoundError: If the binary cannot be executed
            EncoderError: On non-zero exit or missing/empty output
        """
        logger.debug("Running: %s", " ".join(args))

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise EncoderNotFoundError(
                f"FFmpeg not found at '{args[0]}'. Please install FFmpeg and add it to your PATH."
            ) from e

        lines = await self._read_stderr(process.stderr, on_progress)
        returncode = await process.wait()

        if returncode != 0:
            excerpt = diagnostic_excerpt(lines)
            raise EncoderError(
                f"FFmpeg exited with code {returncode}: {excerpt}",
                returncode=returncode,
                diagnostics=excerpt,
            )

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            excerpt = diagnostic_excerpt(lines)
            raise EncoderError(
                f"FFmpeg reported success but output is missing or empty: {output_path}",
                returncode=returncode,
                diagnostics=excerpt,
            )

        return output_path

    async def _read_stderr(
        self,
        stream: asyncio.StreamReader,
        on_progress: Optional[ProgressCallback]
    ) -> List[str]:
        """Consume stderr in chunks; FFmpeg ends progress lines with \\r"""
        tail = deque(maxlen=TAIL_LINES)
        pending = ""

        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            pending += chunk.decode(errors="replace")
            parts = LINE_SPLIT.split(pending)
            pending = parts.pop()
            for line in parts:
                self._handle_line(line, tail, on_progress)

        if pending:
            self._handle_line(pending, tail, on_progress)
        return list(tail)

    def _handle_line(self, line: str, tail: deque, on_progress: Optional[ProgressCallback]) -> None:
        line = line.strip()
        if not line:
            return
        tail.append(line)

        if on_progress is not None:
            seconds = parse_progress_time(line)
            if seconds is not None:
                on_progress(seconds)
