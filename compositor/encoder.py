"""
Encoder binary discovery

FFmpeg and ffprobe are located once and carried around in an
EncoderConfig so nothing downstream probes the platform again.
"""

import asyncio
import glob
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


class EncoderNotFoundError(Exception):
    """Raised when FFmpeg is not installed or not in PATH."""
    pass


@dataclass(frozen=True)
class EncoderConfig:
    """
    Resolved encoder binaries.

    Attributes:
        binary_path: FFmpeg executable
        probe_binary_path: FFprobe executable (None if it could not be found)
    """
    binary_path: str
    probe_binary_path: Optional[str] = None


def find_ffmpeg() -> str:
    """Find FFmpeg executable."""
    ffmpeg = shutil.which("ffmpeg")
    if ffmpeg:
        return ffmpeg

    # Check common locations on Windows
    common_paths = [
        r"C:\ffmpeg\bin\ffmpeg.exe",
        r"C:\Program Files\ffmpeg\bin\ffmpeg.exe",
        r"C:\Program Files (x86)\ffmpeg\bin\ffmpeg.exe",
        "/opt/homebrew/bin/ffmpeg",
        "/usr/local/bin/ffmpeg",
    ]
    for path in common_paths:
        if os.path.exists(path):
            return path

    # Check WinGet installation location
    winget_base = os.path.expandvars(r"%LOCALAPPDATA%\Microsoft\WinGet\Packages")
    if os.path.exists(winget_base):
        patterns = [
            os.path.join(winget_base, "Gyan.FFmpeg*", "ffmpeg-*", "bin", "ffmpeg.exe"),
            os.path.join(winget_base, "*FFmpeg*", "*", "bin", "ffmpeg.exe"),
        ]
        for pattern in patterns:
            matches = glob.glob(pattern)
            if matches:
                return matches[0]

    # Not found - the executor raises EncoderNotFoundError on first use
    return "ffmpeg"


def find_ffprobe(ffmpeg_path: str) -> Optional[str]:
    """Find FFprobe, preferring the one installed next to FFmpeg."""
    ffmpeg_dir = os.path.dirname(ffmpeg_path)
    if ffmpeg_dir:
        for name in ("ffprobe", "ffprobe.exe"):
            candidate = os.path.join(ffmpeg_dir, name)
            if os.path.exists(candidate):
                return candidate

    return shutil.which("ffprobe")


def detect_encoder(
    ffmpeg_path: Optional[str] = None,
    ffprobe_path: Optional[str] = None
) -> EncoderConfig:
    """
    Resolve the encoder binaries.

    Args:
        ffmpeg_path: Explicit FFmpeg path (skips detection)
        ffprobe_path: Explicit FFprobe path (skips detection)

    Returns:
        EncoderConfig with both paths resolved
    """
    binary = ffmpeg_path or find_ffmpeg()
    probe = ffprobe_path or find_ffprobe(binary)
    logger.debug("Using ffmpeg=%s ffprobe=%s", binary, probe)
    return EncoderConfig(binary_path=binary, probe_binary_path=probe)


def encoder_from_settings(settings) -> EncoderConfig:
    """Resolve the encoder once from compositor settings."""
    return detect_encoder(settings.ffmpeg_path, settings.ffprobe_path)


async def check_ffmpeg_installed(encoder: EncoderConfig) -> Dict[str, Any]:
    """
    Check if FFmpeg is properly installed.

    Returns:
        Dict with installation status, version info and drawtext support
    """
    try:
        process = await asyncio.create_subprocess_exec(
            encoder.binary_path, "-hide_banner", "-filters",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        filters_out, _ = await process.communicate()

        process = await asyncio.create_subprocess_exec(
            encoder.binary_path, "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        stdout, _ = await process.communicate()

        if process.returncode == 0:
            version_line = stdout.decode(errors="replace").split('\n')[0]
            return {
                "installed": True,
                "path": encoder.binary_path,
                "probe_path": encoder.probe_binary_path,
                "version": version_line,
                "drawtext": " drawtext " in filters_out.decode(errors="replace"),
            }
    except FileNotFoundError:
        pass

    return {
        "installed": False,
        "path": None,
        "probe_path": encoder.probe_binary_path,
        "version": None,
        "drawtext": False,
        "error": "FFmpeg not found. Please install FFmpeg and add it to your PATH."
    }
