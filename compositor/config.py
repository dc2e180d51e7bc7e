"""Compositor configuration using pydantic-settings"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Compositor settings loaded from environment variables (COMPOSITOR_*)"""

    # Encoder binaries (None = auto-detect)
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    # Storage
    temp_dir: Optional[str] = None
    output_dir: str = "output"

    # Canvas and timing
    width: int = Field(default=720, gt=0)
    height: int = Field(default=720, gt=0)
    duration: float = Field(default=30.0, gt=0)
    frame_rate: int = Field(default=30, gt=0)
    segment_duration: float = Field(default=5.0, gt=0)

    # Fade envelope
    fade_lead: float = 8.0
    fade_duration: float = Field(default=3.0, gt=0)

    # Overlay videos
    overlay_opacity: float = Field(default=0.5, ge=0, le=1)
    overlay_interval: float = Field(default=10.0, gt=0)

    # Encoding
    preset: str = "medium"
    crf: int = Field(default=23, ge=0, le=51)
    audio_bitrate: str = "192k"
    audio_policy: Literal["require", "optional"] = "require"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="COMPOSITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
