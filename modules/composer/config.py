"""
Composer configuration.

Immutable configuration injected into the pipeline and orchestrator:
tool paths, timeouts, output canvas, encode preset and subtitle style.
"""
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.config import Settings
from shared.errors import ConfigurationError

OUTPUT_VIDEO_CODEC = "libx264"
OUTPUT_AUDIO_CODEC = "aac"
OUTPUT_PIXEL_FORMAT = "yuv420p"
OUTPUT_CONTENT_TYPE = "video/mp4"


class EncodePreset(BaseModel):
    """x264 speed/quality tier."""

    model_config = ConfigDict(frozen=True)

    name: str
    x264_preset: str
    crf: Optional[int] = None  # None keeps the encoder default
    audio_bitrate: str


ENCODE_PRESETS: Dict[str, EncodePreset] = {
    "fast": EncodePreset(name="fast", x264_preset="fast", crf=23, audio_bitrate="128k"),
    "quality": EncodePreset(name="quality", x264_preset="medium", crf=None, audio_bitrate="192k"),
}


class SubtitleStyle(BaseModel):
    """Fixed style for burned-in captions (ASS force_style fields)."""

    model_config = ConfigDict(frozen=True)

    font_name: str = "Arial"
    font_size: int = 24
    primary_colour: str = "&H00FFFFFF"
    outline_colour: str = "&H00000000"
    border_style: int = 1
    outline: int = 2
    shadow: int = 0
    margin_v: int = 50

    def force_style(self) -> str:
        """Render as the comma-separated value of the subtitles filter's force_style option."""
        return ",".join([
            f"FontName={self.font_name}",
            f"FontSize={self.font_size}",
            f"PrimaryColour={self.primary_colour}",
            f"OutlineColour={self.outline_colour}",
            f"BorderStyle={self.border_style}",
            f"Outline={self.outline}",
            f"Shadow={self.shadow}",
            f"MarginV={self.margin_v}",
        ])


class ComposerConfig(BaseModel):
    """Everything the composer needs, passed in explicitly at construction."""

    model_config = ConfigDict(frozen=True)

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    work_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))

    fetch_timeout: float = Field(default=60.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    fetch_attempts: int = Field(default=1, ge=1)
    fetch_retry_delay: float = Field(default=1.0, ge=0)
    max_concurrent_fetches: int = Field(default=8, ge=1)

    encode_timeout: float = Field(default=600.0, gt=0)
    probe_timeout: float = Field(default=10.0, gt=0)
    output_width: int = Field(default=1280, gt=0)
    output_height: int = Field(default=1080, gt=0)
    encode_preset: Literal["fast", "quality"] = "fast"

    duration_policy: Literal["strict", "fallback"] = "strict"
    fallback_duration_seconds: float = Field(default=30.0, gt=0)

    subtitle_style: SubtitleStyle = Field(default_factory=SubtitleStyle)

    @property
    def preset(self) -> EncodePreset:
        return ENCODE_PRESETS[self.encode_preset]

    @classmethod
    def from_settings(cls, settings: Settings) -> "ComposerConfig":
        """Build composer config from application settings."""
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            work_root=Path(settings.work_root) if settings.work_root else Path(tempfile.gettempdir()),
            fetch_timeout=settings.fetch_timeout,
            connect_timeout=settings.connect_timeout,
            fetch_attempts=settings.fetch_attempts,
            max_concurrent_fetches=settings.max_concurrent_fetches,
            encode_timeout=settings.encode_timeout,
            output_width=settings.output_width,
            output_height=settings.output_height,
            encode_preset=settings.encode_preset,
            duration_policy=settings.duration_policy,
            fallback_duration_seconds=settings.fallback_duration_seconds,
            subtitle_style=SubtitleStyle(
                font_name=settings.subtitle_font_name,
                font_size=settings.subtitle_font_size,
                primary_colour=settings.subtitle_primary_colour,
                outline_colour=settings.subtitle_outline_colour,
                border_style=settings.subtitle_border_style,
                outline=settings.subtitle_outline,
                shadow=settings.subtitle_shadow,
                margin_v=settings.subtitle_margin_v,
            ),
        )

    def validate_tools(self) -> None:
        """
        Check that the encoder and prober binaries resolve.

        Raises:
            ConfigurationError: If either tool cannot be found
        """
        missing = [
            tool for tool in (self.ffmpeg_path, self.ffprobe_path)
            if shutil.which(tool) is None
        ]
        if missing:
            raise ConfigurationError(
                f"Required tool(s) not found: {', '.join(missing)}. Install FFmpeg:\n"
                "  macOS: brew install ffmpeg\n"
                "  Linux: apt-get install ffmpeg or yum install ffmpeg\n"
                "  Windows: Download from https://ffmpeg.org/"
            )
