"""
Configuration management.

Centralized environment variable management and validation.
"""

from typing import Literal, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow case-insensitive env var matching
        extra="ignore"
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # LOG_DIR: when set, logs are also written to <log_dir>/app.log (rotated at 100MB)
    log_dir: Optional[str] = None

    # Supabase configuration (only needed for render-by-id)
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    videos_table: str = "videos"

    # External tools
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Working directories: one video-<session> directory per render is created here.
    # Defaults to the system temp directory.
    work_root: Optional[str] = None

    # Asset fetching
    fetch_timeout: float = 60.0
    connect_timeout: float = 10.0
    fetch_attempts: int = 1
    max_concurrent_fetches: int = 8

    # Encoding
    encode_timeout: float = 600.0
    output_width: int = 1280
    output_height: int = 1080
    encode_preset: Literal["fast", "quality"] = "fast"

    # DURATION_POLICY: "strict" fails the job when the audio duration cannot be probed,
    # "fallback" uses FALLBACK_DURATION_SECONDS instead
    duration_policy: Literal["strict", "fallback"] = "strict"
    fallback_duration_seconds: float = 30.0

    # Burned-in subtitle style
    subtitle_font_name: str = "Arial"
    subtitle_font_size: int = 24
    subtitle_primary_colour: str = "&H00FFFFFF"
    subtitle_outline_colour: str = "&H00000000"
    subtitle_border_style: int = 1
    subtitle_outline: int = 2
    subtitle_shadow: int = 0
    subtitle_margin_v: int = 50

    @field_validator("supabase_url")
    @classmethod
    def validate_supabase_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Supabase URL format."""
        if v is None or v == "":
            return None
        if not v.startswith(("http://", "https://")):
            raise ConfigurationError("SUPABASE_URL must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("fetch_attempts", "max_concurrent_fetches")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Counts must allow at least one operation."""
        if v < 1:
            raise ConfigurationError("FETCH_ATTEMPTS and MAX_CONCURRENT_FETCHES must be >= 1")
        return v

    @field_validator("fetch_timeout", "connect_timeout", "encode_timeout", "fallback_duration_seconds")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        """Timeouts and fallback duration must be positive."""
        if v <= 0:
            raise ConfigurationError("Timeouts and FALLBACK_DURATION_SECONDS must be > 0")
        return v

    @field_validator("output_width", "output_height")
    @classmethod
    def validate_even_dimension(cls, v: int) -> int:
        """H.264 with yuv420p needs even canvas dimensions."""
        if v <= 0 or v % 2 != 0:
            raise ConfigurationError("OUTPUT_WIDTH and OUTPUT_HEIGHT must be positive even numbers")
        return v


# Singleton instance
try:
    settings = Settings()
except Exception as e:
    # Re-raise as ConfigurationError for consistency
    if isinstance(e, ConfigurationError):
        raise
    raise ConfigurationError(f"Failed to load configuration: {str(e)}") from e
