"""
Narration duration resolution.

Reads the audio container metadata (no full decode) with mutagen, asking
ffprobe when mutagen does not recognise the container. What happens when
both fail is an explicit policy: "strict" raises ProbeError, "fallback"
returns the configured fallback duration.
"""
import asyncio
import io
from pathlib import Path
from typing import Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from shared.errors import ProbeError
from shared.logging import get_logger

from .config import ComposerConfig

logger = get_logger("composer.duration")


def probe_metadata(audio_bytes: bytes) -> Optional[float]:
    """
    Read duration from container metadata with mutagen.

    Returns:
        Duration in seconds, or None if the container is not recognised
    """
    file_obj = io.BytesIO(audio_bytes)
    file_obj.name = "audio_file"
    try:
        audio_obj = MutagenFile(file_obj)
    except MutagenError as e:
        logger.debug(f"mutagen could not parse audio: {e}")
        return None
    if audio_obj is None or audio_obj.info is None:
        return None
    length = getattr(audio_obj.info, "length", None)
    if not length or length <= 0:
        return None
    return float(length)


class DurationResolver:
    """Determines the authoritative playback duration of the narration track."""

    def __init__(self, config: ComposerConfig):
        self.config = config

    async def _probe_with_ffprobe(self, audio_path: Path) -> Optional[float]:
        """Ask ffprobe for format=duration. Returns None on any failure."""
        cmd = [
            self.config.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(audio_path)
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            logger.warning(f"ffprobe could not be started: {e}")
            return None
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.probe_timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"ffprobe timed out after {self.config.probe_timeout}s")
            return None
        if process.returncode != 0:
            logger.warning(
                f"ffprobe failed: {stderr.decode(errors='replace').strip()}",
                extra={"returncode": process.returncode}
            )
            return None
        try:
            duration = float(stdout.decode().strip())
        except ValueError:
            return None
        return duration if duration > 0 else None

    async def resolve(self, audio_bytes: bytes, audio_path: Optional[Path] = None) -> float:
        """
        Resolve the narration duration.

        Args:
            audio_bytes: Audio file contents
            audio_path: Location of the same bytes on disk, enables the ffprobe probe

        Returns:
            Duration in seconds

        Raises:
            ProbeError: If duration cannot be read and the policy is "strict"
        """
        duration = probe_metadata(audio_bytes)
        source = "metadata"

        if duration is None and audio_path is not None:
            duration = await self._probe_with_ffprobe(audio_path)
            source = "ffprobe"

        if duration is not None:
            logger.info(
                f"Resolved audio duration {duration:.3f}s from {source}",
                extra={"duration": duration, "source": source}
            )
            return duration

        if self.config.duration_policy == "fallback":
            logger.warning(
                f"Could not probe audio duration, using fallback {self.config.fallback_duration_seconds}s",
                extra={"duration": self.config.fallback_duration_seconds, "source": "fallback"}
            )
            return self.config.fallback_duration_seconds

        raise ProbeError(
            f"Could not read audio duration from metadata ({len(audio_bytes)} bytes)"
        )
