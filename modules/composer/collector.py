"""
Output collection for composer module.
"""
from pathlib import Path
from typing import Optional

from shared.errors import EncodeError
from shared.logging import get_logger
from shared.models import RenderResult

from .config import OUTPUT_CONTENT_TYPE

logger = get_logger("composer.collector")


def collect_output(
    output_path: Path,
    duration: Optional[float] = None,
    images_used: int = 0
) -> RenderResult:
    """
    Read the encoded file into a RenderResult.

    Raises:
        EncodeError: If the encoder produced no output or an empty file
    """
    if not output_path.exists():
        raise EncodeError(f"Encoder did not produce {output_path.name}")

    video_bytes = output_path.read_bytes()
    if not video_bytes:
        raise EncodeError(f"Encoder produced an empty {output_path.name}")

    logger.info(
        f"Video size: {len(video_bytes) / 1024 / 1024:.2f} MB",
        extra={"size": len(video_bytes)}
    )
    return RenderResult(
        video=video_bytes,
        content_type=OUTPUT_CONTENT_TYPE,
        size=len(video_bytes),
        duration=duration,
        images_used=images_used
    )
