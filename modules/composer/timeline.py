"""
Timeline building for composer module.

Splits the narration duration evenly across the fetched images and writes
the concat-demuxer manifest the encoder reads.
"""
from pathlib import Path
from typing import List

from shared.errors import EmptyTimelineError
from shared.logging import get_logger
from shared.models import Timeline, TimelineEntry

logger = get_logger("composer.timeline")


def build_timeline(images: List[Path], total_duration: float) -> Timeline:
    """
    Give every image an equal share of total_duration.

    Args:
        images: Ordered image files
        total_duration: Narration length in seconds

    Returns:
        Timeline preserving image order

    Raises:
        EmptyTimelineError: If there are no images or the duration is not positive
    """
    if not images:
        raise EmptyTimelineError("Cannot build a timeline without images")
    if total_duration <= 0:
        raise EmptyTimelineError(f"Cannot build a timeline for duration {total_duration}s")

    share = total_duration / len(images)
    timeline = Timeline(entries=[TimelineEntry(path=path, duration=share) for path in images])
    logger.info(
        f"Built timeline: {len(images)} images, {share:.2f}s each",
        extra={"images": len(images), "image_duration": share, "total_duration": total_duration}
    )
    return timeline


def _manifest_path(path: Path) -> str:
    # concat demuxer: forward slashes, single quotes closed/escaped/reopened
    normalized = str(path.absolute()).replace("\\", "/")
    return normalized.replace("'", "'\\''")


def render_manifest(timeline: Timeline) -> str:
    """
    Render the concat manifest.

    Each image is written as a file line followed by its duration line; the
    last image is then repeated without a duration, which the concat demuxer
    needs to honour the final duration.
    """
    lines = []
    for entry in timeline.entries:
        lines.append(f"file '{_manifest_path(entry.path)}'")
        lines.append(f"duration {entry.duration:.3f}")
    lines.append(f"file '{_manifest_path(timeline.entries[-1].path)}'")
    return "\n".join(lines) + "\n"


def write_manifest(timeline: Timeline, destination: Path) -> Path:
    """Write the concat manifest to destination and return it."""
    destination.write_text(render_manifest(timeline), encoding="utf-8")
    return destination
