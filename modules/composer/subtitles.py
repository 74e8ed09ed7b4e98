"""
SRT subtitle encoding.

Captions are written in the order supplied; overlapping captions are left
as they are.
"""
from pathlib import Path
from typing import List

from shared.models import Caption


def format_timestamp(ms: int) -> str:
    """
    Format milliseconds as HH:MM:SS,mmm.

    >>> format_timestamp(3661000)
    '01:01:01,000'
    """
    total_seconds = ms // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    millis = ms % 1000
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def encode_subtitles(captions: List[Caption]) -> bytes:
    """Encode captions as an SRT track (UTF-8)."""
    blocks = []
    for number, caption in enumerate(captions, start=1):
        blocks.append(
            f"{number}\n"
            f"{format_timestamp(caption.start)} --> {format_timestamp(caption.end)}\n"
            f"{caption.text}\n"
            "\n"
        )
    return "".join(blocks).encode("utf-8")


def write_subtitles(captions: List[Caption], destination: Path) -> Path:
    """Write the SRT track for captions to destination and return it."""
    destination.write_bytes(encode_subtitles(captions))
    return destination
