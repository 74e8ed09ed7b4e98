"""
Data models for the slideshow composer.

This module exports all Pydantic models used across the pipeline and API.
"""

from .render import (
    Session,
    Asset,
    Caption,
    TimelineEntry,
    Timeline,
    RenderRequest,
    JobStatus,
    RenderJob,
    RenderResult,
    TERMINAL_STATES,
)

__all__ = [
    "Session",
    "Asset",
    "Caption",
    "TimelineEntry",
    "Timeline",
    "RenderRequest",
    "JobStatus",
    "RenderJob",
    "RenderResult",
    "TERMINAL_STATES",
]
