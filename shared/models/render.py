"""
Render data models.

Defines the session, asset, timeline, caption, job and result models shared
by the composer pipeline and the API gateway.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _new_session_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Exclusive working area of a single render invocation."""

    id: str = Field(default_factory=_new_session_id)
    directory: Path
    created_at: datetime = Field(default_factory=_utcnow)


class Asset(BaseModel):
    """Input reference (remote URL or data URL) and, once fetched, its local file."""

    reference: str
    kind: Literal["audio", "image"]
    index: int = Field(default=0, ge=0, description="Position in the input list")
    path: Optional[Path] = None
    size: int = Field(default=0, ge=0, description="Fetched size in bytes")

    @property
    def fetched(self) -> bool:
        return self.path is not None


class Caption(BaseModel):
    """Timed caption, offsets in milliseconds."""

    text: str
    start: int = Field(ge=0, description="Start offset in ms")
    end: int = Field(ge=0, description="End offset in ms")
    confidence: Optional[float] = None

    @model_validator(mode="after")
    def check_range(self) -> "Caption":
        if self.start >= self.end:
            raise ValueError(f"Caption start ({self.start}) must be before end ({self.end})")
        return self


class TimelineEntry(BaseModel):
    """One image shown for `duration` seconds."""

    model_config = ConfigDict(frozen=True)

    path: Path
    duration: float = Field(gt=0, description="Display duration in seconds")


class Timeline(BaseModel):
    """Ordered display schedule; durations sum to the narration length."""

    model_config = ConfigDict(frozen=True)

    entries: List[TimelineEntry] = Field(min_length=1)

    @property
    def total_duration(self) -> float:
        return sum(entry.duration for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class RenderRequest(BaseModel):
    """Everything the pipeline needs to render one video."""

    audio: str = Field(min_length=1, description="Audio reference (URL or data URL)")
    images: List[str] = Field(min_length=1, description="Ordered image references")
    captions: List[Caption] = Field(default_factory=list)
    show_captions: bool = False
    duration: Optional[float] = Field(
        default=None,
        gt=0,
        description="Caller-declared narration length in seconds; probed when absent"
    )
    job_id: Optional[str] = None

    @property
    def wants_subtitles(self) -> bool:
        return self.show_captions and len(self.captions) > 0


class JobStatus(str, Enum):
    """RenderJob lifecycle states."""

    CREATED = "created"
    FETCHING_ASSETS = "fetching_assets"
    ASSETS_READY = "assets_ready"
    INSUFFICIENT_ASSETS = "insufficient_assets"
    BUILDING_TIMELINE = "building_timeline"
    SUBTITLES_SKIPPED = "subtitles_skipped"
    SUBTITLES_ENCODED = "subtitles_encoded"
    ENCODING = "encoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.INSUFFICIENT_ASSETS,
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
})

# Any non-terminal state may additionally move to FAILED
ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.CREATED: frozenset({JobStatus.FETCHING_ASSETS}),
    JobStatus.FETCHING_ASSETS: frozenset({JobStatus.ASSETS_READY, JobStatus.INSUFFICIENT_ASSETS}),
    JobStatus.ASSETS_READY: frozenset({JobStatus.BUILDING_TIMELINE}),
    JobStatus.BUILDING_TIMELINE: frozenset({JobStatus.SUBTITLES_SKIPPED, JobStatus.SUBTITLES_ENCODED}),
    JobStatus.SUBTITLES_SKIPPED: frozenset({JobStatus.ENCODING}),
    JobStatus.SUBTITLES_ENCODED: frozenset({JobStatus.ENCODING}),
    JobStatus.ENCODING: frozenset({JobStatus.SUCCEEDED}),
}


class RenderJob(BaseModel):
    """State of one render: session, assets, timeline, captions and lifecycle."""

    session: Session
    audio: Optional[Asset] = None
    images: List[Asset] = Field(default_factory=list)
    timeline: Optional[Timeline] = None
    captions: List[Caption] = Field(default_factory=list)
    show_captions: bool = False
    status: JobStatus = JobStatus.CREATED
    history: List[JobStatus] = Field(default_factory=lambda: [JobStatus.CREATED])
    error: Optional[str] = None

    def transition(self, new_status: JobStatus) -> None:
        """
        Move to `new_status`.

        Raises:
            ValueError: If the move is not allowed from the current state
        """
        if self.status.terminal:
            raise ValueError(f"Job already finished with status '{self.status.value}'")
        allowed = ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed and new_status is not JobStatus.FAILED:
            raise ValueError(
                f"Illegal transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status
        self.history.append(new_status)

    def fail(self, error: BaseException) -> None:
        """Record `error` and move to FAILED unless already terminal."""
        self.error = str(error)
        if not self.status.terminal:
            self.transition(JobStatus.FAILED)

    @property
    def usable_images(self) -> List[Asset]:
        return [asset for asset in self.images if asset.fetched]


class RenderResult(BaseModel):
    """Final artifact. Immutable; ownership passes to the caller."""

    model_config = ConfigDict(frozen=True)

    video: bytes = Field(repr=False)
    content_type: str = "video/mp4"
    size: int = Field(ge=0, description="Size in bytes")
    duration: Optional[float] = Field(default=None, description="Timeline duration in seconds")
    images_used: int = 0
