"""
Job store.

Resolves a stored video job into the render inputs: audio reference,
ordered image references, captions and the show-captions flag.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.database import DatabaseClient
from shared.errors import JobNotFoundError, ValidationError
from shared.logging import get_logger
from shared.models import Caption, RenderRequest

logger = get_logger(__name__)


def _as_list(value: Any, field: str) -> List[Any]:
    """Columns may hold JSON arrays or their string encoding."""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Column '{field}' is not valid JSON: {e}") from e
    if not isinstance(value, list):
        raise ValidationError(f"Column '{field}' must be a list, got {type(value).__name__}")
    return value


def request_from_record(record: Dict[str, Any]) -> RenderRequest:
    """
    Build a RenderRequest from a stored job row.

    Raises:
        ValidationError: If the row is missing audio/images or has malformed captions
    """
    job_id = str(record.get("id", ""))
    audio_url = record.get("audio_url")
    if not audio_url:
        raise ValidationError(f"Video {job_id} has no audio")

    images = [ref for ref in _as_list(record.get("image_urls"), "image_urls") if ref]
    if not images:
        raise ValidationError(f"Video {job_id} has no images")

    try:
        captions = [Caption(**item) for item in _as_list(record.get("captions"), "captions")]
        return RenderRequest(
            audio=audio_url,
            images=images,
            captions=captions,
            show_captions=bool(record.get("show_captions", False)),
            job_id=job_id or None
        )
    except (PydanticValidationError, TypeError) as e:
        raise ValidationError(f"Video {job_id} has invalid render data: {e}") from e


class JobStore:
    """Read-only lookup of stored video jobs."""

    def __init__(self, db_client: DatabaseClient, table: str = "videos"):
        self.db_client = db_client
        self.table = table

    async def get_render_request(self, video_id: str) -> RenderRequest:
        """
        Resolve video_id into a RenderRequest.

        Raises:
            JobNotFoundError: If no job has this id
            ValidationError: If the stored job is incomplete
        """
        record: Optional[Dict[str, Any]] = await self.db_client.fetch_one(self.table, "id", video_id)
        if record is None:
            raise JobNotFoundError(f"Video {video_id} not found")
        request = request_from_record(record)
        logger.info(
            f"Loaded video {video_id}: {len(request.images)} images, {len(request.captions)} captions",
            extra={"job_id": video_id, "images": len(request.images), "show_captions": request.show_captions}
        )
        return request
