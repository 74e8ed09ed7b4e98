"""
Render endpoints.

Render a stored video job, or explicitly supplied audio and images, into an
MP4 returned inline as base64.
"""

import base64
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from modules.composer import SlideshowComposer
from shared.errors import ConfigurationError, JobNotFoundError, PipelineError, ValidationError
from shared.logging import get_logger
from shared.models import RenderResult

from api_gateway.dependencies import get_composer, get_job_store
from api_gateway.services.job_store import JobStore
from api_gateway.services.render_service import render_by_id, render_explicit

logger = get_logger(__name__)

router = APIRouter()


class RenderVideoRequest(BaseModel):
    """Render a stored job."""
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId", min_length=1)


class RenderDirectRequest(BaseModel):
    """Render explicit inputs; duration is the narration length in seconds."""
    model_config = ConfigDict(populate_by_name=True)

    audio_url: str = Field(..., alias="audioUrl", min_length=1)
    images: List[str] = Field(..., min_length=1)
    duration: Optional[float] = Field(default=None, gt=0)


class RenderVideoResponse(BaseModel):
    """Rendered MP4, base64-encoded."""
    model_config = ConfigDict(populate_by_name=True)

    video: str
    content_type: str = Field(..., alias="contentType")
    size: int


def _to_response(result: RenderResult) -> RenderVideoResponse:
    return RenderVideoResponse(
        video=base64.b64encode(result.video).decode("ascii"),
        contentType=result.content_type,
        size=result.size
    )


def _to_http_error(error: PipelineError) -> HTTPException:
    if isinstance(error, JobNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, ConfigurationError):
        logger.error(f"Render service misconfigured: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to render video: {error}"
    )


@router.post("/render-video", response_model=RenderVideoResponse, response_model_by_alias=True)
async def render_video(
    body: RenderVideoRequest,
    composer: SlideshowComposer = Depends(get_composer),
    job_store: JobStore = Depends(get_job_store)
):
    """
    Render the stored video job identified by videoId.

    Returns:
        {"video": base64 MP4, "contentType": "video/mp4", "size": bytes}
    """
    logger.info("Render requested", extra={"job_id": body.video_id})
    try:
        result = await render_by_id(body.video_id, job_store, composer)
    except PipelineError as e:
        raise _to_http_error(e)
    return _to_response(result)


@router.post("/render-video/direct", response_model=RenderVideoResponse, response_model_by_alias=True)
async def render_video_direct(
    body: RenderDirectRequest,
    composer: SlideshowComposer = Depends(get_composer)
):
    """
    Render caller-supplied audio and images.

    Returns:
        {"video": base64 MP4, "contentType": "video/mp4", "size": bytes}
    """
    logger.info("Direct render requested", extra={"images": len(body.images)})
    try:
        result = await render_explicit(body.audio_url, body.images, body.duration, composer)
    except PipelineError as e:
        raise _to_http_error(e)
    return _to_response(result)
