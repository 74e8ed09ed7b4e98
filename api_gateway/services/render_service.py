"""
Render entry points.

Two thin adapters over the one shared composer: render a stored job by id,
or render explicitly supplied inputs.
"""

from typing import List, Optional

from modules.composer import SlideshowComposer
from shared.logging import get_logger, set_job_id
from shared.models import RenderRequest, RenderResult

from api_gateway.services.job_store import JobStore

logger = get_logger(__name__)


async def render_by_id(video_id: str, job_store: JobStore, composer: SlideshowComposer) -> RenderResult:
    """Resolve the job's assets from the store and render them."""
    set_job_id(video_id)
    request = await job_store.get_render_request(video_id)
    return await composer.render(request)


async def render_explicit(
    audio_url: str,
    images: List[str],
    duration: Optional[float],
    composer: SlideshowComposer
) -> RenderResult:
    """Render caller-supplied audio, images and declared duration (no captions)."""
    logger.info(
        f"Rendering {len(images)} explicit images",
        extra={"images": len(images), "duration": duration}
    )
    request = RenderRequest(audio=audio_url, images=images, duration=duration)
    return await composer.render(request)
