"""
Main entry point for composer module.

Orchestrates one render: fetches assets, resolves the narration duration,
builds the timeline and manifest, writes subtitles when enabled, encodes,
and collects the output. The session directory is removed on every exit
path.
"""
import asyncio
import time
from typing import Callable, List, Optional, Tuple

from shared.config import settings
from shared.errors import InsufficientAssetsError, PipelineError
from shared.logging import get_logger, set_job_id
from shared.models import Asset, JobStatus, RenderJob, RenderRequest, RenderResult

from .collector import collect_output
from .config import ComposerConfig
from .downloader import AssetFetcher
from .duration import DurationResolver
from .encoder import CompositionOrchestrator, ProgressSink
from .session import RenderSession, open_session
from .subtitles import write_subtitles
from .timeline import build_timeline, write_manifest

logger = get_logger("composer.process")

StatusSink = Callable[[JobStatus], None]


class SlideshowComposer:
    """Shared pipeline core behind both render entry points."""

    def __init__(
        self,
        config: ComposerConfig,
        fetcher: Optional[AssetFetcher] = None,
        resolver: Optional[DurationResolver] = None,
        orchestrator: Optional[CompositionOrchestrator] = None
    ):
        self.config = config
        self.fetcher = fetcher or AssetFetcher(config)
        self.resolver = resolver or DurationResolver(config)
        self.orchestrator = orchestrator or CompositionOrchestrator(config)

    @staticmethod
    def _advance(job: RenderJob, status: JobStatus, status_sink: Optional[StatusSink]) -> None:
        job.transition(status)
        logger.info(f"Job status: {status.value}", extra={"status": status.value})
        if status_sink is not None:
            status_sink(status)

    @staticmethod
    def _mark_failed(job: RenderJob, error: BaseException, status_sink: Optional[StatusSink]) -> None:
        was_terminal = job.status.terminal
        job.fail(error)
        if not was_terminal and status_sink is not None:
            status_sink(JobStatus.FAILED)

    async def _fetch_assets(
        self,
        request: RenderRequest,
        session: RenderSession
    ) -> Tuple[Asset, List[Asset]]:
        """Fetch audio and images concurrently; a failure cancels the sibling fetch."""
        audio_task = asyncio.ensure_future(self.fetcher.fetch_audio(request.audio, session))
        images_task = asyncio.ensure_future(self.fetcher.fetch_images(request.images, session))
        try:
            audio, images = await asyncio.gather(audio_task, images_task)
        except BaseException:
            for task in (audio_task, images_task):
                task.cancel()
            await asyncio.gather(audio_task, images_task, return_exceptions=True)
            raise
        return audio, images

    async def render(
        self,
        request: RenderRequest,
        progress_sink: Optional[ProgressSink] = None,
        status_sink: Optional[StatusSink] = None
    ) -> RenderResult:
        """
        Render one video.

        Args:
            request: Audio, images, captions and flags
            progress_sink: Called with encode progress in [0, 1]
            status_sink: Called on every lifecycle transition

        Returns:
            RenderResult with the MP4 bytes

        Raises:
            ConfigurationError: Encoder/prober missing (before any work)
            InsufficientAssetsError: No image could be fetched
            DecodeError, NetworkError: Audio could not be fetched
            ProbeError: Duration unreadable under the strict policy
            EncodeError: ffmpeg failed
        """
        self.config.validate_tools()
        start_time = time.time()
        timings = {}

        async with open_session(self.config) as session:
            set_job_id(request.job_id or session.id)
            job = RenderJob(
                session=session.session,
                captions=request.captions,
                show_captions=request.show_captions
            )
            logger.info(
                f"Starting render: {len(request.images)} images, "
                f"{len(request.captions)} captions (show={request.show_captions})",
                extra={"session_id": session.id, "images": len(request.images)}
            )

            try:
                # Assets
                self._advance(job, JobStatus.FETCHING_ASSETS, status_sink)
                step_start = time.time()
                try:
                    audio, images = await self._fetch_assets(request, session)
                except InsufficientAssetsError as e:
                    job.error = str(e)
                    self._advance(job, JobStatus.INSUFFICIENT_ASSETS, status_sink)
                    raise
                job.audio = audio
                job.images = images
                timings["fetch_assets"] = time.time() - step_start
                self._advance(job, JobStatus.ASSETS_READY, status_sink)

                # Duration and timeline
                self._advance(job, JobStatus.BUILDING_TIMELINE, status_sink)
                if request.duration is not None:
                    duration = request.duration
                    logger.info(
                        f"Using declared duration {duration:.3f}s",
                        extra={"duration": duration, "source": "request"}
                    )
                else:
                    duration = await self.resolver.resolve(audio.path.read_bytes(), audio.path)

                image_paths = [asset.path for asset in job.usable_images]
                job.timeline = build_timeline(image_paths, duration)
                manifest_path = write_manifest(job.timeline, session.path("filelist.txt"))

                # Subtitles
                subtitle_path = None
                if request.wants_subtitles:
                    subtitle_path = write_subtitles(request.captions, session.path("captions.srt"))
                    self._advance(job, JobStatus.SUBTITLES_ENCODED, status_sink)
                else:
                    self._advance(job, JobStatus.SUBTITLES_SKIPPED, status_sink)

                # Encode
                self._advance(job, JobStatus.ENCODING, status_sink)
                step_start = time.time()
                output_path = session.path("output.mp4")
                await self.orchestrator.compose(
                    manifest_path,
                    audio.path,
                    subtitle_path,
                    output_path,
                    duration,
                    progress_sink
                )
                timings["encode"] = time.time() - step_start

                result = collect_output(output_path, duration=duration, images_used=len(image_paths))
                self._advance(job, JobStatus.SUCCEEDED, status_sink)

            except asyncio.CancelledError:
                self._mark_failed(job, RuntimeError("Render cancelled"), status_sink)
                logger.warning("Render cancelled", extra={"session_id": session.id})
                raise
            except PipelineError as e:
                self._mark_failed(job, e, status_sink)
                logger.error(
                    f"Render failed: {e}",
                    extra={"session_id": session.id, "error_type": type(e).__name__}
                )
                raise
            except Exception as e:
                # Unexpected error - wrap in PipelineError
                self._mark_failed(job, e, status_sink)
                logger.error(
                    f"Unexpected render error: {e}",
                    exc_info=True,
                    extra={"session_id": session.id}
                )
                raise PipelineError(f"Unexpected error during render: {e}") from e

        timings["total"] = time.time() - start_time
        logger.info(
            f"Render complete: {result.size / 1024 / 1024:.2f} MB, {timings['total']:.2f}s",
            extra={"size": result.size, "images_used": result.images_used, "timings": timings}
        )
        return result


async def process(
    request: RenderRequest,
    config: Optional[ComposerConfig] = None,
    progress_sink: Optional[ProgressSink] = None
) -> RenderResult:
    """
    Render a request with configuration built from application settings.

    Args:
        request: Render request
        config: Composer configuration (defaults to settings)
        progress_sink: Called with encode progress in [0, 1]

    Returns:
        RenderResult
    """
    composer = SlideshowComposer(config or ComposerConfig.from_settings(settings))
    return await composer.render(request, progress_sink=progress_sink)
