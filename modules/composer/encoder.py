"""
Video encoding for composer module.

Runs ffmpeg over the concat manifest and narration track, scaling and
letterboxing every frame onto a fixed canvas and optionally burning in the
subtitle track. Progress arrives on ffmpeg's -progress stream and is
published without blocking; stderr is kept for failure reports.
"""
import asyncio
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional

from shared.errors import EncodeError
from shared.logging import get_logger

from .config import (
    ComposerConfig,
    OUTPUT_AUDIO_CODEC,
    OUTPUT_PIXEL_FORMAT,
    OUTPUT_VIDEO_CODEC,
)

logger = get_logger("composer.encoder")

ProgressSink = Callable[[float], None]

DIAGNOSTIC_TAIL_LINES = 50
TERMINATE_GRACE_SECONDS = 5.0


def parse_progress_line(line: str, total_duration: float) -> Optional[float]:
    """
    Turn one line of ffmpeg -progress output into a fraction in [0, 1].

    Returns:
        Fraction done, or None for lines that carry no position
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key == "progress" and value == "end":
        return 1.0
    # out_time_ms is in microseconds as well (historical ffmpeg naming)
    if key in ("out_time_us", "out_time_ms") and total_duration > 0:
        try:
            seconds = int(value) / 1_000_000
        except ValueError:
            return None
        return max(0.0, min(1.0, seconds / total_duration))
    return None


class ProgressChannel:
    """Stream of progress fractions. Publishing never blocks the encoder."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.latest = 0.0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, fraction: float) -> None:
        if self._closed:
            return
        self.latest = fraction
        self._queue.put_nowait(fraction)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def __aiter__(self) -> "ProgressChannel":
        return self

    async def __anext__(self) -> float:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class EncodeHandle:
    """Running encode: await it for completion, cancel() to stop ffmpeg."""

    def __init__(self, task: "asyncio.Task[None]", progress: ProgressChannel):
        self._task = task
        self.progress = progress

    def cancel(self) -> bool:
        return self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    async def stopped(self) -> None:
        """Wait for the encode task to finish, whatever its outcome."""
        await asyncio.wait({self._task})

    def __await__(self):
        return self._task.__await__()


class CompositionOrchestrator:
    """Drives the ffmpeg subprocess for one render."""

    def __init__(self, config: ComposerConfig):
        self.config = config

    def build_video_filter(self, subtitle_path: Optional[Path] = None) -> str:
        """Scale/pad chain onto the canvas, plus burn-in subtitles when given."""
        w, h = self.config.output_width, self.config.output_height
        video_filter = (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
        )
        if subtitle_path is not None:
            escaped = str(subtitle_path.absolute()).replace("\\", "/").replace(":", "\\:").replace("'", "\\'")
            style = self.config.subtitle_style.force_style()
            video_filter += f",subtitles='{escaped}':force_style='{style}'"
        return video_filter

    def build_command(
        self,
        manifest_path: Path,
        audio_path: Path,
        subtitle_path: Optional[Path],
        output_path: Path
    ) -> List[str]:
        """Full ffmpeg argument list."""
        preset = self.config.preset
        cmd = [
            self.config.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest_path),
            "-i", str(audio_path),
            "-vf", self.build_video_filter(subtitle_path),
            "-c:v", OUTPUT_VIDEO_CODEC,
            "-preset", preset.x264_preset,
        ]
        if preset.crf is not None:
            cmd += ["-crf", str(preset.crf)]
        cmd += [
            "-tune", "stillimage",
            "-c:a", OUTPUT_AUDIO_CODEC,
            "-b:a", preset.audio_bitrate,
            "-pix_fmt", OUTPUT_PIXEL_FORMAT,
            "-shortest",
            "-movflags", "+faststart",  # Progressive playback
            "-progress", "pipe:1",
            "-nostats",
            str(output_path)
        ]
        return cmd

    def start(
        self,
        manifest_path: Path,
        audio_path: Path,
        subtitle_path: Optional[Path],
        output_path: Path,
        total_duration: float,
        progress_sink: Optional[ProgressSink] = None
    ) -> EncodeHandle:
        """
        Launch the encode in a task.

        Returns:
            EncodeHandle; awaiting it raises EncodeError on failure
        """
        cmd = self.build_command(manifest_path, audio_path, subtitle_path, output_path)
        channel = ProgressChannel()
        task = asyncio.create_task(self._run(cmd, total_duration, channel, progress_sink))
        return EncodeHandle(task, channel)

    async def compose(
        self,
        manifest_path: Path,
        audio_path: Path,
        subtitle_path: Optional[Path],
        output_path: Path,
        total_duration: float,
        progress_sink: Optional[ProgressSink] = None
    ) -> None:
        """
        Encode and wait for completion. Cancelling the caller terminates ffmpeg.

        Raises:
            EncodeError: If ffmpeg cannot start, times out or exits non-zero
        """
        handle = self.start(
            manifest_path, audio_path, subtitle_path, output_path, total_duration, progress_sink
        )
        try:
            await handle
        except asyncio.CancelledError:
            handle.cancel()
            await handle.stopped()
            raise

    async def _run(
        self,
        cmd: List[str],
        total_duration: float,
        channel: ProgressChannel,
        progress_sink: Optional[ProgressSink]
    ) -> None:
        logger.info(
            f"Running FFmpeg command: {' '.join(cmd)}",
            extra={"command": cmd, "total_duration": total_duration}
        )
        diagnostics: Deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            channel.close()
            raise EncodeError(f"Failed to start encoder {cmd[0]}: {e}") from e

        async def run_to_exit() -> int:
            await asyncio.gather(
                self._read_progress(process.stdout, total_duration, channel, progress_sink),
                self._read_diagnostics(process.stderr, diagnostics),
            )
            return await process.wait()

        try:
            returncode = await asyncio.wait_for(run_to_exit(), timeout=self.config.encode_timeout)
        except asyncio.TimeoutError:
            await self._terminate(process)
            raise EncodeError(
                f"Encoder timed out after {self.config.encode_timeout}s",
                diagnostics="\n".join(diagnostics)
            )
        except asyncio.CancelledError:
            logger.warning("Encode cancelled, terminating FFmpeg", extra={"pid": process.pid})
            await self._terminate(process)
            raise
        finally:
            channel.close()

        if returncode != 0:
            error_output = "\n".join(diagnostics)
            logger.error(
                f"FFmpeg exited with code {returncode}",
                extra={"returncode": returncode, "error": error_output}
            )
            raise EncodeError(f"Encoder exited with code {returncode}", diagnostics=error_output)

        logger.info("FFmpeg render completed", extra={"returncode": returncode})

    async def _read_progress(
        self,
        stream: asyncio.StreamReader,
        total_duration: float,
        channel: ProgressChannel,
        progress_sink: Optional[ProgressSink]
    ) -> None:
        loop = asyncio.get_running_loop()
        last = -1.0
        async for raw_line in stream:
            fraction = parse_progress_line(raw_line.decode("utf-8", errors="replace"), total_duration)
            if fraction is None or fraction <= last:
                continue
            last = fraction
            channel.publish(fraction)
            if progress_sink is not None:
                # Scheduled, so a slow sink never stalls reading ffmpeg's pipes
                loop.call_soon(_deliver, progress_sink, fraction)

    async def _read_diagnostics(self, stream: asyncio.StreamReader, diagnostics: Deque[str]) -> None:
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").rstrip()
            if line:
                diagnostics.append(line)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass


def _deliver(sink: ProgressSink, fraction: float) -> None:
    try:
        sink(fraction)
    except Exception as e:
        logger.warning(f"Progress sink raised: {e}", extra={"progress": fraction})
