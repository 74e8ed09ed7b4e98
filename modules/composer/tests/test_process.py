"""
Tests for the end-to-end render pipeline (encoder replaced by a fake).
"""
import asyncio
import base64
from unittest.mock import patch

import pytest

from modules.composer.process import SlideshowComposer
from shared.errors import (
    ConfigurationError,
    DecodeError,
    EncodeError,
    InsufficientAssetsError,
    PipelineError,
)
from shared.models import Caption, JobStatus, RenderRequest

AUDIO = "data:audio/mpeg;base64," + base64.b64encode(b"ID3narration").decode("ascii")
BROKEN = "data:image/png;base64,!!!"


def image(n: int) -> str:
    return "data:image/png;base64," + base64.b64encode(f"png-{n}".encode()).decode("ascii")


class FakeOrchestrator:
    """Records what the encoder would have been given and writes an output."""

    def __init__(self, error=None, delay=0.0):
        self.calls = []
        self.error = error
        self.delay = delay

    async def compose(self, manifest_path, audio_path, subtitle_path, output_path, total_duration, progress_sink=None):
        self.calls.append({
            "manifest": manifest_path.read_text(encoding="utf-8"),
            "session_dir": manifest_path.parent,
            "audio": audio_path.read_bytes(),
            "subtitles": subtitle_path.read_text(encoding="utf-8") if subtitle_path else None,
            "duration": total_duration,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        output_path.write_bytes(b"partial" if self.error else b"mp4-bytes")
        if self.error:
            raise self.error
        if progress_sink is not None:
            progress_sink(1.0)


@pytest.fixture
def orchestrator():
    return FakeOrchestrator()


@pytest.fixture
def composer(composer_config, orchestrator, tools_available):
    return SlideshowComposer(composer_config, orchestrator=orchestrator)


async def _render(composer, request, **kwargs):
    statuses = []
    try:
        result = await composer.render(request, status_sink=statuses.append, **kwargs)
    except BaseException as e:
        return None, statuses, e
    return result, statuses, None


@pytest.mark.asyncio
async def test_render_success(composer, orchestrator, work_root):
    """Test a full render with declared duration and no captions."""
    request = RenderRequest(audio=AUDIO, images=[image(0), image(1)], duration=10.0)
    progress = []

    result, statuses, error = await _render(composer, request, progress_sink=progress.append)

    assert error is None
    assert result.video == b"mp4-bytes"
    assert result.size == len(b"mp4-bytes")
    assert result.content_type == "video/mp4"
    assert result.images_used == 2
    assert statuses == [
        JobStatus.FETCHING_ASSETS,
        JobStatus.ASSETS_READY,
        JobStatus.BUILDING_TIMELINE,
        JobStatus.SUBTITLES_SKIPPED,
        JobStatus.ENCODING,
        JobStatus.SUCCEEDED,
    ]
    assert progress == [1.0]
    call = orchestrator.calls[0]
    assert call["audio"] == b"ID3narration"
    assert call["subtitles"] is None
    assert call["duration"] == 10.0
    assert "duration 5.000" in call["manifest"]
    # No residual files
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_render_probes_duration_when_not_declared(composer, orchestrator):
    request = RenderRequest(audio=AUDIO, images=[image(0)])

    with patch("modules.composer.duration.probe_metadata", return_value=8.0):
        result, _, error = await _render(composer, request)

    assert error is None
    assert result.duration == 8.0
    assert orchestrator.calls[0]["duration"] == 8.0


@pytest.mark.asyncio
async def test_render_strict_probe_failure(composer, orchestrator, work_root):
    request = RenderRequest(audio=AUDIO, images=[image(0)])

    with patch("modules.composer.duration.probe_metadata", return_value=None), \
         patch("modules.composer.duration.DurationResolver._probe_with_ffprobe", return_value=None):
        _, statuses, error = await _render(composer, request)

    assert isinstance(error, PipelineError)
    assert statuses[-1] == JobStatus.FAILED
    assert orchestrator.calls == []
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_render_burns_in_captions(composer, orchestrator):
    """Test that enabled captions reach the encoder as SRT."""
    request = RenderRequest(
        audio=AUDIO,
        images=[image(0)],
        duration=3.0,
        captions=[Caption(text="Hello there", start=0, end=1500)],
        show_captions=True
    )

    _, statuses, error = await _render(composer, request)

    assert error is None
    assert JobStatus.SUBTITLES_ENCODED in statuses
    assert orchestrator.calls[0]["subtitles"] == "1\n00:00:00,000 --> 00:00:01,500\nHello there\n\n"


@pytest.mark.asyncio
@pytest.mark.parametrize("show_captions,captions", [
    (False, [Caption(text="hidden", start=0, end=1000)]),
    (True, []),
])
async def test_render_without_subtitles(composer, orchestrator, show_captions, captions):
    request = RenderRequest(
        audio=AUDIO, images=[image(0)], duration=3.0, captions=captions, show_captions=show_captions
    )

    _, statuses, error = await _render(composer, request)

    assert error is None
    assert JobStatus.SUBTITLES_SKIPPED in statuses
    assert orchestrator.calls[0]["subtitles"] is None


@pytest.mark.asyncio
async def test_render_drops_failed_images(composer, orchestrator):
    """Test that 2 failed images of 5 leave 3 on the timeline, in order."""
    request = RenderRequest(
        audio=AUDIO, images=[image(0), BROKEN, image(2), BROKEN, image(4)], duration=6.0
    )

    result, _, error = await _render(composer, request)

    assert error is None
    assert result.images_used == 3
    files = [line for line in orchestrator.calls[0]["manifest"].splitlines() if line.startswith("file")]
    assert [f.rsplit("/", 1)[-1] for f in files] == [
        "image_000.png'", "image_002.png'", "image_004.png'", "image_004.png'"
    ]


@pytest.mark.asyncio
async def test_render_all_images_failed(composer, orchestrator, work_root):
    """Test that no encode happens when every image failed."""
    request = RenderRequest(audio=AUDIO, images=[BROKEN] * 5, duration=6.0)

    _, statuses, error = await _render(composer, request)

    assert isinstance(error, InsufficientAssetsError)
    assert statuses == [JobStatus.FETCHING_ASSETS, JobStatus.INSUFFICIENT_ASSETS]
    assert orchestrator.calls == []
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_render_audio_failure_is_fatal(composer, orchestrator, work_root):
    request = RenderRequest(audio="data:audio/mpeg;base64,%%%", images=[image(0)], duration=6.0)

    _, statuses, error = await _render(composer, request)

    assert isinstance(error, DecodeError)
    assert statuses[-1] == JobStatus.FAILED
    assert orchestrator.calls == []
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_render_encode_failure_cleans_up(composer_config, tools_available, work_root):
    """Test that a failed encode leaves no partial output behind."""
    orchestrator = FakeOrchestrator(error=EncodeError("Encoder exited with code 1", diagnostics="Invalid data"))
    composer = SlideshowComposer(composer_config, orchestrator=orchestrator)
    request = RenderRequest(audio=AUDIO, images=[image(0)], duration=2.0)

    _, statuses, error = await _render(composer, request)

    assert isinstance(error, EncodeError)
    assert "Invalid data" in str(error)
    assert statuses[-2:] == [JobStatus.ENCODING, JobStatus.FAILED]
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_render_unexpected_error_is_wrapped(composer_config, tools_available, work_root):
    orchestrator = FakeOrchestrator(error=RuntimeError("disk full"))
    composer = SlideshowComposer(composer_config, orchestrator=orchestrator)
    request = RenderRequest(audio=AUDIO, images=[image(0)], duration=2.0)

    _, statuses, error = await _render(composer, request)

    assert type(error) is PipelineError
    assert "disk full" in str(error)
    assert statuses[-1] == JobStatus.FAILED
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_render_cancelled_cleans_up(composer_config, tools_available, work_root):
    """Test that cancelling a render mid-encode releases the session."""
    orchestrator = FakeOrchestrator(delay=10)
    composer = SlideshowComposer(composer_config, orchestrator=orchestrator)
    statuses = []
    request = RenderRequest(audio=AUDIO, images=[image(0)], duration=2.0)

    task = asyncio.create_task(composer.render(request, status_sink=statuses.append))
    while not orchestrator.calls:
        await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert statuses[-1] == JobStatus.FAILED
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_concurrent_renders_are_isolated(composer, orchestrator, work_root):
    """Test that simultaneous renders never share a working directory."""
    requests = [RenderRequest(audio=AUDIO, images=[image(i)], duration=1.0) for i in range(4)]

    results = await asyncio.gather(*(composer.render(r) for r in requests))

    assert all(r.video == b"mp4-bytes" for r in results)
    assert len({call["session_dir"] for call in orchestrator.calls}) == 4
    assert list(work_root.iterdir()) == []


@pytest.mark.asyncio
async def test_missing_tools_fail_before_any_work(composer_config, orchestrator, work_root):
    """Test that a missing encoder is reported before a session exists."""
    composer = SlideshowComposer(composer_config, orchestrator=orchestrator)
    request = RenderRequest(audio=AUDIO, images=[image(0)], duration=1.0)

    with patch("modules.composer.config.shutil.which", return_value=None):
        with pytest.raises(ConfigurationError, match="ffmpeg"):
            await composer.render(request)

    assert orchestrator.calls == []
    assert list(work_root.iterdir()) == []
