"""
Pytest fixtures for composer tests.
"""
import asyncio
from typing import List, Optional
from unittest.mock import patch

import pytest

from modules.composer.config import ComposerConfig
from modules.composer.session import create_session


@pytest.fixture
def work_root(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def composer_config(work_root):
    """Composer config writing sessions under a temporary work root."""
    return ComposerConfig(
        work_root=work_root,
        fetch_retry_delay=0,
        encode_timeout=5,
        probe_timeout=1
    )


@pytest.fixture
def tools_available():
    """Pretend ffmpeg and ffprobe are installed."""
    with patch("modules.composer.config.shutil.which", return_value="/usr/bin/ffmpeg"):
        yield


@pytest.fixture
def render_session(composer_config):
    session = create_session(composer_config)
    yield session
    session.cleanup.cleanup()


class FakeStream:
    """Async line iterator standing in for a subprocess pipe."""

    def __init__(self, lines: List[bytes], delay: float = 0):
        self._lines = list(lines)
        self._delay = delay

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self._delay:
            await asyncio.sleep(self._delay)
        if not self._lines:
            raise StopAsyncIteration
        return self._lines.pop(0)


class FakeProcess:
    """Subprocess double: scripted stdout/stderr and exit code."""

    def __init__(
        self,
        stdout: Optional[List[bytes]] = None,
        stderr: Optional[List[bytes]] = None,
        returncode: int = 0,
        hang: bool = False
    ):
        self.pid = 4242
        self.stdout = FakeStream(stdout or [])
        self.stderr = FakeStream(stderr or [])
        self._exit_code = returncode
        self._hang = hang
        self._stopped = asyncio.Event()
        self.returncode: Optional[int] = None
        self.terminated = False
        self.killed = False

    async def wait(self) -> int:
        if self._hang:
            await self._stopped.wait()
        self.returncode = self._exit_code if not self.terminated else -15
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self._stopped.set()

    def kill(self) -> None:
        self.killed = True
        self._stopped.set()


class FakeSpawner:
    """Replacement for asyncio.create_subprocess_exec handing out one FakeProcess."""

    def __init__(self):
        self.process = FakeProcess()
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None

    async def __call__(self, *cmd, **kwargs):
        self.calls.append([str(part) for part in cmd])
        if self.error is not None:
            raise self.error
        return self.process


@pytest.fixture
def fake_process():
    """Factory for scripted subprocess doubles."""
    return FakeProcess


@pytest.fixture
def spawner():
    """Patch subprocess creation; configure spawner.process before running."""
    fake = FakeSpawner()
    with patch("asyncio.create_subprocess_exec", new=fake):
        yield fake
