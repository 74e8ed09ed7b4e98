"""
Render sessions and cleanup.

Each render owns a fresh video-<session id> directory. Every file written
during the render is tracked and removed exactly once when the session scope
exits, whatever the outcome.
"""
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List
from uuid import uuid4

from shared.errors import CleanupError
from shared.logging import get_logger
from shared.models import Session

from .config import ComposerConfig

logger = get_logger("composer.session")


class CleanupManager:
    """Tracks the files of one session and deletes them once."""

    def __init__(self, session: Session):
        self.session = session
        self._paths: List[Path] = []
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def tracked(self) -> List[Path]:
        return list(self._paths)

    def track(self, path: Path) -> Path:
        """Schedule `path` for deletion and return it."""
        if self._done:
            raise CleanupError(f"Session {self.session.id} already cleaned up")
        if path not in self._paths:
            self._paths.append(path)
        return path

    def cleanup(self) -> None:
        """Delete tracked files and the session directory. Never raises."""
        if self._done:
            return
        self._done = True

        failures = 0
        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                failures += 1
                logger.warning(
                    f"Failed to delete {path}: {e}",
                    extra={"session_id": self.session.id, "error": str(e), "error_type": CleanupError.__name__}
                )

        # Anything the encoder left behind that was never tracked goes with the directory
        try:
            shutil.rmtree(self.session.directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            failures += 1
            logger.warning(
                f"Failed to remove session directory {self.session.directory}: {e}",
                extra={"session_id": self.session.id, "error": str(e), "error_type": CleanupError.__name__}
            )

        logger.info(
            f"Cleaned up session {self.session.id} ({len(self._paths)} files, {failures} failures)",
            extra={"session_id": self.session.id, "files": len(self._paths), "failures": failures}
        )


class RenderSession:
    """A Session plus its cleanup manager; paths handed out are tracked."""

    def __init__(self, session: Session):
        self.session = session
        self.cleanup = CleanupManager(session)

    @property
    def id(self) -> str:
        return self.session.id

    @property
    def directory(self) -> Path:
        return self.session.directory

    def path(self, name: str) -> Path:
        """Tracked path for `name` inside the session directory."""
        return self.cleanup.track(self.session.directory / name)


def create_session(config: ComposerConfig) -> RenderSession:
    """Create a fresh, exclusive session directory under config.work_root."""
    session_id = uuid4().hex
    directory = config.work_root / f"video-{session_id}"
    # exist_ok=False: a collision means two jobs would share files
    directory.mkdir(parents=True, exist_ok=False)
    session = Session(id=session_id, directory=directory)
    logger.info(
        f"Created session directory {directory}",
        extra={"session_id": session.id}
    )
    return RenderSession(session)


@asynccontextmanager
async def open_session(config: ComposerConfig) -> AsyncIterator[RenderSession]:
    """
    Context manager for a render session with guaranteed cleanup.

    Args:
        config: Composer configuration (work_root)

    Yields:
        RenderSession whose files are deleted on exit
    """
    render_session = create_session(config)
    try:
        yield render_session
    finally:
        render_session.cleanup.cleanup()
