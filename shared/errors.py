"""
Error taxonomy for the slideshow composer.

Every failure the pipeline can surface derives from PipelineError so callers
can report a single descriptive message for any terminal outcome.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all composer errors."""


class ConfigurationError(PipelineError):
    """Required tool paths or credentials are missing or invalid."""


class ValidationError(PipelineError):
    """Input data (request or stored job record) is malformed."""


class RetryableError(PipelineError):
    """Transient failure that may succeed when retried."""


class NetworkError(RetryableError):
    """Remote asset retrieval failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(PipelineError):
    """Inline data URL could not be decoded."""


class InsufficientAssetsError(PipelineError):
    """No image could be fetched, so there is nothing to show."""


class ProbeError(PipelineError):
    """Audio duration could not be read from container metadata."""


class EmptyTimelineError(PipelineError):
    """Timeline requested with no images or no duration."""


class EncodeError(PipelineError):
    """External encoder failed; carries its captured diagnostic output."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        base = super().__str__()
        if self.diagnostics:
            return f"{base}\n{self.diagnostics}"
        return base


class CleanupError(PipelineError):
    """Working state could not be released. Logged, never raised to callers."""


class JobNotFoundError(PipelineError):
    """Job identifier did not resolve to a stored render job."""
