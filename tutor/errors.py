"""Tutor exception hierarchy.

Only connectivity and contract failures with the LLM provider are
exceptions. Safety vetoes are ordinary results (see
``tutor.models.ResponseOutcome``).
"""

from __future__ import annotations


class TutorError(Exception):
    """Base for all Tutor exceptions."""


class ConfigError(TutorError):
    """Raised when settings cannot be loaded or fail validation."""


class PipelineError(TutorError):
    """A failure talking to the completion provider."""


class CircuitOpenError(PipelineError):
    """The circuit breaker is open; the provider was not called."""

    def __init__(self, retry_after: float = 0.0) -> None:
        super().__init__(
            f"Circuit breaker is open - completion service unavailable "
            f"(retry in {retry_after:.0f}s)"
        )
        self.retry_after = retry_after


class UpstreamNonRetryableError(PipelineError):
    """Auth, malformed request, forbidden, or rate/quota limits."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamTransientError(PipelineError):
    """Network or server-side failure; eligible for retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidUpstreamResponseError(PipelineError):
    """The provider answered, but not with a usable completion."""
