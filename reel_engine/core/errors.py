"""Custom exception hierarchy for the generation pipeline."""

from __future__ import annotations


class ReelEngineError(RuntimeError):
    """Base exception for pipeline-specific failures."""


class DriverError(ReelEngineError):
    """Raised when the automation driver cannot be launched or used."""


class AuthenticationError(ReelEngineError):
    """Raised when the service rejects the session or credentials are missing."""


class SubmissionError(ReelEngineError):
    """Raised when a required input control cannot be reached."""


class GenerationTimeoutError(ReelEngineError):
    """Raised when no artifact is detected within the wait budget."""


class CorruptArtifactError(ReelEngineError):
    """Raised when downloaded bytes fall below the plausibility threshold."""

    def __init__(self, message: str, *, size: int | None = None) -> None:
        super().__init__(message)
        self.size = size


class TransportError(ReelEngineError):
    """Raised when a network or browser transfer fails."""
