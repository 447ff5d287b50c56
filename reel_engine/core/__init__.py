"""Shared errors and collaborator interfaces."""

from .errors import (
    AuthenticationError,
    CorruptArtifactError,
    DriverError,
    GenerationTimeoutError,
    ReelEngineError,
    SubmissionError,
    TransportError,
)
from .types import AutomationDriver, CookieSpec, ProgressCallback, ResponseEvent, ResponseHandler

__all__ = [
    "AuthenticationError",
    "AutomationDriver",
    "CookieSpec",
    "CorruptArtifactError",
    "DriverError",
    "GenerationTimeoutError",
    "ProgressCallback",
    "ReelEngineError",
    "ResponseEvent",
    "ResponseHandler",
    "SubmissionError",
    "TransportError",
]
