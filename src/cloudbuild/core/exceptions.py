"""Shared exceptions for the cloudbuild package.

Every failure the client can report is a ``CloudBuildError`` tagged with one
``ErrorKind``. Callers either catch the concrete subclass or match on
``error.kind``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Closed set of failure categories."""

    VALIDATION = "validation"  # Bad local input, never sent over the wire
    NOT_FOUND = "not_found"  # Resource absent, recoverable by caller
    RATE_LIMITED = "rate_limited"  # Transient, only retried inside the poll loop
    SERVER = "server"  # Any other non-2xx response
    TRANSPORT = "transport"  # Connection-level failure
    INTEGRITY = "integrity"  # Response body did not match the expected shape
    BUILD_FAILED = "build_failed"  # A watched build ended in a non-success state
    FILESYSTEM = "filesystem"  # Local file could not be written


class CloudBuildError(Exception):
    """Base exception for all cloudbuild failures."""

    kind: ErrorKind = ErrorKind.SERVER

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(CloudBuildError):
    """Raised for invalid local input before any request is made."""

    kind = ErrorKind.VALIDATION


class NotFoundError(CloudBuildError):
    """Raised when the requested build or target does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class RateLimitedError(CloudBuildError):
    """Raised when the service answers 429."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str = "API rate limit reached"):
        super().__init__(message)


class ServerError(CloudBuildError):
    """Raised for any other error reported by the service."""

    kind = ErrorKind.SERVER

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        if self.status_code:
            return f"[HTTP {self.status_code}] {self.message}"
        return self.message


class TransportError(CloudBuildError):
    """Raised when the request never produced a response."""

    kind = ErrorKind.TRANSPORT


class IntegrityError(CloudBuildError):
    """Raised when a response body cannot be decoded into the expected shape."""

    kind = ErrorKind.INTEGRITY


class FileSystemError(CloudBuildError):
    """Raised when a download or archive entry cannot be written locally."""

    kind = ErrorKind.FILESYSTEM

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(message)


class BuildFailedError(CloudBuildError):
    """Raised when a watched build finishes with a non-success status."""

    kind = ErrorKind.BUILD_FAILED

    def __init__(self, message: str, target_id: str, number: int, status: str):
        self.target_id = target_id
        self.number = number
        self.status = status
        super().__init__(message)
