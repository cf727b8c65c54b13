"""Error taxonomy for the update pipeline.

Components raise these exceptions; ``UpdateClient`` catches them at its
public boundary and turns them into result models carrying the
``ErrorKind``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Kind of pipeline failure, as reported to the host."""

    TRANSPORT = "transport"
    AUTH = "auth"
    INVALID_RESPONSE = "invalid_response"
    RATE_LIMITED = "rate_limited"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    BACKUP = "backup"
    CACHED_FAILURE = "cached_failure"


class UpdateError(Exception):
    """Base exception for all pipeline failures."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human readable message, safe to show to the host.
            detail: Raw underlying error text, logged at debug level only.
        """
        super().__init__(message)
        self.message = message
        self.detail = detail


class TransportError(UpdateError):
    """Network, DNS or timeout failure talking to the update server."""

    kind = ErrorKind.TRANSPORT


class DownloadError(TransportError):
    """The package artifact could not be downloaded."""


class AuthError(UpdateError):
    """The server rejected our credentials (401/403). Not retried."""

    kind = ErrorKind.AUTH

    def __init__(self, message: str, *, status: int, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.status = status


class InvalidResponseError(UpdateError):
    """Unexpected status code, malformed JSON or missing required fields."""

    kind = ErrorKind.INVALID_RESPONSE


class RateLimitedError(UpdateError):
    """The local request gate is closed for this window."""

    kind = ErrorKind.RATE_LIMITED


class ChecksumMismatchError(UpdateError):
    """Downloaded package does not match the server-declared SHA-256."""

    kind = ErrorKind.CHECKSUM_MISMATCH

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            "Package verification failed. Security check did not match.",
            detail=f"expected {expected}, got {actual}",
        )
        self.expected = expected
        self.actual = actual


class BackupError(UpdateError):
    """Snapshotting or restoring the installed unit failed."""

    kind = ErrorKind.BACKUP


class CachedFailureError(UpdateError):
    """A recent lookup failed and is still inside its backoff window."""

    kind = ErrorKind.CACHED_FAILURE


class ConfigError(Exception):
    """Configuration file or values are invalid."""
