"""Error taxonomy shared by the API, the worker and the generation clients.

Every failure the core can produce is one of the classes below.  Each error
carries a stable, user-facing ``message`` and an optional ``details`` payload
(typically the raw body returned by an upstream backend) that may be echoed
back to API clients for diagnostics.  Internal exception types and stack
traces are never part of the payload.

Hierarchy
---------
::

    PlatecraftError
    ├── ValidationError     400  malformed or missing input
    ├── AuthError           401  missing, invalid or expired credential
    ├── NotFoundError       404  id absent *or* owned by someone else
    ├── GenerationError     *    classified generation-backend failure
    ├── StorageError        502  object storage upload/delete failure
    └── PersistenceError    500  database read/write failure
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class PlatecraftError(Exception):
    """Base class for all Platecraft domain errors.

    Attributes:
        message: Stable message suitable for display to API clients.
        details: Optional diagnostic payload (e.g. an upstream error body).
        status_code: HTTP status used when the error reaches the API layer.
    """

    status_code: int = 500

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PlatecraftError):
    """Malformed or missing input.  Never retried."""

    status_code = 400


class AuthError(PlatecraftError):
    """Missing, invalid or expired credential.  Never retried."""

    status_code = 401


class NotFoundError(PlatecraftError):
    """The requested record does not exist for this owner.

    Absence and owner mismatch deliberately collapse into this single error
    so that record existence never leaks across owners.
    """

    status_code = 404


class StorageError(PlatecraftError):
    """Object storage upload or delete failure."""

    status_code = 502


class PersistenceError(PlatecraftError):
    """Database read or write failure."""

    status_code = 500


class GenerationErrorKind(str, Enum):
    """Closed set of generation-backend failure classes."""

    UNAUTHORIZED = "unauthorized"
    INSUFFICIENT_CREDIT = "insufficient-credit"
    INVALID_INPUT = "invalid-input"
    RATE_LIMITED = "rate-limited"
    BACKEND_UNAVAILABLE = "backend-unavailable"
    UNEXPECTED_RESPONSE = "unexpected-response-shape"
    TRANSPORT_FAILURE = "transport-failure"


# Kinds a caller may sensibly retry.  Everything else fails identically on
# a second attempt.
_RETRYABLE_KINDS = frozenset(
    {
        GenerationErrorKind.RATE_LIMITED,
        GenerationErrorKind.BACKEND_UNAVAILABLE,
        GenerationErrorKind.TRANSPORT_FAILURE,
    }
)

# HTTP status surfaced to API clients for each kind.  ``unauthorized`` refers
# to the service's own backend credential, so the caller sees a gateway
# error rather than a 401 that would suggest *their* token was rejected.
_HTTP_STATUS_BY_KIND: dict[GenerationErrorKind, int] = {
    GenerationErrorKind.UNAUTHORIZED: 502,
    GenerationErrorKind.INSUFFICIENT_CREDIT: 402,
    GenerationErrorKind.INVALID_INPUT: 400,
    GenerationErrorKind.RATE_LIMITED: 429,
    GenerationErrorKind.BACKEND_UNAVAILABLE: 502,
    GenerationErrorKind.UNEXPECTED_RESPONSE: 502,
    GenerationErrorKind.TRANSPORT_FAILURE: 503,
}

_MESSAGES_BY_KIND: dict[GenerationErrorKind, str] = {
    GenerationErrorKind.UNAUTHORIZED: "Image generation backend rejected the service credential",
    GenerationErrorKind.INSUFFICIENT_CREDIT: "Insufficient image generation credits",
    GenerationErrorKind.INVALID_INPUT: "Invalid request to the image generation backend",
    GenerationErrorKind.RATE_LIMITED: "Image generation rate limit exceeded",
    GenerationErrorKind.BACKEND_UNAVAILABLE: "Image generation backend error",
    GenerationErrorKind.UNEXPECTED_RESPONSE: "Unexpected response format from image generation backend",
    GenerationErrorKind.TRANSPORT_FAILURE: "Could not reach the image generation backend",
}


def kind_for_status(status_code: int) -> GenerationErrorKind:
    """Map a non-success backend HTTP status to a :class:`GenerationErrorKind`.

    Args:
        status_code: HTTP status returned by the generation backend.

    Returns:
        The matching kind; unclassified codes are ``BACKEND_UNAVAILABLE``.
    """
    if status_code == 401:
        return GenerationErrorKind.UNAUTHORIZED
    if status_code == 402:
        return GenerationErrorKind.INSUFFICIENT_CREDIT
    if status_code == 400:
        return GenerationErrorKind.INVALID_INPUT
    if status_code == 429:
        return GenerationErrorKind.RATE_LIMITED
    return GenerationErrorKind.BACKEND_UNAVAILABLE


class GenerationError(PlatecraftError):
    """Classified failure from a generation backend.

    Attributes:
        kind: The failure class.
        backend_status: HTTP status reported by the backend, or ``None`` for
            transport failures that never produced a response.
        details: Raw backend response body (or transport error text).
    """

    def __init__(
        self,
        kind: GenerationErrorKind,
        backend_status: int | None = None,
        details: Any | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(message or _MESSAGES_BY_KIND[kind], details)
        self.kind = kind
        self.backend_status = backend_status

    @classmethod
    def from_status(cls, status_code: int, details: Any | None = None) -> GenerationError:
        """Build an error from a backend HTTP status and raw body."""
        kind = kind_for_status(status_code)
        message = _MESSAGES_BY_KIND[kind]
        if kind is GenerationErrorKind.BACKEND_UNAVAILABLE:
            message = f"{message} ({status_code})"
        return cls(kind, backend_status=status_code, details=details, message=message)

    @property
    def retryable(self) -> bool:
        """Whether retrying the same request could plausibly succeed."""
        return self.kind in _RETRYABLE_KINDS

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return _HTTP_STATUS_BY_KIND[self.kind]

    def __repr__(self) -> str:
        return (
            f"GenerationError(kind={self.kind.value!r}, "
            f"backend_status={self.backend_status!r}, message={self.message!r})"
        )
