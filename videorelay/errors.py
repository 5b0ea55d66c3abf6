"""Error family for the relay — one class per failure the service can hit.

Everything the HTTP layer turns into a response derives from ``RelayError``.
``RelayStateError`` marks a broken event-relay invariant and is never
rendered as a response.
"""

from __future__ import annotations

from enum import Enum


class RelayError(Exception):
    """Base class for all errors raised by the service."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(RelayError):
    """Missing credential or unusable configuration."""


class RequestValidationError(RelayError):
    """Inbound payload rejected by the validator."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class JobErrorKind(str, Enum):
    FIELD_VALIDATION = "field_validation"
    API = "api"


class JobFailureKind(str, Enum):
    """Why a job ended without a video."""

    FIELD_VALIDATION = "field_validation"
    API = "api"
    EMPTY_RESULT = "empty_result"


class JobSubmissionError(RelayError):
    """The video backend rejected or failed the job.

    ``fields`` is populated for FIELD_VALIDATION errors with the names of
    the offending input fields (e.g. ``["prompt"]``).
    """

    def __init__(
        self,
        message: str,
        kind: JobErrorKind = JobErrorKind.API,
        fields: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.fields = fields or []


class EmptyResultError(RelayError):
    """The job finished but produced no video."""

    def __init__(self, message: str = "No video generated") -> None:
        super().__init__(message)


class RelayStateError(RelayError):
    """An event was emitted in an order the relay does not allow."""


class RelayClosed(RelayStateError):
    """Emission attempted after the stream was finished or closed."""


class RelayOrderError(RelayStateError):
    """Emission attempted out of order (e.g. text before meta)."""


def error_status(error: RelayError) -> int:
    """Return the HTTP status code a caller sees for ``error``."""
    match error:
        case RequestValidationError():
            return 400
        case ConfigError() | JobSubmissionError() | EmptyResultError():
            return 500
        case RelayStateError():
            raise error
        case _:
            raise TypeError(f"No status mapping for {type(error).__name__}")
