"""Error taxonomy for the session and transaction layer.

Transport failures are raised as TransportError subclasses keyed by status
code. Only the retriable class is recovered locally (by resuming the
stream); everything else propagates to the caller unchanged.
"""

from __future__ import annotations

from enum import Enum

from spanner_session.core.constants import RETRIABLE_INTERNAL_MESSAGES, RETRIABLE_STATUS_CODES


class StatusCode(str, Enum):
    """Canonical RPC status codes."""

    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    ABORTED = "ABORTED"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    UNAUTHENTICATED = "UNAUTHENTICATED"


class SpannerError(Exception):
    """Base exception for session and transaction operations."""

    pass


class TransportError(SpannerError):
    """A failed RPC, tagged with its status code."""

    code = StatusCode.UNKNOWN

    def __init__(self, message: str = "", code: StatusCode | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}" if self.message else self.code.value


class Cancelled(TransportError):
    code = StatusCode.CANCELLED


class DeadlineExceeded(TransportError):
    code = StatusCode.DEADLINE_EXCEEDED


class NotFound(TransportError):
    code = StatusCode.NOT_FOUND


class PermissionDenied(TransportError):
    code = StatusCode.PERMISSION_DENIED


class Aborted(TransportError):
    code = StatusCode.ABORTED


class InternalError(TransportError):
    code = StatusCode.INTERNAL


class ServiceUnavailable(TransportError):
    """Service temporarily unavailable; safe to resume."""

    code = StatusCode.UNAVAILABLE


class Unauthenticated(TransportError):
    code = StatusCode.UNAUTHENTICATED


class TransactionStateError(SpannerError):
    """Raised when a terminal (failed or committed) transaction is used again."""

    pass


class StreamNotResumableError(SpannerError):
    """Raised when a retriable stream error cannot be recovered by resuming.

    Either rows past the last resume token were already released to the
    caller, or the configured resume budget is exhausted. The original
    transport error is chained as ``__cause__``.
    """

    pass


def is_retriable(exc: BaseException) -> bool:
    """Default classifier mapping a transport error to retriable/fatal.

    Args:
        exc: Error raised while consuming a stream

    Returns:
        True when the stream may be resumed
    """
    if not isinstance(exc, TransportError):
        return False
    if exc.code.value in RETRIABLE_STATUS_CODES:
        return True
    if exc.code is StatusCode.INTERNAL:
        return any(fragment in exc.message for fragment in RETRIABLE_INTERNAL_MESSAGES)
    return False
