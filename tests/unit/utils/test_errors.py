"""Tests for the error taxonomy and retry classification."""

from __future__ import annotations

import pytest

from spanner_session.utils.errors import (
    Aborted,
    Cancelled,
    DeadlineExceeded,
    InternalError,
    NotFound,
    PermissionDenied,
    ServiceUnavailable,
    SpannerError,
    StatusCode,
    StreamNotResumableError,
    TransportError,
    Unauthenticated,
    is_retriable,
)


class TestTransportError:
    def test_str_includes_code(self) -> None:
        assert str(NotFound("table Users")) == "NOT_FOUND: table Users"

    def test_str_without_message(self) -> None:
        assert str(ServiceUnavailable()) == "UNAVAILABLE"

    def test_explicit_code(self) -> None:
        error = TransportError("quota", code=StatusCode.RESOURCE_EXHAUSTED)

        assert error.code is StatusCode.RESOURCE_EXHAUSTED

    def test_hierarchy(self) -> None:
        assert issubclass(TransportError, SpannerError)
        assert issubclass(StreamNotResumableError, SpannerError)


class TestIsRetriable:
    """Tests for the default classifier."""

    def test_unavailable_is_retriable(self) -> None:
        assert is_retriable(ServiceUnavailable("connection reset")) is True

    def test_generic_error_with_unavailable_code(self) -> None:
        assert is_retriable(TransportError("x", code=StatusCode.UNAVAILABLE)) is True

    @pytest.mark.parametrize(
        "message",
        [
            "Received unexpected EOS on DATA frame from server",
            "Received RST_STREAM with error code 2",
        ],
    )
    def test_internal_stream_reset_is_retriable(self, message: str) -> None:
        assert is_retriable(InternalError(message)) is True

    def test_other_internal_is_fatal(self) -> None:
        assert is_retriable(InternalError("assertion failed")) is False

    @pytest.mark.parametrize(
        "error",
        [
            Aborted("conflict"),
            Cancelled(),
            DeadlineExceeded(),
            NotFound(),
            PermissionDenied(),
            Unauthenticated(),
        ],
    )
    def test_fatal_codes(self, error: TransportError) -> None:
        assert is_retriable(error) is False

    def test_non_transport_errors_are_fatal(self) -> None:
        assert is_retriable(ConnectionError("reset")) is False
        assert is_retriable(ValueError("bad")) is False
