"""Shared test fixtures for the session and transaction test suite.

Provides a scripted in-memory transport, a manual clock and builders for
partial result sets, so tests can replay exact server streams including
mid-stream failures.
"""

from __future__ import annotations

import threading

from collections import deque
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from spanner_session.core.constants import clear_settings_cache
from spanner_session.core.stream_reader import ResumePolicy
from spanner_session.models import (
    BeginTransactionRequest,
    CommitRequest,
    CommitResponse,
    ExecuteSqlRequest,
    PartialResultSet,
    PrecommitToken,
    ReadRequest,
    ResultSetMetadata,
    ResultSetStats,
    StructField,
    TransactionInfo,
)

# ============================================================================
# Test Isolation: Settings Management
# ============================================================================


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Start every test from default settings, unaffected by the host environment."""
    monkeypatch.delenv("SPANNER_LOG_DIR", raising=False)
    monkeypatch.delenv("SPANNER_SESSION_REFRESH_SEC", raising=False)
    monkeypatch.delenv("SPANNER_STREAM_MAX_RESUMES", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Scripted Transport
# ============================================================================

Script = list[PartialResultSet | BaseException]


def _play(script: Script) -> Iterator[PartialResultSet]:
    """Yield scripted responses, raising scripted errors in place."""
    for item in script:
        if isinstance(item, BaseException):
            raise item
        yield item


class ScriptedTransport:
    """In-memory transport replaying one script per streaming call."""

    def __init__(self) -> None:
        self.read_scripts: deque[Script] = deque()
        self.sql_scripts: deque[Script] = deque()
        self.read_requests: list[ReadRequest] = []
        self.sql_requests: list[ExecuteSqlRequest] = []
        self.begin_requests: list[BeginTransactionRequest] = []
        self.commit_requests: list[CommitRequest] = []
        self.session_calls: list[dict[str, Any]] = []
        self.session_errors: deque[BaseException] = deque()
        self.session_delay: Callable[[], None] | None = None
        self.begin_id = "tx-begin"
        self.commit_error: BaseException | None = None
        self.commit_response = CommitResponse(
            commit_timestamp=datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC),
            mutation_count=0,
        )
        self._lock = threading.Lock()

    def create_session(self, database: str, *, multiplexed: bool = True, labels: dict[str, str] | None = None) -> str:
        if self.session_delay is not None:
            self.session_delay()
        with self._lock:
            if self.session_errors:
                raise self.session_errors.popleft()
            self.session_calls.append({"database": database, "multiplexed": multiplexed, "labels": labels})
            return f"{database}/sessions/session-{len(self.session_calls)}"

    def streaming_read(self, request: ReadRequest) -> Iterator[PartialResultSet]:
        self.read_requests.append(request)
        return _play(self.read_scripts.popleft())

    def execute_streaming_sql(self, request: ExecuteSqlRequest) -> Iterator[PartialResultSet]:
        self.sql_requests.append(request)
        return _play(self.sql_scripts.popleft())

    def begin_transaction(self, request: BeginTransactionRequest) -> TransactionInfo:
        self.begin_requests.append(request)
        return TransactionInfo(id=self.begin_id)

    def commit(self, request: CommitRequest) -> CommitResponse:
        self.commit_requests.append(request)
        if self.commit_error is not None:
            raise self.commit_error
        return self.commit_response


@pytest.fixture
def transport() -> ScriptedTransport:
    """Fresh scripted transport."""
    return ScriptedTransport()


# ============================================================================
# Response Builders
# ============================================================================


class ResultBuilder:
    """Builds PartialResultSet messages for scripted streams."""

    @staticmethod
    def metadata(
        columns: list[str],
        transaction_id: str | None = None,
        token: bytes | None = None,
        seq_num: int = 0,
        values: list[Any] | None = None,
        resume_token: bytes | None = None,
    ) -> PartialResultSet:
        return PartialResultSet(
            metadata=ResultSetMetadata(
                row_type=[StructField(name=column) for column in columns],
                transaction=TransactionInfo(id=transaction_id) if transaction_id else None,
            ),
            precommit_token=PrecommitToken(precommit_token=token, seq_num=seq_num) if token is not None else None,
            values=values or [],
            resume_token=resume_token,
        )

    @staticmethod
    def values(
        *values: Any,
        resume_token: bytes | None = None,
        chunked: bool = False,
        token: bytes | None = None,
        seq_num: int = 0,
        row_count: int | None = None,
    ) -> PartialResultSet:
        return PartialResultSet(
            values=list(values),
            resume_token=resume_token,
            chunked_value=chunked,
            precommit_token=PrecommitToken(precommit_token=token, seq_num=seq_num) if token is not None else None,
            stats=ResultSetStats(row_count_exact=row_count) if row_count is not None else None,
        )


@pytest.fixture
def results() -> type[ResultBuilder]:
    """Partial result set builders."""
    return ResultBuilder


# ============================================================================
# Clock and Policy
# ============================================================================


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sleeps() -> list[float]:
    """Records delays requested by the resume policy."""
    return []


@pytest.fixture
def policy(sleeps: list[float]) -> ResumePolicy:
    """Resume policy with no real sleeping."""
    return ResumePolicy(max_buffered_rows=100, sleep=sleeps.append)
