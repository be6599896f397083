"""
Resilient streaming reads and queries bound to a transaction.

A read is presented to the caller as one uninterrupted, ordered row stream.
When consumption fails with a retriable transport error the broken stream is
discarded and the request re-issued with the transaction selector fixed to
the id bound by the first response and the latest resume token, so the
server continues where the last safe position left off.

Rows assembled after the last resume token are held back until the next
token (or the end of the stream) arrives. On resume those rows are dropped
and re-delivered by the server, which keeps the output free of duplicates
and gaps.
"""

from __future__ import annotations

import random
import time

from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from spanner_session.core.constants import DEFAULT_MAX_BUFFERED_ROWS, get_settings
from spanner_session.core.transaction import TransactionContext
from spanner_session.integrations.transport import SpannerTransport
from spanner_session.models import (
    ExecuteSqlRequest,
    KeySet,
    PartialResultSet,
    PrecommitToken,
    ReadRequest,
    ResultSetStats,
    StructField,
    TransactionSelector,
)
from spanner_session.utils.errors import SpannerError, StreamNotResumableError, is_retriable
from spanner_session.utils.logger import logger

Row = list[Any]

#: Issues a request for the given selector and resume token.
StreamStarter = Callable[[TransactionSelector, bytes | None], Iterable[PartialResultSet]]


def merge_chunks(head: Any, tail: Any) -> Any:
    """Join a value split across two partial result sets.

    Strings and bytes concatenate. Lists concatenate, merging the boundary
    elements when they are themselves chunkable.

    Raises:
        ValueError: If the two halves cannot be merged
    """
    if isinstance(head, str) and isinstance(tail, str):
        return head + tail
    if isinstance(head, bytes) and isinstance(tail, bytes):
        return head + tail
    if isinstance(head, list) and isinstance(tail, list):
        if head and tail and isinstance(head[-1], (str, bytes, list)) and type(head[-1]) is type(tail[0]):
            return [*head[:-1], merge_chunks(head[-1], tail[0]), *tail[1:]]
        return head + tail
    raise ValueError(f"Cannot merge chunked values of type {type(head).__name__} and {type(tail).__name__}")


@dataclass(frozen=True, slots=True)
class ResumePolicy:
    """How a broken stream is resumed.

    Attributes:
        is_retriable: Classifies an error as resumable
        max_resumes: Resume budget per stream (None for unbounded)
        backoff: Initial delay before a resume (seconds)
        max_backoff: Upper bound on the delay (seconds)
        max_buffered_rows: Rows held back since the last resume token
        sleep: Blocking sleep used between resumes
    """

    is_retriable: Callable[[BaseException], bool] = is_retriable
    max_resumes: int | None = None
    backoff: float = 0.0
    max_backoff: float = 0.0
    max_buffered_rows: int = DEFAULT_MAX_BUFFERED_ROWS
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_settings(cls, **overrides: Any) -> ResumePolicy:
        settings = get_settings()
        values: dict[str, Any] = {
            "max_resumes": settings.stream_max_resumes,
            "backoff": settings.stream_resume_backoff,
            "max_backoff": settings.stream_resume_max_backoff,
            "max_buffered_rows": settings.stream_max_buffered_rows,
        }
        values.update(overrides)
        return cls(**values)

    def delay(self, attempt: int) -> float:
        """Exponential backoff with jitter for the given 1-based attempt."""
        if self.backoff <= 0:
            return 0.0
        # Exponent is capped so unbounded resumes never overflow the float
        exponent = min(attempt - 1, 32)
        return min(self.backoff * (2**exponent) + random.uniform(0, self.backoff), self.max_backoff)


class ResultStream:
    """Forward-only, non-restartable stream of rows from one read or query.

    The first response is fetched when the stream is created so that the
    transaction is bound before the caller issues its next request. Later
    responses are fetched lazily as rows are consumed.
    """

    def __init__(
        self,
        start: StreamStarter,
        context: TransactionContext,
        policy: ResumePolicy,
        operation: str = "read",
        session: str | None = None,
    ) -> None:
        self._start = start
        self._context = context
        self._policy = policy
        self._operation = operation
        self._session = session

        self._stream: Iterator[PartialResultSet] | None = None
        self._fields: list[StructField] | None = None
        self._stats: ResultSetStats | None = None
        self._ready: deque[Row] = deque()
        self._buffer: list[Row] = []
        self._values: list[Any] = []
        self._chunked = False
        self._resume_token: bytes | None = None
        self._checkpoint: tuple[list[Any], bool] = ([], False)
        self._resumable = True
        self._resumes = 0
        self._done = False

        context.ensure_active()
        while self._fields is None and not self._done:
            self._ready.extend(self._next_batch())

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def fields(self) -> list[StructField]:
        """Row type of the result."""
        return list(self._fields or [])

    @property
    def stats(self) -> ResultSetStats | None:
        """Statistics from the final response, once the stream is exhausted."""
        return self._stats

    @property
    def transaction_id(self) -> str | None:
        return self._context.transaction_id

    @property
    def precommit_token(self) -> PrecommitToken | None:
        return self._context.current_token

    @property
    def resume_count(self) -> int:
        """Number of times the stream was re-issued after a retriable error."""
        return self._resumes

    def rows(self) -> Iterator[Row]:
        """Iterate over the remaining rows."""
        return iter(self)

    def __iter__(self) -> Iterator[Row]:
        while True:
            while self._ready:
                yield self._ready.popleft()
            if self._done:
                return
            self._ready.extend(self._next_batch())

    # ------------------------------------------------------------------
    # Resume engine
    # ------------------------------------------------------------------

    def _next_batch(self) -> list[Row]:
        """Pull one response and return the rows it makes safe to release."""
        while True:
            try:
                if self._stream is None:
                    self._stream = iter(self._start(self._context.selector(), self._resume_token))
                response = next(self._stream)
            except StopIteration:
                return self._finish()
            except Exception as e:
                if not self._policy.is_retriable(e):
                    self._fail(e)
                    raise
                self._resume(e)
                continue

            try:
                return self._apply(response)
            except Exception as e:
                self._fail(e)
                raise

    def _apply(self, response: PartialResultSet) -> list[Row]:
        metadata = response.metadata
        if metadata is not None:
            if metadata.row_type or self._fields is None:
                self._fields = list(metadata.row_type)
            if metadata.transaction is not None:
                self._context.bind_transaction(metadata.transaction.id)

        if response.precommit_token is not None:
            token = response.precommit_token
            self._context.observe_precommit(token.precommit_token, token.seq_num)

        if response.stats is not None:
            self._stats = response.stats

        self._merge_values(response.values, response.chunked_value)
        self._buffer.extend(self._complete_rows())

        if response.resume_token:
            # Everything up to here is durable on the server side
            self._resume_token = response.resume_token
            self._checkpoint = (list(self._values), self._chunked)
            self._resumable = True
            return self._release()

        if len(self._buffer) > self._policy.max_buffered_rows:
            # Rows past the last resume token are about to be delivered
            self._resumable = False
            return self._release()

        return []

    def _merge_values(self, values: list[Any], chunked: bool) -> None:
        incoming = list(values)
        if self._chunked and self._values and incoming:
            incoming[0] = merge_chunks(self._values.pop(), incoming[0])
        self._values.extend(incoming)
        if values:
            self._chunked = chunked

    def _complete_rows(self) -> list[Row]:
        width = len(self._fields or [])
        if width == 0:
            return []
        # A trailing chunked value is incomplete and cannot close a row yet
        available = len(self._values) - (1 if self._chunked else 0)
        count = available // width
        rows = [self._values[i * width : (i + 1) * width] for i in range(count)]
        del self._values[: count * width]
        return rows

    def _release(self) -> list[Row]:
        rows, self._buffer = self._buffer, []
        return rows

    def _finish(self) -> list[Row]:
        self._done = True
        self._stream = None
        if self._values:
            error = SpannerError(
                f"{self._operation} stream ended with {len(self._values)} values that do not form a complete row"
            )
            self._fail(error)
            raise error
        return self._release()

    def _resume(self, error: Exception) -> None:
        """Re-issue the request after a retriable error, or raise if that is unsafe."""
        if not self._resumable:
            failure = StreamNotResumableError(
                f"{self._operation} failed after rows past the last resume token were delivered: {error}"
            )
            self._fail(failure)
            raise failure from error

        max_resumes = self._policy.max_resumes
        if max_resumes is not None and self._resumes >= max_resumes:
            failure = StreamNotResumableError(f"{self._operation} failed after {self._resumes} resumes: {error}")
            self._fail(failure)
            raise failure from error

        self._resumes += 1
        self._close_stream()

        # Rows after the checkpoint will be sent again by the server
        self._buffer = []
        values, chunked = self._checkpoint
        self._values = list(values)
        self._chunked = chunked

        logger.warning(
            f"Resuming {self._operation} {'from last resume token' if self._resume_token else 'from start'} "
            f"after retriable error: {error}",
            session=self._session,
            transaction_id=self._context.transaction_id,
            operation=self._operation,
            attempt=self._resumes,
        )

        delay = self._policy.delay(self._resumes)
        if delay > 0:
            self._policy.sleep(delay)

    def _fail(self, error: BaseException) -> None:
        self._done = True
        self._close_stream()
        self._context.mark_failed(error)
        logger.error(
            f"{self._operation} failed: {error}",
            session=self._session,
            transaction_id=self._context.transaction_id,
            operation=self._operation,
        )

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        close = getattr(stream, "close", None)
        if close is not None:
            close()


class ResilientStreamReader:
    """Issues streaming reads and queries bound to one transaction context."""

    def __init__(
        self,
        transport: SpannerTransport,
        context: TransactionContext,
        policy: ResumePolicy | None = None,
    ) -> None:
        self._transport = transport
        self._context = context
        self._policy = policy or ResumePolicy.from_settings()

    @property
    def context(self) -> TransactionContext:
        return self._context

    def read(
        self,
        session: str,
        table: str,
        columns: list[str],
        keys: Any = None,
        index: str | None = None,
        limit: int | None = None,
    ) -> ResultStream:
        """Stream rows of ``table`` (optionally through ``index``).

        Args:
            session: Session name to issue the request on
            table: Table to read
            columns: Columns to return, in order
            keys: None for all rows, a key, a list of keys, or a KeySet
            index: Secondary index to read through
            limit: Maximum rows to return

        Returns:
            Row stream bound to this reader's transaction
        """
        key_set = KeySet.from_keys(keys)

        def start(selector: TransactionSelector, resume_token: bytes | None) -> Iterable[PartialResultSet]:
            request = ReadRequest(
                session=session,
                table=table,
                columns=list(columns),
                key_set=key_set,
                index=index,
                limit=limit,
                transaction=selector,
                resume_token=resume_token,
            )
            return self._transport.streaming_read(request)

        return ResultStream(start, self._context, self._policy, operation=f"read {table}", session=session)

    def execute_query(
        self,
        session: str,
        sql: str,
        params: dict[str, Any] | None = None,
        param_types: dict[str, str] | None = None,
    ) -> ResultStream:
        """Stream rows of a SQL query.

        The request sequence number is allocated once, so resumed requests
        carry the same ``seqno`` as the original.
        """
        seqno = self._context.next_seqno()

        def start(selector: TransactionSelector, resume_token: bytes | None) -> Iterable[PartialResultSet]:
            request = ExecuteSqlRequest(
                session=session,
                sql=sql,
                params=dict(params or {}),
                param_types=dict(param_types or {}),
                transaction=selector,
                resume_token=resume_token,
                seqno=seqno,
            )
            return self._transport.execute_streaming_sql(request)

        return ResultStream(start, self._context, self._policy, operation="query", session=session)
