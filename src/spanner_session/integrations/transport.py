"""
Transport contract consumed by the session and transaction layer.

The RPC stack, its serialization and its retry policy live behind this
protocol. Implementations raise TransportError subclasses (or any error the
injected retry classifier understands) when a call fails.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from spanner_session.models import (
    BeginTransactionRequest,
    CommitRequest,
    CommitResponse,
    ExecuteSqlRequest,
    PartialResultSet,
    ReadRequest,
    TransactionInfo,
)


class SpannerTransport(Protocol):
    """Calls the remote transactional storage service."""

    def create_session(self, database: str, *, multiplexed: bool = True, labels: dict[str, str] | None = None) -> str:
        """Create a session.

        Args:
            database: Fully-qualified database name
            multiplexed: Request a session shareable across transactions
            labels: Labels to attach to the session

        Returns:
            Fully-qualified session name
        """
        ...

    def streaming_read(self, request: ReadRequest) -> Iterable[PartialResultSet]:
        """Start a streaming read. Errors may surface while iterating."""
        ...

    def execute_streaming_sql(self, request: ExecuteSqlRequest) -> Iterable[PartialResultSet]:
        """Start a streaming query. Errors may surface while iterating."""
        ...

    def begin_transaction(self, request: BeginTransactionRequest) -> TransactionInfo:
        """Explicitly begin a transaction."""
        ...

    def commit(self, request: CommitRequest) -> CommitResponse:
        """Commit a transaction with its mutations."""
        ...
