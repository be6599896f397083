"""
Transaction runner: begin (implicit), read/write, commit.

The transaction id sent with the commit is the one bound by the first
successful response of the transaction; resumed or later reads never
replace it.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from spanner_session.core.mutations import Mutations, RowData
from spanner_session.core.session_cache import MultiplexSessionCache
from spanner_session.core.stream_reader import ResilientStreamReader, ResultStream, ResumePolicy
from spanner_session.core.transaction import TransactionContext
from spanner_session.integrations.transport import SpannerTransport
from spanner_session.models import (
    BeginTransactionRequest,
    CommitRequest,
    CommitResponse,
    PrecommitToken,
    SessionHandle,
)
from spanner_session.utils.logger import logger

T = TypeVar("T")


class Transaction:
    """Read/query and mutation capabilities handed to transaction work."""

    def __init__(
        self,
        session: SessionHandle,
        reader: ResilientStreamReader,
        mutations: Mutations,
    ) -> None:
        self._session = session
        self._reader = reader
        self._mutations = mutations
        self.commit_response: CommitResponse | None = None

    @property
    def session(self) -> SessionHandle:
        return self._session

    @property
    def context(self) -> TransactionContext:
        return self._reader.context

    @property
    def transaction_id(self) -> str | None:
        return self._reader.context.transaction_id

    @property
    def precommit_token(self) -> PrecommitToken | None:
        return self._reader.context.current_token

    @property
    def mutations(self) -> Mutations:
        return self._mutations

    def read(
        self,
        table: str,
        columns: list[str],
        keys: Any = None,
        index: str | None = None,
        limit: int | None = None,
    ) -> ResultStream:
        """Read rows within this transaction. See ResilientStreamReader.read."""
        return self._reader.read(self._session.name, table, columns, keys=keys, index=index, limit=limit)

    def execute_query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        param_types: dict[str, str] | None = None,
    ) -> ResultStream:
        """Run a SQL query within this transaction."""
        return self._reader.execute_query(self._session.name, sql, params=params, param_types=param_types)

    def insert(self, table: str, rows: RowData) -> None:
        self.context.ensure_active()
        self._mutations.insert(table, rows)

    def update(self, table: str, rows: RowData) -> None:
        self.context.ensure_active()
        self._mutations.update(table, rows)

    def upsert(self, table: str, rows: RowData) -> None:
        self.context.ensure_active()
        self._mutations.upsert(table, rows)

    def replace(self, table: str, rows: RowData) -> None:
        self.context.ensure_active()
        self._mutations.replace(table, rows)

    def delete(self, table: str, keys: Any = None) -> None:
        self.context.ensure_active()
        self._mutations.delete(table, keys)


class TransactionRunner:
    """Runs read/write transactions on the cached multiplexed session."""

    def __init__(
        self,
        transport: SpannerTransport,
        sessions: MultiplexSessionCache,
        policy: ResumePolicy | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            transport: Service calls for reads and commit
            sessions: Source of the current multiplexed session
            policy: Resume policy for reads (defaults to settings)
        """
        self._transport = transport
        self._sessions = sessions
        self._policy = policy

    def run(self, work: Callable[[Transaction], T]) -> T:
        """Run ``work`` in a fresh transaction and commit it.

        Args:
            work: Receives a Transaction; its return value is returned

        Returns:
            Whatever ``work`` returned, after a successful commit

        Raises:
            Exception: Any error from ``work``, begin or commit, unchanged.
                The transaction is abandoned; no commit is attempted after
                a failure in ``work``.
        """
        return self._sessions.with_session(lambda session: self._run_in_session(session, work))

    def _run_in_session(self, session: SessionHandle, work: Callable[[Transaction], T]) -> T:
        context = TransactionContext()
        reader = ResilientStreamReader(self._transport, context, self._policy or ResumePolicy.from_settings())
        mutations = Mutations()
        transaction = Transaction(session, reader, mutations)

        try:
            result = work(transaction)
        except Exception as e:
            context.mark_failed(e)
            logger.error(
                f"Transaction abandoned: {e}",
                session=session.name,
                transaction_id=context.transaction_id,
                operation="transaction",
            )
            raise

        transaction.commit_response = self._commit(session, context, mutations)
        return result

    def _commit(self, session: SessionHandle, context: TransactionContext, mutations: Mutations) -> CommitResponse:
        context.ensure_active()
        try:
            if not context.is_bound:
                # Nothing was read, so no response bound an id yet
                info = self._transport.begin_transaction(BeginTransactionRequest(session=session.name))
                context.bind_transaction(info.id)

            request = CommitRequest(
                session=session.name,
                transaction_id=context.transaction_id,
                mutations=mutations.all(),
                precommit_token=context.current_token,
            )
            response = self._transport.commit(request)
        except Exception as e:
            context.mark_failed(e)
            logger.error(
                f"Commit failed: {e}",
                session=session.name,
                transaction_id=context.transaction_id,
                operation="commit",
            )
            raise

        context.mark_committed()
        logger.info(
            f"Committed transaction with {len(mutations)} mutations",
            session=session.name,
            transaction_id=context.transaction_id,
            operation="commit",
        )
        return response
