"""Tests for the transaction runner: reads, mutations and commit."""

from __future__ import annotations

from typing import Any

import pytest

from spanner_session.core.runner import Transaction, TransactionRunner
from spanner_session.core.session_cache import MultiplexSessionCache
from spanner_session.core.stream_reader import ResumePolicy
from spanner_session.core.transaction import TransactionState
from spanner_session.models import MutationOperation, SessionHandle
from spanner_session.utils.errors import Aborted, NotFound, ServiceUnavailable, TransactionStateError

SESSION = "projects/p/instances/i/databases/d/sessions/s1"
COLUMNS = ["id", "name"]


@pytest.fixture
def runner(transport: Any, clock: Any, policy: ResumePolicy) -> TransactionRunner:
    sessions = MultiplexSessionCache(lambda: SessionHandle(name=SESSION, created_at=clock()), clock=clock)
    return TransactionRunner(transport, sessions, policy=policy)


class TestCommit:
    """Tests for the commit issued after work succeeds."""

    def test_commit_uses_first_bound_id_after_resume(
        self, transport: Any, results: Any, runner: TransactionRunner
    ) -> None:
        """A resumed read reporting another id does not change what is committed."""
        transport.read_scripts.append(
            [
                results.metadata(COLUMNS, "tx-1", token=b"token_1", seq_num=0),
                results.values(1, "Charlie", resume_token=b"r1"),
                ServiceUnavailable(),
            ]
        )
        transport.read_scripts.append(
            [
                results.metadata(COLUMNS, "tx-2", token=b"token_2", seq_num=1),
                results.values(2, "Dana"),
            ]
        )

        def work(tx: Transaction) -> list[Any]:
            rows = list(tx.read("Users", COLUMNS))
            tx.update("Users", {"id": 1, "name": "Charles"})
            return rows

        rows = runner.run(work)

        assert rows == [[1, "Charlie"], [2, "Dana"]]
        assert transport.begin_requests == []
        commit = transport.commit_requests[0]
        assert commit.session == SESSION
        assert commit.transaction_id == "tx-1"
        assert commit.precommit_token is not None
        assert commit.precommit_token.precommit_token == b"token_2"
        assert commit.precommit_token.seq_num == 1
        assert len(commit.mutations) == 1
        assert commit.mutations[0].operation is MutationOperation.UPDATE

    def test_commit_without_reads_begins_explicitly(self, transport: Any, runner: TransactionRunner) -> None:
        transport.begin_id = "tx-explicit"

        def work(tx: Transaction) -> None:
            tx.insert("Users", [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
            tx.delete("Users", [3])

        runner.run(work)

        assert len(transport.begin_requests) == 1
        assert transport.begin_requests[0].session == SESSION
        commit = transport.commit_requests[0]
        assert commit.transaction_id == "tx-explicit"
        assert commit.precommit_token is None
        assert [m.operation for m in commit.mutations] == [MutationOperation.INSERT, MutationOperation.DELETE]
        assert commit.mutations[0].values == [[1, "a"], [2, "b"]]

    def test_commit_response_recorded_on_transaction(self, transport: Any, runner: TransactionRunner) -> None:
        seen: list[Transaction] = []

        runner.run(seen.append)

        tx = seen[0]
        assert tx.commit_response == transport.commit_response
        assert tx.context.state is TransactionState.COMMITTED

    def test_reads_and_queries_share_transaction(
        self, transport: Any, results: Any, runner: TransactionRunner
    ) -> None:
        transport.read_scripts.append([results.metadata(COLUMNS, "tx-1"), results.values(1, "a")])
        transport.sql_scripts.append([results.metadata(["n"]), results.values(7)])

        def work(tx: Transaction) -> tuple[list[Any], list[Any]]:
            return list(tx.read("Users", COLUMNS)), list(tx.execute_query("SELECT 7"))

        assert runner.run(work) == ([[1, "a"]], [[7]])
        assert transport.sql_requests[0].transaction.id == "tx-1"
        assert transport.commit_requests[0].transaction_id == "tx-1"

    def test_each_run_gets_fresh_transaction(
        self, transport: Any, results: Any, runner: TransactionRunner
    ) -> None:
        transport.read_scripts.append([results.metadata(COLUMNS, "tx-1")])
        transport.read_scripts.append([results.metadata(COLUMNS, "tx-2")])

        runner.run(lambda tx: list(tx.read("Users", COLUMNS)))
        runner.run(lambda tx: list(tx.read("Users", COLUMNS)))

        assert transport.read_requests[1].transaction.is_begin
        assert [c.transaction_id for c in transport.commit_requests] == ["tx-1", "tx-2"]


class TestFailures:
    """Tests for errors raised by work, reads or commit."""

    def test_work_error_skips_commit(self, transport: Any, runner: TransactionRunner) -> None:
        seen: list[Transaction] = []

        def work(tx: Transaction) -> None:
            seen.append(tx)
            tx.insert("Users", {"id": 1})
            raise ValueError("business rule")

        with pytest.raises(ValueError, match="business rule"):
            runner.run(work)

        assert transport.commit_requests == []
        assert transport.begin_requests == []
        assert seen[0].context.state is TransactionState.FAILED

    def test_fatal_read_error_propagates_without_commit(
        self, transport: Any, results: Any, runner: TransactionRunner
    ) -> None:
        transport.read_scripts.append([NotFound("no such table")])

        with pytest.raises(NotFound):
            runner.run(lambda tx: list(tx.read("Missing", COLUMNS)))

        assert transport.commit_requests == []

    def test_commit_error_propagates(self, transport: Any, results: Any, runner: TransactionRunner) -> None:
        transport.read_scripts.append([results.metadata(COLUMNS, "tx-1")])
        transport.commit_error = Aborted("conflict")
        seen: list[Transaction] = []

        def work(tx: Transaction) -> None:
            seen.append(tx)
            list(tx.read("Users", COLUMNS))

        with pytest.raises(Aborted):
            runner.run(work)

        assert seen[0].context.state is TransactionState.FAILED
        assert seen[0].commit_response is None

    def test_transaction_unusable_after_commit(
        self, transport: Any, results: Any, runner: TransactionRunner
    ) -> None:
        seen: list[Transaction] = []
        runner.run(seen.append)
        tx = seen[0]

        with pytest.raises(TransactionStateError, match="already committed"):
            tx.read("Users", COLUMNS)
        with pytest.raises(TransactionStateError):
            tx.insert("Users", {"id": 1})
        assert transport.read_requests == []

    def test_mutation_after_failed_read_is_rejected(
        self, transport: Any, results: Any, runner: TransactionRunner
    ) -> None:
        transport.read_scripts.append([NotFound("no such table")])

        def work(tx: Transaction) -> None:
            with pytest.raises(NotFound):
                tx.read("Missing", COLUMNS)
            tx.insert("Users", {"id": 1})

        with pytest.raises(TransactionStateError):
            runner.run(work)
        assert transport.commit_requests == []
