"""Client-side record of one logical read/write transaction.

Tracks the server-assigned transaction id and the latest precommit token as
a small state machine::

    UNBOUND --bind(id)--> BOUND --commit--> COMMITTED
       |                    |
       +------fail----------+--> FAILED

The id is bound once (first bind wins) and the precommit token only moves
forward by sequence number, so replayed responses after a stream resume can
never rebind the transaction or regress its progress marker.
"""

from __future__ import annotations

from enum import Enum

from spanner_session.models import PrecommitToken, TransactionSelector
from spanner_session.utils.errors import TransactionStateError
from spanner_session.utils.logger import logger


class TransactionState(str, Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    COMMITTED = "committed"
    FAILED = "failed"


class TransactionContext:
    """Transaction identity and precommit bookkeeping.

    Owned by exactly one TransactionRunner invocation; not shared across
    concurrent logical transactions, so it carries no lock.
    """

    def __init__(self) -> None:
        self._state = TransactionState.UNBOUND
        self._transaction_id: str | None = None
        self._precommit_token: PrecommitToken | None = None
        self._seqno = 0
        self._failure: BaseException | None = None

    def __repr__(self) -> str:
        seq_num = self._precommit_token.seq_num if self._precommit_token else None
        return f"TransactionContext(state={self._state.value}, id={self._transaction_id!r}, seq_num={seq_num})"

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def transaction_id(self) -> str | None:
        """Server-assigned id, or None until the first response binds it."""
        return self._transaction_id

    @property
    def current_token(self) -> PrecommitToken | None:
        """Highest-sequence precommit token observed so far."""
        return self._precommit_token

    @property
    def is_bound(self) -> bool:
        return self._transaction_id is not None

    @property
    def failure(self) -> BaseException | None:
        """The error that failed this transaction, if any."""
        return self._failure

    def bind_transaction(self, transaction_id: str) -> bool:
        """Bind the transaction id if it is still unset.

        Later binds are ignored, including ones carrying a different id.

        Returns:
            True if the context is bound to ``transaction_id`` after the call
        """
        self.ensure_active()
        if self._transaction_id is None:
            self._transaction_id = transaction_id
            self._state = TransactionState.BOUND
            logger.debug("Transaction bound", transaction_id=transaction_id)
            return True

        if transaction_id != self._transaction_id:
            logger.warning(
                f"Ignoring response for transaction {transaction_id!r}; already bound",
                transaction_id=self._transaction_id,
            )
            return False
        return True

    def observe_precommit(self, token: bytes, seq_num: int) -> bool:
        """Store ``token`` if ``seq_num`` is at least the stored sequence number.

        Returns:
            True if the token was stored
        """
        current = self._precommit_token
        if current is not None and seq_num < current.seq_num:
            logger.debug(
                f"Ignoring precommit token seq_num={seq_num} behind stored seq_num={current.seq_num}",
                transaction_id=self._transaction_id,
            )
            return False

        self._precommit_token = PrecommitToken(precommit_token=token, seq_num=seq_num)
        return True

    def selector(self) -> TransactionSelector:
        """Selector for the next request: begin inline until bound, then reuse the id."""
        self.ensure_active()
        if self._transaction_id is None:
            return TransactionSelector.begin_read_write()
        return TransactionSelector.use(self._transaction_id)

    def next_seqno(self) -> int:
        """Monotonic sequence number for query/DML requests in this transaction."""
        self._seqno += 1
        return self._seqno

    def ensure_active(self) -> None:
        """Raise if the transaction already reached a terminal state."""
        if self._state is TransactionState.FAILED:
            raise TransactionStateError(
                f"Transaction {self._transaction_id or '<unbound>'} failed and cannot be used"
            ) from self._failure
        if self._state is TransactionState.COMMITTED:
            raise TransactionStateError(f"Transaction {self._transaction_id} is already committed")

    def mark_failed(self, error: BaseException) -> None:
        """Invalidate the context after a fatal error."""
        if self._state in (TransactionState.COMMITTED, TransactionState.FAILED):
            return
        self._state = TransactionState.FAILED
        self._failure = error

    def mark_committed(self) -> None:
        self.ensure_active()
        self._state = TransactionState.COMMITTED
