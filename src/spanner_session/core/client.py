"""
Database client wiring the transport, session cache and transaction runner.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from spanner_session.core.constants import get_settings
from spanner_session.core.runner import Transaction, TransactionRunner
from spanner_session.core.session_cache import MultiplexSessionCache
from spanner_session.core.stream_reader import ResumePolicy
from spanner_session.integrations.transport import SpannerTransport
from spanner_session.models import SessionHandle

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Client:
    """Entry point for running transactions against one database.

    Example:
        client = Client(transport, "projects/p/instances/i/databases/d")
        client.transaction(lambda tx: list(tx.read("Users", ["id", "name"])))
    """

    def __init__(
        self,
        transport: SpannerTransport,
        database: str | None = None,
        *,
        labels: dict[str, str] | None = None,
        refresh_sec: float | None = None,
        policy: ResumePolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Service calls
            database: Fully-qualified database name (defaults to settings)
            labels: Session labels (defaults to settings.session_labels)
            refresh_sec: Session refresh threshold (defaults to settings)
            policy: Stream resume policy (defaults to settings)
            clock: Source of the current time, for session age

        Raises:
            ValueError: If no database is given or configured
        """
        settings = get_settings()
        database = database or settings.database_path
        if not database:
            raise ValueError(
                "Configuration Error: database is required.\n"
                "Pass it explicitly or set SPANNER_PROJECT_ID, SPANNER_INSTANCE_ID and SPANNER_DATABASE_ID."
            )

        self._transport = transport
        self._database = database
        self._labels = dict(settings.session_labels if labels is None else labels)
        self._clock = clock
        self._sessions = MultiplexSessionCache(self.create_new_session, refresh_sec=refresh_sec, clock=clock)
        self._runner = TransactionRunner(transport, self._sessions, policy=policy)

    @property
    def database(self) -> str:
        return self._database

    @property
    def sessions(self) -> MultiplexSessionCache:
        return self._sessions

    def create_new_session(self, multiplexed: bool = True) -> SessionHandle:
        """Create a session on the service, stamped with the client clock."""
        name = self._transport.create_session(self._database, multiplexed=multiplexed, labels=self._labels)
        return SessionHandle(name=name, created_at=self._clock(), multiplexed=multiplexed)

    def transaction(self, work: Callable[[Transaction], T]) -> T:
        """Run ``work`` in a read/write transaction and commit it."""
        return self._runner.run(work)

    def reset(self) -> bool:
        """Replace the cached session."""
        return self._sessions.reset()

    def close(self) -> bool:
        return self._sessions.close()
