"""
Single-session cache for multiplexed sessions.

Holds at most one live session handle, creates it on first use and replaces
it once it is older than the refresh threshold. Reads of a current handle
take no lock; creation and replacement happen under a single lock so that
concurrent callers racing on a stale handle create exactly one successor.
"""

from __future__ import annotations

import threading

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from spanner_session.core.constants import get_settings
from spanner_session.models import SessionHandle
from spanner_session.utils.logger import logger

T = TypeVar("T")

SessionFactory = Callable[[], SessionHandle]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MultiplexSessionCache:
    """Lazily created, periodically refreshed multiplexed session.

    The handle is never mutated in place: replacement swaps the reference
    under the lock, so readers holding the previous handle are unaffected.
    """

    def __init__(
        self,
        create_session: SessionFactory,
        refresh_sec: float | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        """Initialize the cache.

        Args:
            create_session: Creates a new multiplexed session (network round trip)
            refresh_sec: Replace the session once it is this old (defaults to settings)
            clock: Source of the current time, for age checks
        """
        self._create_session = create_session
        self._refresh_sec = refresh_sec if refresh_sec is not None else get_settings().session_refresh_sec
        self._clock = clock
        self._session: SessionHandle | None = None
        self._lock = threading.Lock()

    @property
    def session(self) -> SessionHandle | None:
        """The currently cached handle, without refreshing it."""
        return self._session

    def with_session(self, fn: Callable[[SessionHandle], T]) -> T:
        """Run ``fn`` with a current session and return its result.

        The lock is only held while a missing or stale session is replaced,
        never while ``fn`` runs.

        Raises:
            Exception: Whatever session creation raised; nothing is cached.
        """
        session = self._ensure_session()
        return fn(session)

    def reset(self) -> bool:
        """Unconditionally replace the cached session, regardless of age."""
        with self._lock:
            self._session = self._create_session()
            logger.info("Multiplexed session reset", session=self._session.name)
        return True

    def close(self) -> bool:
        """No-op: multiplexed sessions need no explicit teardown."""
        return True

    def _is_current(self, session: SessionHandle | None) -> bool:
        return session is not None and not session.created_since(self._refresh_sec, now=self._clock())

    def _ensure_session(self) -> SessionHandle:
        """Return a non-stale session, creating one if needed."""
        # Fast path: no synchronization for a current handle
        session = self._session
        if self._is_current(session):
            return session  # type: ignore[return-value]

        with self._lock:
            # Double-check after acquiring lock; another thread may have refreshed it
            session = self._session
            if self._is_current(session):
                return session  # type: ignore[return-value]

            previous = session
            session = self._create_session()
            self._session = session

        if previous is None:
            logger.info("Multiplexed session created", session=session.name)
        else:
            logger.info(
                f"Multiplexed session refreshed after {previous.age_seconds(self._clock()):.0f}s",
                session=session.name,
            )
        return session
