"""
Session management and resilient transactional reads for a streaming
storage-service client.
"""

from __future__ import annotations

from spanner_session.core.client import Client
from spanner_session.core.constants import Settings, get_settings
from spanner_session.core.mutations import Mutations
from spanner_session.core.runner import Transaction, TransactionRunner
from spanner_session.core.session_cache import MultiplexSessionCache
from spanner_session.core.stream_reader import ResilientStreamReader, ResultStream, ResumePolicy
from spanner_session.core.transaction import TransactionContext, TransactionState
from spanner_session.integrations.transport import SpannerTransport
from spanner_session.models import SessionHandle
from spanner_session.utils.errors import (
    SpannerError,
    StreamNotResumableError,
    TransactionStateError,
    TransportError,
    is_retriable,
)

__version__ = "0.1.0"

__all__ = [
    "Client",
    "MultiplexSessionCache",
    "Mutations",
    "ResilientStreamReader",
    "ResultStream",
    "ResumePolicy",
    "SessionHandle",
    "Settings",
    "SpannerError",
    "SpannerTransport",
    "StreamNotResumableError",
    "Transaction",
    "TransactionContext",
    "TransactionRunner",
    "TransactionState",
    "TransactionStateError",
    "TransportError",
    "get_settings",
    "is_retriable",
]
