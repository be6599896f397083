"""
Models for the session and transaction layer.
"""

from __future__ import annotations

from spanner_session.models.request_models import (
    BeginTransactionRequest,
    CommitRequest,
    CommitResponse,
    ExecuteSqlRequest,
    KeySet,
    Mutation,
    MutationOperation,
    ReadRequest,
    TransactionOptions,
    TransactionSelector,
)
from spanner_session.models.result_models import (
    PartialResultSet,
    PrecommitToken,
    ResultSetMetadata,
    ResultSetStats,
    StructField,
    TransactionInfo,
)
from spanner_session.models.session_models import SessionHandle

__all__ = [
    "BeginTransactionRequest",
    "CommitRequest",
    "CommitResponse",
    "ExecuteSqlRequest",
    "KeySet",
    "Mutation",
    "MutationOperation",
    "PartialResultSet",
    "PrecommitToken",
    "ReadRequest",
    "ResultSetMetadata",
    "ResultSetStats",
    "SessionHandle",
    "StructField",
    "TransactionInfo",
    "TransactionOptions",
    "TransactionSelector",
]
