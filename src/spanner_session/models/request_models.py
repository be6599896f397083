"""
Request and mutation models sent to the transport.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spanner_session.models.result_models import PrecommitToken


class TransactionOptions(BaseModel):
    """Options for an implicitly or explicitly begun transaction."""

    model_config = ConfigDict(frozen=True)

    read_write: bool = True
    read_lock_mode: str = "READ_LOCK_MODE_UNSPECIFIED"


class TransactionSelector(BaseModel):
    """Either begin a new transaction inline, or use an existing one.

    Exactly one of ``begin`` and ``id`` is set.
    """

    model_config = ConfigDict(frozen=True)

    begin: TransactionOptions | None = None
    id: str | None = None

    @model_validator(mode="after")
    def validate_exclusive(self) -> TransactionSelector:
        if (self.begin is None) == (self.id is None):
            raise ValueError("TransactionSelector requires exactly one of 'begin' or 'id'")
        return self

    @classmethod
    def begin_read_write(cls) -> TransactionSelector:
        return cls(begin=TransactionOptions())

    @classmethod
    def use(cls, transaction_id: str) -> TransactionSelector:
        return cls(id=transaction_id)

    @property
    def is_begin(self) -> bool:
        return self.begin is not None


class KeySet(BaseModel):
    """Rows to read: every row, or an explicit list of primary keys."""

    model_config = ConfigDict(frozen=True)

    all: bool = False
    keys: list[list[Any]] = Field(default_factory=list)

    @classmethod
    def from_keys(cls, keys: Any = None) -> KeySet:
        """Build a key set from None or an empty list (all rows), a scalar key, or a list of keys.

        A flat list holds single-part keys, one per item. Composite keys are
        given as a list whose items are themselves lists or tuples.
        """
        if keys is None:
            return cls(all=True)
        if isinstance(keys, KeySet):
            return keys
        if not isinstance(keys, (list, tuple)):
            return cls(keys=[[keys]])
        if not keys:
            return cls(all=True)
        if all(isinstance(key, (list, tuple)) for key in keys):
            return cls(keys=[list(key) for key in keys])
        return cls(keys=[[key] for key in keys])


class ReadRequest(BaseModel):
    """Streaming read of a table (or index) bound to a transaction."""

    model_config = ConfigDict(frozen=True)

    session: str
    table: str
    columns: list[str]
    key_set: KeySet = Field(default_factory=lambda: KeySet(all=True))
    index: str | None = None
    limit: int | None = None
    transaction: TransactionSelector
    resume_token: bytes | None = None


class ExecuteSqlRequest(BaseModel):
    """Streaming query or DML bound to a transaction."""

    model_config = ConfigDict(frozen=True)

    session: str
    sql: str
    params: dict[str, Any] = Field(default_factory=dict)
    param_types: dict[str, str] = Field(default_factory=dict)
    transaction: TransactionSelector
    resume_token: bytes | None = None
    seqno: int | None = None


class BeginTransactionRequest(BaseModel):
    """Explicit begin, used when a transaction commits without any read."""

    model_config = ConfigDict(frozen=True)

    session: str
    options: TransactionOptions = Field(default_factory=TransactionOptions)


class MutationOperation(str, Enum):
    """Kinds of buffered write."""

    INSERT = "insert"
    UPDATE = "update"
    INSERT_OR_UPDATE = "insert_or_update"
    REPLACE = "replace"
    DELETE = "delete"


class Mutation(BaseModel):
    """One buffered write applied atomically at commit."""

    model_config = ConfigDict(frozen=True)

    operation: MutationOperation
    table: str
    columns: list[str] = Field(default_factory=list)
    values: list[list[Any]] = Field(default_factory=list)
    key_set: KeySet | None = None


class CommitRequest(BaseModel):
    """Commit of a bound transaction with its accumulated mutations."""

    model_config = ConfigDict(frozen=True)

    session: str
    transaction_id: str
    mutations: list[Mutation] = Field(default_factory=list)
    precommit_token: PrecommitToken | None = None


class CommitResponse(BaseModel):
    """Outcome of a successful commit."""

    model_config = ConfigDict(frozen=True)

    commit_timestamp: datetime
    mutation_count: int | None = None
