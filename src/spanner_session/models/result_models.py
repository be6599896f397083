"""
Wire-shaped messages exchanged with the transport.
Provides Pydantic models for streamed partial results, transaction
metadata and precommit progress markers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StructField(BaseModel):
    """One column of a result row type."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    type_code: str = Field(default="STRING", description="Type code, e.g. INT64, STRING, ARRAY")


class TransactionInfo(BaseModel):
    """Server-assigned transaction identity."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)


class PrecommitToken(BaseModel):
    """Marker of buffered-but-uncommitted write progress.

    Tokens are ordered by ``seq_num``; the highest one observed is the one
    sent with the commit.
    """

    model_config = ConfigDict(frozen=True)

    precommit_token: bytes
    seq_num: int = 0


class ResultSetMetadata(BaseModel):
    """Row type plus, for a freshly begun transaction, its identity."""

    model_config = ConfigDict(frozen=True)

    row_type: list[StructField] = Field(default_factory=list)
    transaction: TransactionInfo | None = None


class ResultSetStats(BaseModel):
    """Statistics sent with the final partial result set."""

    model_config = ConfigDict(frozen=True)

    row_count_exact: int | None = None


class PartialResultSet(BaseModel):
    """One item of a streaming read or query response.

    ``values`` are already-decoded column values. They are concatenated
    across responses and cut into rows by the number of fields in the row
    type. When ``chunked_value`` is set, the last value continues in the
    first value of the next response.
    """

    model_config = ConfigDict(frozen=True)

    metadata: ResultSetMetadata | None = None
    values: list[Any] = Field(default_factory=list)
    chunked_value: bool = False
    resume_token: bytes | None = None
    precommit_token: PrecommitToken | None = None
    stats: ResultSetStats | None = None
