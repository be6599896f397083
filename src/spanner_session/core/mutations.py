"""Buffer of writes applied atomically when the transaction commits."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from spanner_session.models import KeySet, Mutation, MutationOperation

RowData = Mapping[str, Any] | Sequence[Mapping[str, Any]]


def _normalize_rows(rows: RowData) -> tuple[list[str], list[list[Any]]]:
    """Split one row dict (or a list of them) into columns and value lists.

    Every row must carry the same columns; the first row fixes their order.
    """
    row_list = [rows] if isinstance(rows, Mapping) else list(rows)
    if not row_list:
        raise ValueError("At least one row is required")

    columns = list(row_list[0].keys())
    values: list[list[Any]] = []
    for row in row_list:
        if set(row.keys()) != set(columns):
            raise ValueError(f"All rows must have the same columns, expected {columns}")
        values.append([row[column] for column in columns])
    return columns, values


class Mutations:
    """Accumulates mutations in call order."""

    def __init__(self) -> None:
        self._mutations: list[Mutation] = []

    def __len__(self) -> int:
        return len(self._mutations)

    def __iter__(self) -> Iterator[Mutation]:
        return iter(self._mutations)

    def all(self) -> list[Mutation]:
        """Snapshot of the buffered mutations."""
        return list(self._mutations)

    def _add(self, operation: MutationOperation, table: str, rows: RowData) -> Mutations:
        columns, values = _normalize_rows(rows)
        self._mutations.append(Mutation(operation=operation, table=table, columns=columns, values=values))
        return self

    def insert(self, table: str, rows: RowData) -> Mutations:
        return self._add(MutationOperation.INSERT, table, rows)

    def update(self, table: str, rows: RowData) -> Mutations:
        return self._add(MutationOperation.UPDATE, table, rows)

    def upsert(self, table: str, rows: RowData) -> Mutations:
        """Insert rows, or update them if they already exist."""
        return self._add(MutationOperation.INSERT_OR_UPDATE, table, rows)

    def replace(self, table: str, rows: RowData) -> Mutations:
        """Insert rows, deleting any existing row first."""
        return self._add(MutationOperation.REPLACE, table, rows)

    def delete(self, table: str, keys: Any = None) -> Mutations:
        """Delete rows by key, or every row when ``keys`` is None or empty."""
        self._mutations.append(
            Mutation(operation=MutationOperation.DELETE, table=table, key_set=KeySet.from_keys(keys))
        )
        return self
