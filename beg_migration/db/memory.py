from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from .storage import StorageError, uniform_columns

"""In-memory storage backend used by ``--dry-run`` and the test suite.

Tables are lists of row dicts. Ids are assigned from a per-table counter when
a row has none; explicit ids advance the counter (so ``sync_identity`` is a
no-op here). Duplicate ids are rejected like a primary key violation.
"""

__all__ = [
    "InMemoryStorage",
]


class InMemoryStorage:
    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self._next_id: dict[str, int] = {}
        self._depth = 0
        self._saved_tables: dict[str, list[dict[str, Any]]] = {}
        self._saved_ids: dict[str, int] = {}

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStorage]:
        if self._depth == 0:
            self._saved_tables = {}
            self._saved_ids = dict(self._next_id)
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self._saved_tables = {}

    def _rollback(self) -> None:
        for table, rows in self._saved_tables.items():
            self.tables[table] = rows
        self._next_id = self._saved_ids
        self._saved_tables = {}

    def _rows_for_write(self, table: str) -> list[dict[str, Any]]:
        rows = self.tables.setdefault(table, [])
        if self._depth and table not in self._saved_tables:
            self._saved_tables[table] = list(rows)
        return rows

    def insert(
        self, table: str, rows: Sequence[dict[str, Any]], returning: str | None = None
    ) -> list[Any]:
        if not rows:
            return []
        uniform_columns(table, rows)
        stored = self._rows_for_write(table)
        existing = {r.get("id") for r in stored}
        new_rows = []
        for row in rows:
            new_row = dict(row)
            row_id = new_row.get("id")
            if row_id is None:
                row_id = self._next_id.get(table, 1)
                new_row["id"] = row_id
            if row_id in existing:
                raise StorageError(f"{table}: duplicate key id={row_id}")
            existing.add(row_id)
            if isinstance(row_id, int):
                self._next_id[table] = max(self._next_id.get(table, 1), row_id + 1)
            new_rows.append(new_row)
        stored.extend(new_rows)
        if returning:
            return [r.get(returning) for r in new_rows]
        return []

    def delete_all(self, table: str) -> int:
        rows = self._rows_for_write(table)
        count = len(rows)
        self.tables[table] = []
        return count

    def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        if not filters:
            raise StorageError(f"{table}: delete_where needs at least one filter")
        rows = self._rows_for_write(table)
        kept = [r for r in rows if not _matches(r, filters)]
        self.tables[table] = kept
        return len(rows) - len(kept)

    def delete_by_id(self, table: str, row_id: Any) -> int:
        return self.delete_where(table, {"id": row_id})

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: Sequence[str] | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = [r for r in self.tables.get(table, []) if _matches(r, filters)]
        if order_by:
            rows = sorted(rows, key=lambda r: (r.get(order_by) is None, r.get(order_by)))
        if columns:
            return [{c: r.get(c) for c in columns} for r in rows]
        return [dict(r) for r in rows]

    def update(self, table: str, row_id: Any, values: dict[str, Any]) -> int:
        rows = self._rows_for_write(table)
        updated = 0
        for index, row in enumerate(rows):
            if row.get("id") == row_id:
                # replaced, not mutated: rollback snapshots are shallow
                rows[index] = {**row, **values}
                updated += 1
        return updated

    def sync_identity(self, table: str, column: str = "id") -> None:
        return None

    def count(self, table: str) -> int:
        return len(self.tables.get(table, []))


def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())
