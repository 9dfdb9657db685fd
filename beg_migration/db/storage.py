from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from ..models.config_models import DatabaseConfig
from .batch_insert import BatchInsertError, BatchMetrics, batch_insert, quote_identifier

"""PostgreSQL storage backend.

The migration only needs a handful of primitives (bulk insert, delete all,
delete by filter, select by filter, update by id, transaction); both this
backend and ``InMemoryStorage`` implement exactly these.

Writes issued outside ``transaction()`` are committed immediately.
"""

__all__ = [
    "StorageError",
    "PostgresStorage",
    "resolve_dsn",
    "open_storage",
]

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage primitive fails (fatal for the relational load)."""


def uniform_columns(table: str, rows: Sequence[dict[str, Any]]) -> list[str]:
    """Column list shared by all rows; mixed key sets are rejected."""
    columns = list(rows[0].keys())
    expected = set(columns)
    for index, row in enumerate(rows):
        if set(row.keys()) != expected:
            raise StorageError(
                f"{table}: row {index} columns {sorted(row.keys())} differ from {sorted(expected)}"
            )
    return columns


def _adapt(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return Json(value)
    return value


def _where_clause(filters: dict[str, Any] | None) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    parts = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None:
            parts.append(f"{quote_identifier(column)} IS NULL")
        else:
            parts.append(f"{quote_identifier(column)} = %s")
            params.append(_adapt(value))
    return " WHERE " + " AND ".join(parts), params


class PostgresStorage:
    def __init__(
        self,
        connection: Any,
        page_size: int = 1000,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self.connection = connection
        self.page_size = page_size
        self.metrics_callback = metrics_callback
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[PostgresStorage]:
        """Commit on success, roll back on error. Nested calls join the outer transaction."""
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.connection.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self.connection.commit()

    def _execute(self, table: str, sql: str, params: Sequence[Any] = ()) -> int:
        try:
            with self.connection.cursor() as cur:
                cur.execute(sql, list(params))
                rowcount = cur.rowcount
        except psycopg2.Error as e:
            self._abort_if_idle()
            raise StorageError(f"{table}: {e}") from e
        self._commit_if_idle()
        return rowcount

    def _commit_if_idle(self) -> None:
        if self._depth == 0:
            self.connection.commit()

    def _abort_if_idle(self) -> None:
        if self._depth == 0:
            self.connection.rollback()

    def insert(
        self, table: str, rows: Sequence[dict[str, Any]], returning: str | None = None
    ) -> list[Any]:
        """Insert ``rows``; returns the ``returning`` column of each row (empty list otherwise)."""
        if not rows:
            return []
        columns = uniform_columns(table, rows)
        values = [[_adapt(row[c]) for c in columns] for row in rows]
        try:
            with self.connection.cursor() as cur:
                result = batch_insert(
                    cur,
                    table,
                    columns,
                    values,
                    returning=[returning] if returning else None,
                    page_size=self.page_size,
                    metrics_callback=self.metrics_callback,
                )
        except BatchInsertError:
            self._abort_if_idle()
            raise
        self._commit_if_idle()
        if returning:
            return [r[0] for r in result.returned_values or []]
        return []

    def delete_all(self, table: str) -> int:
        return self._execute(table, f"DELETE FROM {quote_identifier(table)}")

    def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        if not filters:
            raise StorageError(f"{table}: delete_where needs at least one filter")
        where, params = _where_clause(filters)
        return self._execute(table, f"DELETE FROM {quote_identifier(table)}{where}", params)

    def delete_by_id(self, table: str, row_id: Any) -> int:
        return self.delete_where(table, {"id": row_id})

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: Sequence[str] | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        cols_sql = ",".join(quote_identifier(c) for c in columns) if columns else "*"
        where, params = _where_clause(filters)
        sql = f"SELECT {cols_sql} FROM {quote_identifier(table)}{where}"
        if order_by:
            sql += f" ORDER BY {quote_identifier(order_by)}"
        try:
            with self.connection.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                return [dict(r) for r in cur.fetchall()]
        except psycopg2.Error as e:
            self._abort_if_idle()
            raise StorageError(f"{table}: {e}") from e

    def update(self, table: str, row_id: Any, values: dict[str, Any]) -> int:
        if not values:
            return 0
        assignments = ",".join(f"{quote_identifier(c)} = %s" for c in values)
        params = [_adapt(v) for v in values.values()] + [row_id]
        sql = f'UPDATE {quote_identifier(table)} SET {assignments} WHERE "id" = %s'
        return self._execute(table, sql, params)

    def sync_identity(self, table: str, column: str = "id") -> None:
        """Move the serial sequence of ``table.column`` past the highest stored id.

        Explicit ids (legacy primary keys) do not advance PostgreSQL sequences;
        without this the application's next insert would collide.
        """
        sql = (
            "SELECT setval(pg_get_serial_sequence(%s, %s), "
            f"COALESCE((SELECT MAX({quote_identifier(column)}) FROM {quote_identifier(table)}), 0) + 1, false)"
        )
        self._execute(table, sql, [table, column])
        logger.debug("Synchronized id sequence of %s", table)


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string, environment first.

    Priority:
        1. DATABASE_URL / PGDSN (whole DSN), then ``database.dsn`` from the config
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the ``database`` block of the config file for anything missing
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def open_storage(
    db_cfg: DatabaseConfig,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> Iterator[PostgresStorage]:  # pragma: no cover (thin wrapper; needs a live database)
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise StorageError(f"cannot connect to database: {e}") from e
    conn.autocommit = False
    try:
        yield PostgresStorage(conn, metrics_callback=metrics_callback)
    finally:
        conn.close()
