from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT via ``psycopg2.extras.execute_values``.

Identifiers are double quoted: the application schema uses camelCase column
names (``projectNumber``, ``invoiceId`` ...). With ``returning`` the listed
columns of every inserted row are fetched across all pages.
"""


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Metrics data for a single batch insert operation."""
    batch_size: int  # Number of rows in this batch
    elapsed_seconds: float  # Time spent on execute_values call
    start_time: float  # Start timestamp (time.time())
    end_time: float  # End timestamp (time.time())


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: Sequence[str] | None = None,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Perform batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table name
    columns: inserted columns, same order as the row values
    rows: row value sequences
    returning: columns to fetch back (``RETURNING``), typically ``("id",)``
    page_size: execute_values page size
    metrics_callback: receives one BatchMetrics per call. Not invoked when
        ``rows`` is empty (the function returns early).

        Example usage for accumulating batch statistics:
            accumulator = BatchStatsAccumulator()
            batch_insert(cursor, table, columns, rows,
                         metrics_callback=lambda m: accumulator.add_batch_time(m.elapsed_seconds))
            total, avg, p95 = accumulator.get_stats()
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(quote_identifier(c) for c in columns)
    base_sql = f"INSERT INTO {quote_identifier(table)} ({cols_sql}) VALUES %s"
    if returning:
        base_sql += " RETURNING " + ",".join(quote_identifier(c) for c in returning)

    start_time = time.time()
    returned = None
    try:
        result = execute_values(
            cursor, base_sql, rows_list, page_size=page_size, fetch=bool(returning)
        )
        if returning:
            returned = list(result or [])
    except Exception as e:
        raise BatchInsertError(f"insert into {table} failed: {e}") from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    return InsertResult(inserted_rows=len(rows_list), returned_values=returned)
