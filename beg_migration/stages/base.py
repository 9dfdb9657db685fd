from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from ..models.context import MigrationContext
from ..models.legacy_record import LegacyRecord
from ..models.processing_result import StageResult

"""Shared plumbing of the relational import stages.

A stage is a plain function ``stage(ctx) -> StageResult``. It collects its
counters and skip reasons on a ``StageReport`` while it runs; every skipped
record is also written to the run's error log.
"""

__all__ = [
    "MigrationError",
    "StageReport",
    "chunked",
    "insert_in_chunks",
    "utcnow",
]

logger = logging.getLogger(__name__)

REASON_PREVIEW_SIZE = 5

T = TypeVar("T")


class MigrationError(Exception):
    """Fatal precondition failure; aborts the whole run."""


def utcnow() -> datetime:
    return datetime.now(UTC)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError(f"chunk size must be positive: {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class StageReport:
    """Mutable counters of a running stage, frozen into a StageResult at the end."""

    def __init__(self, ctx: MigrationContext, name: str, source: str = "") -> None:
        self.ctx = ctx
        self.name = name
        self.source = source
        self.read_records = 0
        self.inserted_rows = 0
        self.updated_rows = 0
        self.reasons: list[str] = []
        self._started = time.perf_counter()

    def skip(self, record: LegacyRecord | None, reason: str, error_type: str = "SKIPPED_RECORD") -> None:
        self.reasons.append(reason)
        row = record.line_number if record is not None else -1
        self.ctx.error_log.record(self.name, self.source, row, error_type, reason)

    def log_reasons(self) -> None:
        """Warn with the first few reasons and a count of the rest."""
        if not self.reasons:
            return
        logger.warning("%s: %d records skipped", self.name, len(self.reasons))
        for reason in self.reasons[:REASON_PREVIEW_SIZE]:
            logger.warning("  - %s", reason)
        remaining = len(self.reasons) - REASON_PREVIEW_SIZE
        if remaining > 0:
            logger.warning("  ... and %d more", remaining)

    def result(self) -> StageResult:
        self.log_reasons()
        return StageResult(
            name=self.name,
            read_records=self.read_records,
            inserted_rows=self.inserted_rows,
            updated_rows=self.updated_rows,
            skipped_records=len(self.reasons),
            reasons=tuple(self.reasons),
            elapsed_seconds=time.perf_counter() - self._started,
        )


def insert_in_chunks(
    ctx: MigrationContext,
    report: StageReport,
    table: str,
    rows: Sequence[dict[str, Any]],
    chunk_size: int | None = None,
) -> int:
    """Insert ``rows`` chunk by chunk, one transaction per chunk."""
    size = chunk_size or ctx.settings.chunk_size
    inserted = 0
    for chunk in chunked(rows, size):
        with ctx.storage.transaction():
            ctx.storage.insert(table, list(chunk))
        inserted += len(chunk)
        logger.debug("%s: inserted %d / %d rows into %s", report.name, inserted, len(rows), table)
    report.inserted_rows += inserted
    return inserted
