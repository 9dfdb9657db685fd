from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime

"""Processing result models for the migration run.

StageResult is produced by every relational stage, InvoiceImportResult by the
invoice document walk, and MigrationResult aggregates both for the SUMMARY
line.
"""


@dataclass(frozen=True)
class StageResult:
    """Outcome of one relational import stage."""
    name: str
    read_records: int = 0  # records read from snapshots
    inserted_rows: int = 0  # rows written (junction rows included)
    updated_rows: int = 0
    skipped_records: int = 0
    reasons: tuple[str, ...] = ()  # skip reasons, same order as encountered
    elapsed_seconds: float = 0.0

    @property
    def is_noop(self) -> bool:
        return self.read_records == 0 and self.inserted_rows == 0


@dataclass(frozen=True)
class InvoiceImportResult:
    """Outcome of one invoice directory walk."""
    imported: int
    failed: int
    elapsed_seconds: float = 0.0
    failed_paths: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return self.imported + self.failed


@dataclass(frozen=True)
class MigrationResult:
    """Aggregated results for the SUMMARY output."""
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    stages: list[StageResult] = field(default_factory=list)
    invoices: InvoiceImportResult | None = None

    @property
    def total_inserted_rows(self) -> int:
        return sum(s.inserted_rows for s in self.stages)

    @property
    def total_skipped_records(self) -> int:
        return sum(s.skipped_records for s in self.stages)

    def stage(self, name: str) -> StageResult | None:
        for s in self.stages:
            if s.name == name:
                return s
        return None


class BatchStatsAccumulator:
    """Accumulates batch insert timings (count / mean / p95)."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
