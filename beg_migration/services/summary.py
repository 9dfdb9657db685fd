from __future__ import annotations

from ..models.processing_result import MigrationResult

"""SUMMARY line rendering.

Format::

    SUMMARY stages={n} rows={rows} skipped={skipped} invoices={ok}/{total}
    failed_invoices={failed} elapsed_sec={elapsed}
"""


def format_number(value: float) -> str:
    """Integers without a decimal point, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(result: MigrationResult) -> str:
    """Render the SUMMARY line of a migration run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> render_summary_line(MigrationResult(start, end, 2.0))
        'SUMMARY stages=0 rows=0 skipped=0 invoices=0/0 failed_invoices=0 elapsed_sec=2'
    """
    invoices = result.invoices
    imported = invoices.imported if invoices else 0
    total = invoices.total if invoices else 0
    failed = invoices.failed if invoices else 0
    return (
        f"SUMMARY stages={len(result.stages)} "
        f"rows={result.total_inserted_rows} "
        f"skipped={result.total_skipped_records} "
        f"invoices={imported}/{total} "
        f"failed_invoices={failed} "
        f"elapsed_sec={format_number(result.elapsed_seconds)}"
    )
