from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..legacy.snapshot import SnapshotReader
from ..logging.error_log import ErrorLogBuffer
from ..models.context import MigrationContext
from ..models.config_models import MigrationSettings
from ..models.processing_result import InvoiceImportResult, MigrationResult, StageResult
from ..stages.activities import import_activities, import_activity_types, import_project_members
from ..stages.base import MigrationError
from ..stages.calendar import import_monthly_hours, import_vat_rates, import_workloads
from ..stages.directory import import_clients, import_companies, import_engineers, import_locations
from ..stages.projects import import_coordinates, import_project_types, import_projects, import_rate_classes
from ..stages.reset import reset_database
from ..stages.users import import_users
from .files import FileStorage, LegacyPathResolver
from .invoices import InvoiceImporter

"""Migration orchestration.

Runs the relational stages in dependency order against one storage backend,
then walks the invoice documents. Stage order matters: every stage only
references ids registered by the stages before it.

Phases:
1. reset (every target table emptied)
2. relational stages (users .. monthly hours)
3. invoice documents (optional)
"""

__all__ = [
    "MigrationError",
    "STAGES",
    "build_invoice_importer",
    "run_invoice_import",
    "run_migration",
]

logger = logging.getLogger(__name__)

Stage = Callable[[MigrationContext], StageResult]

STAGES: list[tuple[str, Stage]] = [
    ("users", import_users),
    ("locations", import_locations),
    ("companies", import_companies),
    ("clients", import_clients),
    ("engineers", import_engineers),
    ("project_types", import_project_types),
    ("rate_classes", import_rate_classes),
    ("projects", import_projects),
    ("project_coordinates", import_coordinates),
    ("activity_types", import_activity_types),
    ("activities", import_activities),
    ("project_members", import_project_members),
    ("workloads", import_workloads),
    ("vat_rates", import_vat_rates),
    ("monthly_hours", import_monthly_hours),
]


def build_invoice_importer(
    settings: MigrationSettings, storage: Any, error_log: ErrorLogBuffer | None = None
) -> InvoiceImporter:
    return InvoiceImporter(
        storage=storage,
        file_storage=FileStorage(settings.file_storage_root),
        path_resolver=LegacyPathResolver(settings.mandats_root, settings.legacy_share_name),
        layout=settings.invoice_grid,
        mandats_root=settings.mandats_root,
        error_log=error_log,
    )


def run_invoice_import(
    settings: MigrationSettings,
    storage: Any,
    invoices_dir: Path | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> InvoiceImportResult:
    """Invoice documents only, on top of an already migrated database."""
    importer = build_invoice_importer(settings, storage, error_log)
    return importer.import_invoices(Path(invoices_dir or settings.invoices_directory))


def run_migration(
    settings: MigrationSettings,
    storage: Any,
    snapshot_dir: Path | None = None,
    include_invoices: bool = True,
    error_log: ErrorLogBuffer | None = None,
    invoices_dir: Path | None = None,
) -> MigrationResult:
    """Reset the target tables and run every stage, then the invoice import.

    Args:
        settings: Loaded configuration.
        storage: PostgresStorage or InMemoryStorage.
        snapshot_dir: Overrides ``settings.snapshot_directory``.
        include_invoices: Run the invoice document walk after the stages.
        error_log: Buffer for skipped records; a fresh one when omitted.
        invoices_dir: Overrides ``settings.invoices_directory``.

    Returns:
        MigrationResult with one StageResult per stage.

    Raises:
        MigrationError: A stage precondition failed.
        StorageError / BatchInsertError: The backend rejected a write.
    """
    start_time = datetime.now(UTC)
    started = time.perf_counter()
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    directory = Path(snapshot_dir or settings.snapshot_directory)
    if not directory.is_dir():
        raise MigrationError(f"Snapshot directory not found: {directory}")

    ctx = MigrationContext(
        storage=storage,
        settings=settings,
        snapshots=SnapshotReader(directory),
        error_log=error_log,
    )

    stages: list[StageResult] = []
    try:
        stages.append(_run_stage(ctx, "reset", reset_database))
        for name, stage in STAGES:
            stages.append(_run_stage(ctx, name, stage))
            error_log.flush()

        invoices = None
        if include_invoices:
            invoices = _timed(
                "invoices",
                lambda: run_invoice_import(settings, storage, invoices_dir, error_log),
            )
    finally:
        log_path = error_log.flush()
        if log_path is not None:
            logger.info("Skipped records logged to %s", log_path)

    end_time = datetime.now(UTC)
    return MigrationResult(
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=time.perf_counter() - started,
        stages=stages,
        invoices=invoices,
    )


def _run_stage(ctx: MigrationContext, name: str, stage: Stage) -> StageResult:
    return _timed(name, lambda: stage(ctx))


def _timed(name: str, fn: Callable[[], Any]) -> Any:
    logger.info("Running %s", name)
    started = time.perf_counter()
    result = fn()
    logger.info("Completed %s in %dms", name, round((time.perf_counter() - started) * 1000))
    return result
