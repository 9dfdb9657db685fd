from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from beg_migration.config.loader import ConfigError, load_config
from beg_migration.db.batch_insert import BatchInsertError, BatchMetrics
from beg_migration.db.memory import InMemoryStorage
from beg_migration.db.storage import StorageError, open_storage
from beg_migration.legacy.snapshot import KNOWN_SNAPSHOTS, SnapshotReader
from beg_migration.logging.error_log import ErrorLogBuffer
from beg_migration.logging.init import log_summary, set_debug, setup_logging
from beg_migration.models.config_models import MigrationSettings
from beg_migration.models.processing_result import BatchStatsAccumulator, MigrationResult
from beg_migration.services.orchestrator import MigrationError, run_invoice_import, run_migration
from beg_migration.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (overrides the environment) and the YAML config
- Open the storage (PostgreSQL, or in memory with --dry-run)
- Run the migration or only the invoice import
- Print the SUMMARY line

Skipped records and failed invoice documents do not change the exit code;
they are listed in the error log.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/migration.yml")
SUMMARY_PREFIX = "SUMMARY "


@contextmanager
def _storage(cfg: MigrationSettings, dry_run: bool, stats: BatchStatsAccumulator) -> Iterator[Any]:
    """PostgreSQL storage, or an in-memory one for dry runs."""
    if dry_run:
        yield InMemoryStorage()
        return

    def _record(metrics: BatchMetrics) -> None:
        stats.add_batch_time(metrics.elapsed_seconds)

    with open_storage(cfg.database, metrics_callback=_record) as storage:
        yield storage


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True lets the .env connection values win over the process
    environment.
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="beg-migrate", description="BEG legacy data migration")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config file")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--dry-run", action="store_true", help="Run against an in-memory store (no database)")
    p.add_argument("--inspect-data", action="store_true", help="Print the first rows of every snapshot then exit")

    sub = p.add_subparsers(dest="command")
    migrate = sub.add_parser("migrate", help="Reset the database and import snapshots and invoices")
    migrate.add_argument("--snapshot-dir", type=Path, help="Overrides snapshot_directory")
    migrate.add_argument("--invoices-dir", type=Path, help="Overrides invoices_directory")
    migrate.add_argument("--skip-invoices", action="store_true", help="Stop after the relational stages")

    invoices = sub.add_parser("import-invoices", help="Import .fab invoice documents only")
    invoices.add_argument("--invoices-dir", type=Path, help="Overrides invoices_directory")

    args = p.parse_args(argv)
    if args.command is None:
        args.command = "migrate"
        args.snapshot_dir = None
        args.invoices_dir = None
        args.skip_invoices = False
    return args


def _inspect_data(cfg: MigrationSettings, snapshot_dir: Path | None) -> int:
    directory = Path(snapshot_dir or cfg.snapshot_directory)
    if not directory.is_dir():
        print(f"inspect: directory not found: {directory}")
        return EXIT_FATAL
    reader = SnapshotReader(directory)
    for name in KNOWN_SNAPSHOTS:
        path = reader.locate(name)
        if path is None:
            print(f"SNAPSHOT: {name} missing")
            continue
        df = reader.inspect(name)
        print(f"SNAPSHOT: {path.name} cols={list(df.columns)}")
        if not df.empty:
            print(df.to_string(index=False, max_colwidth=40))
    return EXIT_SUCCESS_ALL


def _run(args: argparse.Namespace, cfg: MigrationSettings, storage: Any, error_log: ErrorLogBuffer) -> MigrationResult:
    if args.command == "import-invoices":
        start_time = datetime.now(UTC)
        invoices = run_invoice_import(cfg, storage, args.invoices_dir, error_log)
        log_path = error_log.flush()
        if log_path is not None:
            logging.getLogger(__name__).info("Failed documents logged to %s", log_path)
        end_time = datetime.now(UTC)
        return MigrationResult(
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - start_time).total_seconds(),
            invoices=invoices,
        )
    return run_migration(
        cfg,
        storage,
        snapshot_dir=args.snapshot_dir,
        include_invoices=not args.skip_invoices,
        error_log=error_log,
        invoices_dir=args.invoices_dir,
    )


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an explicit [] from tests must not pick up pytest's own argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug()
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error("config: %s", e)
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg, getattr(args, "snapshot_dir", None))

    stats = BatchStatsAccumulator()
    error_log = ErrorLogBuffer()
    try:
        with _storage(cfg, args.dry_run, stats) as storage:
            result = _run(args, cfg, storage, error_log)
    except MigrationError as e:
        logger.error("migration: %s", e)
        return EXIT_FATAL
    except (StorageError, BatchInsertError) as e:
        logger.error("database: %s", e)
        return EXIT_FATAL

    mode = "dry-run" if args.dry_run else "live"
    logger.info("mode=%s total_rows=%d", mode, result.total_inserted_rows)
    batches, avg_seconds, p95_seconds = stats.get_stats()
    if batches:
        logger.info("batches=%d avg_batch_sec=%.4f p95_batch_sec=%.4f", batches, avg_seconds, p95_seconds)

    log_summary(render_summary_line(result)[len(SUMMARY_PREFIX):])
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
