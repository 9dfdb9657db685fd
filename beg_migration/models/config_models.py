from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..legacy.tables import (
    DEFAULT_TOTAL_CELLS,
    INVOICE_GRID_NAME,
    RATE_FIRST_ROW,
    RATE_MAX_ROW,
    RATE_SUBTOTAL_LABEL,
)

"""Config dataclasses for the legacy migration.

These are built by ``beg_migration.config.loader.load_config`` from the YAML
file; every optional key has a default here so tests can construct settings
directly.
"""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback configuration.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence over
    these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class CoordinatesConfig:
    """Project geo-reference CSV located in the initial-data directory."""
    filename: str = "Géoréférencement mandats_v2024.csv"
    project_number_column: str = "Mandat"
    latitude_column: str = "Latitude"
    longitude_column: str = "Longitude"


@dataclass(frozen=True)
class InvoiceGridLayout:
    """Cell coordinates of the grdFacture grid in legacy invoice documents.

    The legacy tool does not describe its layout; the coordinates were found
    empirically and can be overridden from the config file.
    """
    grid_name: str = INVOICE_GRID_NAME
    rate_sentinel: str = RATE_SUBTOTAL_LABEL
    rate_first_row: int = RATE_FIRST_ROW
    rate_max_row: int = RATE_MAX_ROW
    cells: dict[str, tuple[int, int]] = field(default_factory=lambda: dict(DEFAULT_TOTAL_CELLS))

    def key(self, row: int, col: int) -> str:
        return f"{self.grid_name}{row}.{col}"


@dataclass(frozen=True)
class MigrationSettings:
    """Root configuration object for a migration run."""
    snapshot_directory: Path
    project_types_file: Path = Path("/app/initial-data/projectTypes.tsv")
    initial_data_directory: Path = Path("/app/initial-data")
    invoices_directory: Path = Path("/mandats")
    mandats_root: Path = Path("/mandats")
    legacy_share_name: str = "Mandats"
    file_storage_root: Path = Path("/app/files")
    chunk_size: int = 3000
    member_chunk_size: int = 1000
    coordinates: CoordinatesConfig = field(default_factory=CoordinatesConfig)
    invoice_grid: InvoiceGridLayout = field(default_factory=InvoiceGridLayout)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
