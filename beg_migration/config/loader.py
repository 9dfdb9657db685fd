from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    CoordinatesConfig,
    DatabaseConfig,
    InvoiceGridLayout,
    MigrationSettings,
)

"""Config loader.

Responsibilities:
- Load YAML config/migration.yml
- Validate against config_schema.json (unknown keys rejected)
- Apply defaults for every optional key (see models.config_models)
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
    "parse_cell",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Args:
        data: Configuration data to validate

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails schema validation (missing required keys, wrong
            types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        suffix = f" (at {location})" if location else ""
        raise ConfigError(f"config validation failed: {e.message}{suffix}") from e


def parse_cell(value: str) -> tuple[int, int]:
    """``"8.4"`` -> ``(8, 4)``."""
    row, _, col = value.partition(".")
    try:
        return int(row), int(col)
    except ValueError as e:
        raise ConfigError(f"invalid grid cell {value!r}: expected 'row.col'") from e


def _grid_layout(raw: dict[str, Any]) -> InvoiceGridLayout:
    defaults = InvoiceGridLayout()
    cells = dict(defaults.cells)
    for column, cell in (raw.get("cells") or {}).items():
        if column not in defaults.cells:
            raise ConfigError(f"unknown invoice column {column!r} (at invoice_grid/cells)")
        cells[column] = parse_cell(cell)
    return InvoiceGridLayout(
        grid_name=raw.get("grid_name", defaults.grid_name),
        rate_sentinel=raw.get("rate_sentinel", defaults.rate_sentinel),
        rate_first_row=raw.get("rate_first_row", defaults.rate_first_row),
        rate_max_row=raw.get("rate_max_row", defaults.rate_max_row),
        cells=cells,
    )


def _path(data: dict[str, Any], key: str, default: Path) -> Path:
    value = data.get(key)
    return default if value is None else Path(value)


def load_config(path: Path) -> MigrationSettings:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    coordinates_defaults = CoordinatesConfig()
    coords_raw = data.get("coordinates", {})
    coordinates = CoordinatesConfig(
        filename=coords_raw.get("filename", coordinates_defaults.filename),
        project_number_column=coords_raw.get(
            "project_number_column", coordinates_defaults.project_number_column
        ),
        latitude_column=coords_raw.get("latitude_column", coordinates_defaults.latitude_column),
        longitude_column=coords_raw.get("longitude_column", coordinates_defaults.longitude_column),
    )

    settings_defaults = MigrationSettings(snapshot_directory=Path("."))
    return MigrationSettings(
        snapshot_directory=_path(data, "snapshot_directory", settings_defaults.snapshot_directory),
        project_types_file=_path(data, "project_types_file", settings_defaults.project_types_file),
        initial_data_directory=_path(data, "initial_data_directory", settings_defaults.initial_data_directory),
        invoices_directory=_path(data, "invoices_directory", settings_defaults.invoices_directory),
        mandats_root=_path(data, "mandats_root", settings_defaults.mandats_root),
        legacy_share_name=data.get("legacy_share_name", settings_defaults.legacy_share_name),
        file_storage_root=_path(data, "file_storage_root", settings_defaults.file_storage_root),
        chunk_size=data.get("chunk_size", settings_defaults.chunk_size),
        member_chunk_size=data.get("member_chunk_size", settings_defaults.member_chunk_size),
        coordinates=coordinates,
        invoice_grid=_grid_layout(data.get("invoice_grid", {})),
        database=db,
    )
