from __future__ import annotations

import csv
import logging
import unicodedata
from pathlib import Path
from typing import Any

import pandas as pd

from ..db import tables
from ..legacy.normalizers import split_business_code
from ..models.config_models import CoordinatesConfig

"""Project coordinates import from the geo-reference CSV.

The CSV lives in the initial-data directory under a name that varies between
deliveries (accents, version suffix), so it is located accent-insensitively.
Coordinates are matched to projects by business code (``7011`` or
``7011 INF``).
"""

logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "georeferencement mandats"


def _fold(name: str) -> str:
    decomposed = unicodedata.normalize("NFD", name)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def find_coordinates_file(directory: Path, expected_name: str) -> Path | None:
    if not directory.is_dir():
        logger.warning("Initial data directory not found: %s", directory)
        return None
    entries = sorted(p for p in directory.iterdir() if p.is_file())
    expected = _fold(expected_name)
    for entry in entries:
        if _fold(entry.name) == expected:
            return entry
    for entry in entries:
        folded = _fold(entry.name)
        if folded.startswith(FALLBACK_PREFIX) and folded.endswith(".csv"):
            return entry
    logger.warning("Project coordinate CSV matching %s not found in %s", expected_name, directory)
    return None


def _to_float(value: Any) -> float | None:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def import_project_coordinates(storage: Any, directory: Path, config: CoordinatesConfig) -> int:
    """Update latitude / longitude of matching projects; returns the number of projects updated."""
    path = find_coordinates_file(Path(directory), config.filename)
    if path is None:
        return 0

    try:
        df = pd.read_csv(path, sep=None, engine="python", dtype=str, encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError, csv.Error, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.error("Failed to read project coordinates from %s: %s", path.name, e)
        return 0
    missing = {config.project_number_column, config.latitude_column, config.longitude_column} - set(df.columns)
    if missing:
        logger.warning("Coordinate CSV %s lacks columns %s", path.name, sorted(missing))
        return 0

    projects: dict[tuple[str, str | None], int] = {}
    for row in storage.select(tables.PROJECTS, columns=["id", "projectNumber", "subProjectName"], order_by="id"):
        key = (str(row.get("projectNumber") or ""), row.get("subProjectName"))
        projects.setdefault(key, row["id"])

    updated = 0
    for record in df.to_dict(orient="records"):
        code = record.get(config.project_number_column)
        if code is None or (isinstance(code, float) and pd.isna(code)) or not str(code).strip():
            continue
        latitude = _to_float(record.get(config.latitude_column))
        longitude = _to_float(record.get(config.longitude_column))
        if latitude is None or longitude is None:
            continue
        project_id = projects.get(split_business_code(str(code)))
        if project_id is None:
            logger.debug("No project for coordinate code %s", code)
            continue
        storage.update(tables.PROJECTS, project_id, {"latitude": latitude, "longitude": longitude})
        updated += 1

    logger.info("Updated coordinates of %d projects from %s", updated, path.name)
    return updated
