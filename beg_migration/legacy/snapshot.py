from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd

from ..models.legacy_record import LegacyRecord
from .normalizers import normalize_filename_ascii

"""Snapshot reader for the legacy database export.

Each table of the legacy database is exported as ``{table}.json`` holding one
JSON object per line. Some export tools strip accents from file names
(``Localités`` -> ``Localites.json``), so the ASCII variant is tried as a
fallback.

Unreadable files yield an empty list (the stage then becomes a no-op); bad
lines are skipped one by one so the valid records of a file survive.
"""

__all__ = [
    "KNOWN_SNAPSHOTS",
    "SnapshotReader",
]

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".json"

# Snapshots read by the migration, in stage order
KNOWN_SNAPSHOTS = (
    "Collaborateurs",
    "LinkACC",
    "Localités",
    "TreeTable",
    "Entreprises",
    "Mandants",
    "Ingénieurs",
    "Types",
    "Classes",
    "Tarifs",
    "Mandats",
    "Activités",
    "Heures",
    "Taux",
    "Heures mensuelles",
)


class SnapshotReader:
    """Reads line-delimited JSON snapshots from one directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def locate(self, logical_name: str) -> Path | None:
        """Return the snapshot path for ``logical_name``, ``None`` when neither variant exists."""
        primary = self.directory / f"{logical_name}{SNAPSHOT_SUFFIX}"
        if primary.is_file():
            return primary
        fallback = self.directory / f"{normalize_filename_ascii(logical_name)}{SNAPSHOT_SUFFIX}"
        if fallback != primary and fallback.is_file():
            logger.info("Using normalized snapshot name %s for %s", fallback.name, logical_name)
            return fallback
        return None

    def read(self, logical_name: str) -> list[LegacyRecord]:
        path = self.locate(logical_name)
        if path is None:
            logger.warning("Snapshot not found: %s%s in %s", logical_name, SNAPSHOT_SUFFIX, self.directory)
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read snapshot %s: %s", path, e)
            return []

        records: list[LegacyRecord] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("%s:%d invalid JSON skipped (%s)", path.name, line_number, e.msg)
                continue
            if not isinstance(value, dict):
                logger.warning("%s:%d is not an object, skipped", path.name, line_number)
                continue
            records.append(LegacyRecord(values=value, line_number=line_number))
        logger.debug("Read %d records from %s", len(records), path.name)
        return records

    def inspect(self, logical_name: str, rows: int = 5) -> pd.DataFrame:
        """First ``rows`` records of a snapshot as a DataFrame (``--inspect-data``)."""
        records = self.read(logical_name)
        return pd.DataFrame([r.values for r in records[:rows]])
