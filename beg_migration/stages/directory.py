from __future__ import annotations

import logging
from typing import Any

from ..db import tables
from ..legacy.tables import CANTON_CODES, COUNTRY_CODES, DEFAULT_COUNTRY
from ..models.context import MigrationContext
from ..models.legacy_record import LegacyRecord
from ..models.processing_result import StageResult
from .base import StageReport, insert_in_chunks, utcnow

"""Reference entities: locations, companies, clients and engineers."""

logger = logging.getLogger(__name__)


def location_fields(tree: LegacyRecord | None) -> dict[str, Any]:
    """country / canton / region / address from a TreeTable entry.

    L0 is the country, L1 a canton when it is one of the 26 cantons (else a
    free-text region), L2 and L3 form the address.
    """
    if tree is None:
        return {"country": DEFAULT_COUNTRY, "canton": None, "region": None, "address": None}
    country_name = tree.get_string("L0")
    country = COUNTRY_CODES.get(country_name, DEFAULT_COUNTRY) if country_name else DEFAULT_COUNTRY
    canton = None
    region = None
    level1 = tree.get_string("L1")
    if level1:
        canton = CANTON_CODES.get(level1)
        if canton is None:
            region = level1
    parts = [p for p in (tree.get_string("L2"), tree.get_string("L3")) if p]
    return {
        "country": country,
        "canton": canton,
        "region": region,
        "address": "\n".join(parts) if parts else None,
    }


def import_locations(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "locations", "Localités")
    records = ctx.snapshots.read("Localités")
    report.read_records = len(records)
    if not records:
        return report.result()

    tree_by_id: dict[int, LegacyRecord] = {}
    for entry in ctx.snapshots.read("TreeTable"):
        entry_id = entry.get_int("ID")
        if entry_id is not None:
            tree_by_id[entry_id] = entry

    rows = []
    for record in records:
        location_id = record.get_int("IDlocalité")
        if location_id is None:
            report.skip(record, "location without IDlocalité", "MISSING_FIELD")
            continue
        name = record.get_string("Localité", "")
        tree = tree_by_id.get(record.get_int("IDrégion"))
        if tree is None:
            logger.warning(
                "Could not find tree details for location %s with region ID %s",
                name,
                record.get("IDrégion"),
            )
        now = utcnow()
        rows.append({"id": location_id, "name": name, **location_fields(tree), "createdAt": now, "updatedAt": now})

    insert_in_chunks(ctx, report, tables.LOCATIONS, rows)
    ctx.storage.sync_identity(tables.LOCATIONS)
    ctx.identifiers.load(ctx.storage, tables.LOCATIONS)
    logger.info("Imported %d locations", len(rows))
    return report.result()


def _import_named(
    ctx: MigrationContext, stage: str, snapshot: str, table: str, id_field: str, name_field: str
) -> StageResult:
    """1:1 copy of an (id, name) snapshot."""
    report = StageReport(ctx, stage, snapshot)
    records = ctx.snapshots.read(snapshot)
    report.read_records = len(records)
    if not records:
        return report.result()

    rows = []
    for record in records:
        row_id = record.get_int(id_field)
        if row_id is None:
            report.skip(record, f"{stage}: record without {id_field}", "MISSING_FIELD")
            continue
        now = utcnow()
        rows.append({"id": row_id, "name": record.get_string(name_field, ""), "createdAt": now, "updatedAt": now})

    insert_in_chunks(ctx, report, table, rows)
    ctx.storage.sync_identity(table)
    ctx.identifiers.load(ctx.storage, table)
    logger.info("Imported %d %s", len(rows), stage)
    return report.result()


def import_companies(ctx: MigrationContext) -> StageResult:
    return _import_named(ctx, "companies", "Entreprises", tables.COMPANIES, "IDentreprise", "Entreprise")


def import_clients(ctx: MigrationContext) -> StageResult:
    return _import_named(ctx, "clients", "Mandants", tables.CLIENTS, "IDmandant", "Mandant")


def import_engineers(ctx: MigrationContext) -> StageResult:
    return _import_named(ctx, "engineers", "Ingénieurs", tables.ENGINEERS, "IDingénieur", "Ingénieur")
