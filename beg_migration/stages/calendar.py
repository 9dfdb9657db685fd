from __future__ import annotations

import logging

from ..db import tables
from ..legacy.tables import DEFAULT_WORKLOAD, vat_rate_rows
from ..models.context import MigrationContext
from ..models.processing_result import StageResult
from .base import StageReport, insert_in_chunks, utcnow

"""Calendar data: workloads, VAT rates and monthly hours."""

logger = logging.getLogger(__name__)


def import_workloads(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "workloads", "Taux")
    records = ctx.snapshots.read("Taux")
    report.read_records = len(records)
    if not records:
        logger.info("No workload data found in Taux.json")
        return report.result()

    rows = []
    for record in records:
        user_id = record.get_int("IDcollaborateur")
        year = record.get_int("Année")
        month = record.get_int("Mois")
        if not user_id or not year or not month:
            report.skip(record, f"User {record.get('IDcollaborateur')}: Missing required fields", "MISSING_FIELD")
            continue
        if not ctx.identifiers.has(tables.USERS, user_id):
            report.skip(record, f"User {user_id}: user with ID {user_id} not found", "UNRESOLVED_REFERENCE")
            continue
        now = utcnow()
        rows.append({
            "userId": user_id,
            "year": year,
            "month": month,
            "workload": record.get_int("Taux") or DEFAULT_WORKLOAD,
            "createdAt": now,
            "updatedAt": now,
        })

    insert_in_chunks(ctx, report, tables.WORKLOADS, rows)
    logger.info("Imported %d workloads, %d errors", len(rows), len(report.reasons))
    return report.result()


def import_vat_rates(ctx: MigrationContext) -> StageResult:
    """Historical Swiss VAT rates; not read from any snapshot."""
    report = StageReport(ctx, "vat_rates")
    now = utcnow()
    rows = [
        {"year": year, "rate": rate, "createdAt": now, "updatedAt": now}
        for year, rate in vat_rate_rows()
    ]
    insert_in_chunks(ctx, report, tables.VAT_RATES, rows)
    logger.info("Imported %d VAT rates", len(rows))
    return report.result()


def import_monthly_hours(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "monthly_hours", "Heures mensuelles")
    records = ctx.snapshots.read("Heures mensuelles")
    report.read_records = len(records)
    if not records:
        return report.result()

    rows = []
    for record in records:
        year = record.get_int("Année")
        month = record.get_int("Mois")
        if year is None or month is None:
            report.skip(record, f"monthly hours line {record.line_number}: missing year or month", "MISSING_FIELD")
            continue
        now = utcnow()
        rows.append({
            "year": year,
            "month": month,
            "amountOfHours": record.get_float("Heures"),
            "createdAt": now,
            "updatedAt": now,
        })

    insert_in_chunks(ctx, report, tables.MONTHLY_HOURS, rows)
    logger.info("Imported %d monthly hours records", len(rows))
    return report.result()
