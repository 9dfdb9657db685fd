from __future__ import annotations

import logging
from typing import Any

from ..db import tables
from ..legacy.normalizers import parse_legacy_date
from ..legacy.tables import (
    ACTIVITY_CODE_OVERRIDES,
    ACTIVITY_NAME_OVERRIDES,
    EXTRA_ACTIVITY_TYPES,
    NON_BILLABLE_ACTIVITY_CODES,
    NON_BILLABLE_ACTIVITY_NAME,
)
from ..models.context import MigrationContext
from ..models.legacy_record import LegacyRecord
from ..models.processing_result import StageResult
from ..services.progress import ProgressTracker
from ..services.project_stats import recompute_project_stats
from .base import StageReport, chunked, insert_in_chunks, utcnow

"""Activity stages: activity types, activities and project membership."""

logger = logging.getLogger(__name__)


def activity_code(record: LegacyRecord) -> str | None:
    """Legacy code, or the first three letters of the name upper-cased."""
    code = record.get_string("Code")
    if code:
        return code
    name = record.get_string("Activité")
    return name[:3].upper() if name else None


def build_activity_type_row(record: LegacyRecord, legacy_code: str) -> dict[str, Any]:
    code = ACTIVITY_CODE_OVERRIDES.get(legacy_code, legacy_code)
    legacy_name = record.get_string("Activité")
    now = utcnow()
    return {
        "id": record.get_int("IDactivité"),
        "name": ACTIVITY_NAME_OVERRIDES.get(legacy_code) or legacy_name or code,
        "code": code,
        "billable": not (legacy_name == NON_BILLABLE_ACTIVITY_NAME or code in NON_BILLABLE_ACTIVITY_CODES),
        "createdAt": now,
        "updatedAt": now,
    }


def import_activity_types(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "activity_types", "Activités")
    records = ctx.snapshots.read("Activités")
    report.read_records = len(records)
    if not records:
        return report.result()

    rows = []
    for record in records:
        if record.get_int("IDactivité") is None:
            report.skip(record, "activity type without IDactivité", "MISSING_FIELD")
            continue
        legacy_code = activity_code(record)
        if legacy_code is None:
            report.skip(record, f"activity type {record.get('IDactivité')}: no code or name", "MISSING_FIELD")
            continue
        rows.append(build_activity_type_row(record, legacy_code))

    insert_in_chunks(ctx, report, tables.ACTIVITY_TYPES, rows)
    # the management types below take generated ids
    ctx.storage.sync_identity(tables.ACTIVITY_TYPES)

    existing = {row["name"] for row in rows}
    extras = []
    for name, code in EXTRA_ACTIVITY_TYPES:
        if name in existing:
            continue
        existing.add(name)
        now = utcnow()
        extras.append({"name": name, "code": code, "billable": False, "createdAt": now, "updatedAt": now})
    insert_in_chunks(ctx, report, tables.ACTIVITY_TYPES, extras)

    ctx.identifiers.load(ctx.storage, tables.ACTIVITY_TYPES)
    logger.info("Imported %d activity types", len(rows) + len(extras))
    return report.result()


class RateLookup:
    """Hourly rate of a user for an activity type in a given year."""

    def __init__(self, users: list[dict[str, Any]], rate_classes: list[dict[str, Any]]) -> None:
        self.user_classes: dict[Any, dict[Any, str]] = {}
        for user in users:
            assignments = self.user_classes.setdefault(user["id"], {})
            for entry in user.get("activityRates") or []:
                if entry.get("class"):
                    assignments.setdefault(entry.get("activityId"), entry["class"])
        self.amounts = {(r["class"], r["year"]): r["amount"] for r in rate_classes}

    def rate_class(self, user_id: int, activity_type_id: int) -> str | None:
        return self.user_classes.get(user_id, {}).get(activity_type_id)

    def amount(self, rate_class: str | None, year: int) -> float:
        if rate_class is None:
            return 0.0
        return float(self.amounts.get((rate_class, year)) or 0.0)


def build_activity_row(
    record: LegacyRecord, user_id: int, project_id: int, activity_type_id: int, rates: RateLookup
) -> dict[str, Any]:
    date = parse_legacy_date(record.get_string("Date")) if record.has("Date") else utcnow()
    rate_class = rates.rate_class(user_id, activity_type_id)
    class_rate = rates.amount(rate_class, date.year)
    return {
        "userId": user_id,
        "projectId": project_id,
        "activityTypeId": activity_type_id,
        "date": date,
        "duration": round(record.get_float("Heures"), 2),
        "kilometers": record.get_float("Km"),
        "expenses": record.get_float("Frais"),
        "rate": class_rate if class_rate > 0 else record.get_float("Tarif"),
        "rateClass": rate_class,
        "description": record.get_string("Remarque"),
        "billed": record.get_int("Facturé") == 1,
        "disbursement": record.get_int("Débours") == 1,
        "createdAt": date,
        "updatedAt": date,
    }


def _check_references(ctx: MigrationContext, record: LegacyRecord) -> tuple[int, int, int] | str:
    """The three required ids, or the reason the record has to be skipped."""
    ids = (
        record.get_int("IDcollaborateur"),
        record.get_int("IDmandat"),
        record.get_int("IDactivité"),
    )
    if not all(ids):
        return f"activity {record.get('IDHeure')}: missing user, project or activity type"
    for entity, identifier in zip((tables.USERS, tables.PROJECTS, tables.ACTIVITY_TYPES), ids, strict=True):
        if not ctx.identifiers.has(entity, identifier):
            return f"activity {record.get('IDHeure')}: unknown {entity} id {identifier}"
    return ids


def import_activities(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "activities", "Heures")
    records = ctx.snapshots.read("Heures")
    report.read_records = len(records)
    if not records:
        return report.result()

    rates = RateLookup(
        ctx.storage.select(tables.USERS, columns=["id", "activityRates"]),
        ctx.storage.select(tables.RATE_CLASSES, columns=["class", "year", "amount"]),
    )

    chunks = list(chunked(records, ctx.settings.chunk_size))
    with ProgressTracker(len(chunks), description="Activities", unit="chunk") as progress:
        for index, chunk in enumerate(chunks, start=1):
            progress.start_item(f"{index}/{len(chunks)}")
            rows = []
            for record in chunk:
                checked = _check_references(ctx, record)
                if isinstance(checked, str):
                    report.skip(record, checked, "UNRESOLVED_REFERENCE")
                    continue
                rows.append(build_activity_row(record, *checked, rates))
            with ctx.storage.transaction():
                ctx.storage.insert(tables.ACTIVITIES, rows)
            report.inserted_rows += len(rows)
            progress.finish_item()
    logger.info("Imported %d activities", report.inserted_rows)

    logger.info("Updating project activity dates...")
    with ctx.storage.transaction():
        for project_id in sorted(ctx.identifiers.ids(tables.PROJECTS)):
            recompute_project_stats(ctx.storage, project_id)
            report.updated_rows += 1
    return report.result()


def import_project_members(ctx: MigrationContext) -> StageResult:
    """Anyone who logged time on a project becomes a member of it."""
    report = StageReport(ctx, "project_members", tables.ACTIVITIES)
    pairs = sorted({
        (row["userId"], row["projectId"])
        for row in ctx.storage.select(tables.ACTIVITIES, columns=["userId", "projectId"])
    })
    report.read_records = len(pairs)
    logger.info("Found %d unique user-project combinations with activities", len(pairs))

    now = utcnow()
    rows = [
        {"userId": user_id, "projectId": project_id, "role": "member", "createdAt": now, "updatedAt": now}
        for user_id, project_id in pairs
    ]
    insert_in_chunks(ctx, report, tables.PROJECT_USERS, rows, ctx.settings.member_chunk_size)
    logger.info("Created %d project user entries", len(rows))
    return report.result()
