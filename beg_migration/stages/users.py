from __future__ import annotations

import logging
from typing import Any

from ..db import tables
from ..legacy.tables import (
    ADMIN_INITIALS,
    DEFAULT_PASSWORD,
    EMAIL_DOMAIN,
    SUPER_ADMIN_INITIALS,
)
from ..models.context import MigrationContext
from ..models.legacy_record import LegacyRecord
from ..models.processing_result import StageResult
from ..services.passwords import ensure_hashed
from .base import StageReport, insert_in_chunks, utcnow

"""Users stage (``Collaborateurs`` + ``LinkACC``)."""

logger = logging.getLogger(__name__)


def role_for(initials: str) -> str:
    key = initials.lower()
    if key in SUPER_ADMIN_INITIALS:
        return "super_admin"
    if key in ADMIN_INITIALS:
        return "admin"
    return "user"


def activity_rates_by_user(links: list[LegacyRecord]) -> dict[int, list[dict[str, Any]]]:
    """User id -> ``[{activityId, class}]`` rate class assignments."""
    rates: dict[int, list[dict[str, Any]]] = {}
    for link in links:
        user_id = link.get_int("IDcollaborateur")
        if user_id is None:
            continue
        rates.setdefault(user_id, []).append(
            {"activityId": link.get_int("IDactivité"), "class": link.get_string("Classe")}
        )
    return rates


def build_user_row(record: LegacyRecord, rates: list[dict[str, Any]]) -> dict[str, Any]:
    initials = record.get_string("Initiales") or ""
    now = utcnow()
    return {
        "id": record.get_int("IDcollaborateur"),
        "email": f"{initials.lower()}@{EMAIL_DOMAIN}",
        "firstName": record.get_string("Prénom", ""),
        "lastName": record.get_string("Nom", ""),
        "initials": initials,
        "password": ensure_hashed(record.get_string("Mot de passe") or DEFAULT_PASSWORD),
        "role": role_for(initials),
        "archived": False,
        "activityRates": rates,
        "createdAt": now,
        "updatedAt": now,
    }


def import_users(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "users", "Collaborateurs")
    records = ctx.snapshots.read("Collaborateurs")
    report.read_records = len(records)
    if not records:
        return report.result()

    rates = activity_rates_by_user(ctx.snapshots.read("LinkACC"))
    rows = []
    for record in records:
        user_id = record.get_int("IDcollaborateur")
        if user_id is None:
            report.skip(record, "user without IDcollaborateur", "MISSING_FIELD")
            continue
        if not record.has("Initiales"):
            report.skip(record, f"user {user_id}: missing initials", "MISSING_FIELD")
            continue
        rows.append(build_user_row(record, rates.get(user_id, [])))

    insert_in_chunks(ctx, report, tables.USERS, rows)
    ctx.storage.sync_identity(tables.USERS)
    ctx.identifiers.load(ctx.storage, tables.USERS)
    logger.info("Imported %d users", len(rows))
    return report.result()
