from __future__ import annotations

import logging
from typing import Any

from ..db import tables
from ..legacy.normalizers import parse_legacy_date
from ..legacy.tables import ENDED_PROJECT_STATE, UNCLASSIFIED_LABEL
from ..legacy.type_mapping import load_project_type_mapping
from ..models.context import MigrationContext, ProjectTypeMapping
from ..models.legacy_record import LegacyRecord
from ..models.processing_result import StageResult
from ..services.coordinates import import_project_coordinates
from ..services.progress import ProgressTracker
from .base import MigrationError, StageReport, chunked, insert_in_chunks, utcnow

"""Project stages: project types, rate classes, projects and coordinates."""

logger = logging.getLogger(__name__)


def import_project_types(ctx: MigrationContext) -> StageResult:
    """Insert every new label of the remap table and keep the lookups on the context."""
    report = StageReport(ctx, "project_types", "Types")
    mapping = load_project_type_mapping(ctx.settings.project_types_file)

    legacy_types = ctx.snapshots.read("Types")
    report.read_records = len(legacy_types)
    legacy_id_to_label: dict[int, str] = {}
    for record in legacy_types:
        type_id = record.get_int("IDtype")
        if type_id is None:
            report.skip(record, "project type without IDtype", "MISSING_FIELD")
            continue
        legacy_id_to_label[type_id] = record.get_string("Type", "")

    names = sorted(mapping.all_new_labels)
    now = utcnow()
    with ctx.storage.transaction():
        ids = ctx.storage.insert(
            tables.PROJECT_TYPES,
            [{"name": name, "createdAt": now, "updatedAt": now} for name in names],
            returning="id",
        )
    report.inserted_rows += len(names)

    ctx.project_types = ProjectTypeMapping(
        legacy_to_new=dict(mapping.legacy_to_new),
        legacy_id_to_label=legacy_id_to_label,
        new_label_to_id=dict(zip(names, ids, strict=True)),
    )
    logger.info(
        "Imported %d project types (%d legacy mappings)", len(names), len(mapping.legacy_to_new)
    )
    return report.result()


def import_rate_classes(ctx: MigrationContext) -> StageResult:
    """Class list crossed with the yearly tariffs of that class."""
    report = StageReport(ctx, "rate_classes", "Classes")
    classes = ctx.snapshots.read("Classes")
    report.read_records = len(classes)
    if not classes:
        return report.result()

    tariffs = ctx.snapshots.read("Tarifs")
    current_year = utcnow().year
    seen: set[int] = set()
    rows = []
    for rate_class in classes:
        class_name = rate_class.get_string("Classe")
        if class_name is None:
            report.skip(rate_class, "rate class without name", "MISSING_FIELD")
            continue
        for tariff in tariffs:
            if tariff.get_string("Classe") != class_name:
                continue
            tariff_id = tariff.get_int("IDtarif")
            if tariff_id is None or tariff_id in seen:
                continue
            seen.add(tariff_id)
            rows.append({
                "id": tariff_id,
                "class": class_name,
                "year": tariff.get_int("Année") or current_year,
                "amount": tariff.get_float("Tarif"),
            })

    insert_in_chunks(ctx, report, tables.RATE_CLASSES, rows)
    ctx.storage.sync_identity(tables.RATE_CLASSES)
    ctx.identifiers.load(ctx.storage, tables.RATE_CLASSES)
    logger.info("Imported %d rate classes", len(rows))
    return report.result()


def _project_number(record: LegacyRecord) -> str | None:
    raw = record.get("Mandat")
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    return text or None


def build_project_row(ctx: MigrationContext, record: LegacyRecord, project_id: int) -> dict[str, Any]:
    resolve = ctx.identifiers.resolve
    project_number = _project_number(record)
    start = parse_legacy_date(record.get_string("Début")) if record.has("Début") else utcnow()
    return {
        "id": project_id,
        "projectNumber": project_number,
        "subProjectName": record.get_string("Sous-mandat"),
        "name": record.get_string("Désignation", ""),
        "startDate": start,
        "clientId": resolve(tables.CLIENTS, record.get_int("IDmandant")),
        "locationId": resolve(tables.LOCATIONS, record.get_int("IDlocalité")),
        "engineerId": resolve(tables.ENGINEERS, record.get_int("IDingénieur")),
        "companyId": resolve(tables.COMPANIES, record.get_int("IDentreprise")),
        "remark": record.get_string("Remarque"),
        "invoicingAddress": record.get_string("Facture"),
        "status": "active" if project_number is not None else "draft",
        "ended": record.get_string("Etat") == ENDED_PROJECT_STATE,
        "createdAt": start,
        "updatedAt": utcnow(),
    }


def import_projects(ctx: MigrationContext) -> StageResult:
    """Projects with their manager and project type links, chunk by chunk."""
    report = StageReport(ctx, "projects", "Mandats")
    records = ctx.snapshots.read("Mandats")
    report.read_records = len(records)
    if not records:
        return report.result()
    if ctx.project_types is None:
        raise MigrationError("Project type mapping not loaded; the project_types stage must run first")

    managers = {
        (u.get("initials") or "").strip().lower(): u["id"]
        for u in ctx.storage.select(tables.USERS, columns=["id", "initials"])
    }

    chunks = list(chunked(records, ctx.settings.chunk_size))
    with ProgressTracker(len(chunks), description="Projects", unit="chunk") as progress:
        for index, chunk in enumerate(chunks, start=1):
            progress.start_item(f"{index}/{len(chunks)}")
            projects: list[dict[str, Any]] = []
            manager_links: list[dict[str, Any]] = []
            type_links: list[dict[str, Any]] = []
            for record in chunk:
                project_id = record.get_int("IDmandat")
                if project_id is None:
                    report.skip(record, "project without IDmandat", "MISSING_FIELD")
                    continue
                projects.append(build_project_row(ctx, record, project_id))
                now = utcnow()

                manager_id = managers.get((record.get_string("Responsable") or "").lower())
                if manager_id is not None:
                    manager_links.append(
                        {"projectId": project_id, "userId": manager_id, "role": "manager",
                         "createdAt": now, "updatedAt": now}
                    )

                legacy_type = record.get_int("IDtype")
                labels = ctx.project_types.labels_for(legacy_type)
                if labels == [UNCLASSIFIED_LABEL]:
                    logger.debug("No project type mapping for IDtype %s", legacy_type)
                for type_id in ctx.project_types.type_ids_for(legacy_type):
                    type_links.append(
                        {"projectId": project_id, "projectTypeId": type_id, "createdAt": now, "updatedAt": now}
                    )

            with ctx.storage.transaction():
                ctx.storage.insert(tables.PROJECTS, projects)
                ctx.storage.insert(tables.PROJECT_USERS, manager_links)
                ctx.storage.insert(tables.PROJECT_PROJECT_TYPES, type_links)
            report.inserted_rows += len(projects) + len(manager_links) + len(type_links)
            progress.finish_item()
            logger.debug("projects: chunk %d/%d, %d projects", index, len(chunks), len(projects))

    ctx.storage.sync_identity(tables.PROJECTS)
    ctx.identifiers.load(ctx.storage, tables.PROJECTS)
    logger.info("Imported %d projects", len(ctx.identifiers.ids(tables.PROJECTS)))
    return report.result()


def import_coordinates(ctx: MigrationContext) -> StageResult:
    report = StageReport(ctx, "project_coordinates")
    with ctx.storage.transaction():
        report.updated_rows = import_project_coordinates(
            ctx.storage, ctx.settings.initial_data_directory, ctx.settings.coordinates
        )
    return report.result()
