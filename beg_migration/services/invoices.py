from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db import tables
from ..legacy.container import (
    PathResolver,
    decode_container,
    extract_totals,
    map_billing_mode,
    map_invoice_status,
    map_invoice_type,
    parse_attachments,
    parse_container,
    parse_multiline,
    parse_rate_lines,
    visa_initials,
)
from ..legacy.normalizers import parse_legacy_doc_date, split_business_code
from ..legacy.tables import DEFAULT_TRAVEL_RATE, DEFAULT_VAT_RATE
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import InvoiceGridLayout
from ..models.invoice import AttachedFile, Container, RateLine
from ..models.processing_result import InvoiceImportResult
from .files import FileStorage
from .progress import ProgressTracker

"""Legacy invoice document (.fab) import.

Each document is resolved to a project through its business code and stored
as one invoice with its rate lines and attachment rows. Importing a document
replaces the invoice previously imported from it (same project and invoice
number), so the walk can be repeated over the same tree.

Key points:
- one transaction per document
- a failing document is logged and counted, the walk goes on
- all files of one invoice are copied into one storage folder, which goes
  away with the invoice when it is replaced or its import fails
"""

__all__ = [
    "InvoiceImporter",
    "InvoiceImportError",
    "find_invoice_documents",
]

logger = logging.getLogger(__name__)

STAGE_NAME = "invoices"
DOCUMENT_SUFFIX = ".fab"
ENTITY_TYPE = "invoice"

# Attachment grid -> (child table, carries an amount column)
ATTACHMENT_GRIDS = (
    ("grdOffres", tables.INVOICE_OFFERS, True),
    ("grdAdjudications", tables.INVOICE_ADJUDICATIONS, True),
    ("grdSituations", tables.INVOICE_SITUATIONS, True),
    ("grdDocuments", tables.INVOICE_DOCUMENTS, False),
)


class InvoiceImportError(Exception):
    """A document that cannot be imported (no matching project, unreadable file)."""

    def __init__(self, message: str, error_type: str = "INVOICE_ERROR") -> None:
        super().__init__(message)
        self.error_type = error_type


def _now() -> datetime:
    return datetime.now(UTC)


def find_invoice_documents(root: Path) -> list[Path]:
    """All ``.fab`` files below ``root`` (extension case-insensitive), sorted."""
    root = Path(root)
    if not root.is_dir():
        logger.warning("Invoice directory not found: %s", root)
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() == DOCUMENT_SUFFIX)


def apply_total_defaults(totals: dict[str, float]) -> dict[str, Any]:
    """Legacy defaults for cells left empty in the document."""
    values: dict[str, Any] = dict(totals)
    if "expensesTravelRate" in values and values["expensesTravelRate"] <= 0:
        values["expensesTravelRate"] = DEFAULT_TRAVEL_RATE
    if "vatRate" in values and values["vatRate"] <= 0:
        values["vatRate"] = DEFAULT_VAT_RATE
    for column in ("feesDiscountPercentage", "feesDiscountAmount"):
        if column in values:
            values[column] = values[column] or None
    return values


def rate_line_row(invoice_id: int, line: RateLine, now: datetime) -> dict[str, Any]:
    return {
        "invoiceId": invoice_id,
        "rateClass": line.rate_class,
        "baseMinutes": round(line.base_hours * 60),
        "adjustedMinutes": round(line.adjusted_hours * 60),
        "hourlyRate": round(line.hourly_rate),
        "amount": round(line.amount),
        "createdAt": now,
        "updatedAt": now,
    }


class InvoiceImporter:
    """Imports legacy invoice documents into the invoice tables.

    Parameters
    ----------
    storage:
        Storage backend (PostgresStorage or InMemoryStorage).
    file_storage:
        Managed file tree receiving the attachments.
    path_resolver:
        Maps a legacy Windows path to an existing local file, or None.
    layout:
        Cell coordinates of the invoice grid.
    mandats_root:
        Mount point of the legacy project share; ``legacyInvoicePath`` is stored
        relative to it.
    error_log:
        Optional buffer receiving one record per failed document.
    """

    def __init__(
        self,
        storage: Any,
        file_storage: FileStorage,
        path_resolver: PathResolver,
        layout: InvoiceGridLayout,
        mandats_root: Path,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.storage = storage
        self.file_storage = file_storage
        self.path_resolver = path_resolver
        self.layout = layout
        self.mandats_root = Path(mandats_root)
        self.error_log = error_log
        self._users_by_initials: dict[str, int] | None = None

    # ---- lookups ----

    def find_project(self, business_code: str) -> int | None:
        """Project id for ``7011`` / ``7011 INF``.

        With a sub-project name the match must be exact; without one a project
        that has no sub-project wins over the others. Ties go to the lowest id.
        """
        number, sub_project = split_business_code(business_code)
        if not number:
            return None
        candidates = self.storage.select(
            tables.PROJECTS,
            {"projectNumber": number},
            columns=["id", "subProjectName"],
            order_by="id",
        )
        if sub_project is not None:
            for project in candidates:
                if project.get("subProjectName") == sub_project:
                    return project["id"]
            return None
        for project in candidates:
            if not project.get("subProjectName"):
                return project["id"]
        return candidates[0]["id"] if candidates else None

    def user_id(self, initials: str | None) -> int | None:
        if not initials or not initials.strip():
            return None
        if self._users_by_initials is None:
            self._users_by_initials = {
                (u.get("initials") or "").strip().lower(): u["id"]
                for u in self.storage.select(tables.USERS, columns=["id", "initials"], order_by="id")
            }
        return self._users_by_initials.get(initials.strip().lower())

    def legacy_path(self, path: Path) -> str:
        try:
            return path.relative_to(self.mandats_root).as_posix()
        except ValueError:
            return path.as_posix()

    # ---- rows ----

    def build_invoice_row(self, container: Container, path: Path, project_id: int) -> dict[str, Any]:
        internal = container.internal
        d = container.datas
        now = _now()
        visa_date = parse_legacy_doc_date(d.get("edtVisaDate"))
        return {
            "projectId": project_id,
            "invoiceNumber": path.stem,
            "reference": d.get("edtObjet", ""),
            "type": map_invoice_type(d.get("edtType")),
            "billingMode": map_billing_mode(d.get("edtMode")),
            "status": map_invoice_status(d.get("edtVisa"), d.get("edtBon", "0")),
            "issueDate": parse_legacy_doc_date(d.get("edtLast")) or visa_date or now,
            "dueDate": None,
            "periodStart": parse_legacy_doc_date(internal.get("De")) or now,
            "periodEnd": parse_legacy_doc_date(internal.get("A")) or now,
            "period": d.get("edtPériode") or d.get("edtPeriode") or "",
            "clientAddress": parse_multiline(d, "edtAdresse"),
            "recipientAddress": parse_multiline(d, "edtEnvoi"),
            "description": parse_multiline(d, "edtPrestations"),
            "note": parse_multiline(d, "edtComment"),
            "otherServices": "",
            "visaDate": visa_date,
            "visaByUserId": self.user_id(visa_initials(d.get("edtVisa"))),
            "inChargeUserId": self.user_id(d.get("edtResponsable")),
            "legacyInvoicePath": self.legacy_path(path),
            "invoiceDocument": None,
            **apply_total_defaults(extract_totals(d, self.layout)),
            "feesMultiplicationFactor": 1,
            "createdAt": now,
            "updatedAt": now,
        }

    def attachment_rows(
        self, invoice_id: int, files: list[AttachedFile], group_id: str, has_amount: bool
    ) -> list[dict[str, Any]]:
        """Rows for the attachments that could be copied; missing files are left out."""
        rows = []
        for attached in files:
            logical = self.file_storage.store(attached.file_path, ENTITY_TYPE, group_id)
            if logical is None:
                logger.debug("Attachment %s omitted (file not available)", attached.filename)
                continue
            now = _now()
            row: dict[str, Any] = {
                "invoiceId": invoice_id,
                "file": logical,
                "date": attached.date or now,
            }
            if has_amount:
                row["amount"] = round(attached.amount)
            row.update({"remark": attached.remark, "createdAt": now, "updatedAt": now})
            rows.append(row)
        return rows

    def delete_existing(self, project_id: int, invoice_number: str) -> list[str]:
        """Delete the invoice previously imported for (project, number) with its children.

        Returns the logical paths of the files the deleted rows pointed to.
        """
        existing = self.storage.select(
            tables.INVOICES,
            {"projectId": project_id, "invoiceNumber": invoice_number},
            columns=["id", "invoiceDocument"],
        )
        files: list[str] = []
        for invoice in existing:
            logger.info("Replacing existing invoice %s for project %s", invoice_number, project_id)
            if invoice.get("invoiceDocument"):
                files.append(invoice["invoiceDocument"])
            for _, table, _ in ATTACHMENT_GRIDS:
                rows = self.storage.select(table, {"invoiceId": invoice["id"]}, columns=["file"])
                files.extend(row["file"] for row in rows if row.get("file"))
            for child in tables.INVOICE_CHILD_TABLES:
                self.storage.delete_where(child, {"invoiceId": invoice["id"]})
            self.storage.delete_by_id(tables.INVOICES, invoice["id"])
        return files

    # ---- documents ----

    def _import(self, path: Path) -> int:
        container = parse_container(decode_container(path.read_bytes()))
        code = (container.datas.get("pnlCode") or container.internal.get("Code") or "").strip()
        if not code:
            raise InvoiceImportError(f"No project code in {path}", "MISSING_FIELD")
        project_id = self.find_project(code)
        if project_id is None:
            raise InvoiceImportError(f"Project {code} not found for {path}", "UNRESOLVED_REFERENCE")

        group_id = str(uuid.uuid4())
        try:
            replaced = self._store_invoice(container, path, project_id, group_id)
        except Exception:
            self.file_storage.remove_group(ENTITY_TYPE, group_id)
            raise
        # old files go only once the new rows are committed
        self.file_storage.discard(replaced)
        return project_id

    def _store_invoice(self, container: Container, path: Path, project_id: int, group_id: str) -> list[str]:
        invoice = self.build_invoice_row(container, path, project_id)
        pdf = path.with_suffix(".pdf")
        if pdf.is_file():
            invoice["invoiceDocument"] = self.file_storage.store(pdf, ENTITY_TYPE, group_id)

        with self.storage.transaction():
            replaced = self.delete_existing(project_id, invoice["invoiceNumber"])
            invoice_id = self.storage.insert(tables.INVOICES, [invoice], returning="id")[0]
            now = _now()
            self.storage.insert(
                tables.INVOICE_RATES,
                [rate_line_row(invoice_id, line, now) for line in parse_rate_lines(container.datas, self.layout)],
            )
            for prefix, table, has_amount in ATTACHMENT_GRIDS:
                files = parse_attachments(container.datas, prefix, has_amount, self.path_resolver)
                self.storage.insert(table, self.attachment_rows(invoice_id, files, group_id, has_amount))
        return replaced

    def import_document(self, path: Path) -> bool:
        """Import one document; False (logged, never raised) when it fails."""
        path = Path(path)
        try:
            project_id = self._import(path)
        except InvoiceImportError as e:
            logger.warning("%s", e)
            self._record_failure(path, e.error_type, str(e))
            return False
        except Exception as e:
            logger.error("Error importing %s: %s", path, e)
            self._record_failure(path, type(e).__name__, str(e))
            return False
        logger.debug("Imported invoice %s for project %s", path.stem, project_id)
        return True

    def _record_failure(self, path: Path, error_type: str, message: str) -> None:
        if self.error_log is not None:
            self.error_log.record(STAGE_NAME, str(path), -1, error_type, message)

    def import_invoices(self, root: Path) -> InvoiceImportResult:
        started = time.perf_counter()
        logger.info("Searching for .fab files in %s...", root)
        documents = find_invoice_documents(Path(root))
        logger.info("Found %d .fab files", len(documents))

        imported = 0
        failed: list[str] = []
        with ProgressTracker(len(documents), description="Invoices", unit="file") as progress:
            for path in documents:
                progress.start_item(path.name)
                if self.import_document(path):
                    imported += 1
                else:
                    failed.append(str(path))
                progress.finish_item()

        logger.info("Invoice import complete: %d imported, %d failed", imported, len(failed))
        return InvoiceImportResult(
            imported=imported,
            failed=len(failed),
            elapsed_seconds=time.perf_counter() - started,
            failed_paths=tuple(failed),
        )
