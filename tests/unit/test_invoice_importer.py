from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from beg_migration.db import tables
from beg_migration.services.invoices import apply_total_defaults, find_invoice_documents
from beg_migration.services.orchestrator import build_invoice_importer


@pytest.fixture()
def seeded(storage):
    storage.insert(tables.USERS, [{"id": 1, "initials": "FP"}, {"id": 2, "initials": "js"}])
    storage.insert(
        tables.PROJECTS,
        [
            {"id": 7011, "projectNumber": "7011", "subProjectName": None},
            {"id": 7012, "projectNumber": "7011", "subProjectName": "INF"},
            {"id": 7013, "projectNumber": "7020", "subProjectName": "A"},
            {"id": 7014, "projectNumber": "7020", "subProjectName": "B"},
        ],
    )
    return storage


@pytest.fixture()
def importer(seeded, settings, error_log):
    return build_invoice_importer(settings, seeded, error_log)


def test_find_documents(temp_workdir: Path):
    root = temp_workdir / "mandats"
    (root / "7011").mkdir()
    (root / "7011" / "b.FAB").write_text("x", encoding="utf-8")
    (root / "7011" / "a.fab").write_text("x", encoding="utf-8")
    (root / "7011" / "a.pdf").write_text("x", encoding="utf-8")
    assert [p.name for p in find_invoice_documents(root)] == ["a.fab", "b.FAB"]
    assert find_invoice_documents(temp_workdir / "absent") == []


def test_total_defaults():
    values = apply_total_defaults(
        {"expensesTravelRate": 0.0, "vatRate": 0.0, "feesDiscountPercentage": 0.0, "feesDiscountAmount": 5.0}
    )
    assert values == {
        "expensesTravelRate": 0.65,
        "vatRate": 8.0,
        "feesDiscountPercentage": None,
        "feesDiscountAmount": 5.0,
    }
    assert apply_total_defaults({"vatRate": 7.7})["vatRate"] == 7.7


def test_find_project(importer):
    assert importer.find_project("7011") == 7011
    assert importer.find_project("7011 INF") == 7012
    assert importer.find_project("7011 XYZ") is None
    # no project without sub-project: lowest id wins
    assert importer.find_project("7020") == 7013
    assert importer.find_project("9999") is None
    assert importer.find_project("  ") is None


def test_user_id_case_insensitive(importer):
    assert importer.user_id("fp") == 1
    assert importer.user_id("JS") == 2
    assert importer.user_id("zz") is None
    assert importer.user_id(None) is None


def test_import_document(importer, seeded, invoice_tree: Path, temp_workdir: Path):
    assert importer.import_document(invoice_tree) is True

    invoice = seeded.select(tables.INVOICES)[0]
    assert invoice["projectId"] == 7012
    assert invoice["invoiceNumber"] == "F-2024-001"
    assert invoice["reference"] == "Infiltration, rapport final"
    assert (invoice["type"], invoice["billingMode"], invoice["status"]) == ("final_invoice", "fixedPrice", "sent")
    assert invoice["issueDate"] == datetime(2024, 4, 20, tzinfo=UTC)
    assert invoice["visaDate"] == datetime(2024, 4, 15, tzinfo=UTC)
    assert invoice["periodStart"] == datetime(2024, 1, 1, tzinfo=UTC)
    assert invoice["periodEnd"] == datetime(2024, 3, 31, tzinfo=UTC)
    assert invoice["period"] == "T1 2024"
    assert invoice["clientAddress"] == "Commune de Sion\nRue du Rhône 1"
    assert invoice["description"] == "Essais d'infiltration"
    assert (invoice["visaByUserId"], invoice["inChargeUserId"]) == (1, 2)
    assert invoice["legacyInvoicePath"] == "7011/Factures/F-2024-001.fab"
    assert invoice["totalHT"] == 1500.0
    assert invoice["vatRate"] == 8.0
    assert invoice["expensesTravelRate"] == 0.65
    assert invoice["feesDiscountAmount"] is None
    assert invoice["feesMultiplicationFactor"] == 1

    group = invoice["invoiceDocument"].split("/")[2]
    assert invoice["invoiceDocument"] == f"files/invoice/{group}/F-2024-001.pdf"
    assert (temp_workdir / "files" / "invoice" / group / "F-2024-001.pdf").is_file()

    (rate,) = seeded.select(tables.INVOICE_RATES)
    assert (rate["rateClass"], rate["baseMinutes"], rate["adjustedMinutes"]) == ("A", 600, 570)
    assert (rate["hourlyRate"], rate["amount"]) == (150, 1425)

    (offer,) = seeded.select(tables.INVOICE_OFFERS)
    assert offer["file"] == f"files/invoice/{group}/Offre.pdf"
    assert offer["amount"] == 2000
    assert offer["remark"] == "Offre initiale"
    (document,) = seeded.select(tables.INVOICE_DOCUMENTS)
    assert document["file"].endswith("/Plan.pdf")
    assert "amount" not in document
    assert seeded.count(tables.INVOICE_ADJUDICATIONS) == 0


def test_reimport_replaces_invoice(importer, seeded, invoice_tree: Path):
    assert importer.import_document(invoice_tree)
    assert importer.import_document(invoice_tree)
    assert seeded.count(tables.INVOICES) == 1
    assert seeded.count(tables.INVOICE_RATES) == 1
    assert seeded.count(tables.INVOICE_OFFERS) == 1
    invoice_id = seeded.select(tables.INVOICES)[0]["id"]
    assert seeded.select(tables.INVOICE_RATES)[0]["invoiceId"] == invoice_id


def test_unknown_project_is_logged(importer, seeded, temp_workdir: Path, make_fab, error_log):
    path = temp_workdir / "mandats" / "X-1.fab"
    path.write_bytes(make_fab(pnlCode="9999").encode("cp1252"))
    assert importer.import_document(path) is False
    assert seeded.count(tables.INVOICES) == 0

    entry = json.loads(error_log.flush().read_text(encoding="utf-8").splitlines()[0])
    assert entry["stage"] == "invoices"
    assert entry["row"] == -1
    assert entry["error_type"] == "UNRESOLVED_REFERENCE"


def test_internal_code_fallback(importer, seeded, temp_workdir: Path, make_fab):
    path = temp_workdir / "mandats" / "F-2.fab"
    path.write_bytes(make_fab(pnlCode="").encode("cp1252"))
    assert importer.import_document(path) is True
    assert seeded.select(tables.INVOICES)[0]["projectId"] == 7012


def test_import_invoices_counts(importer, invoice_tree: Path, temp_workdir: Path, make_fab):
    (temp_workdir / "mandats" / "bad.fab").write_bytes(make_fab(pnlCode="1").encode("cp1252"))
    result = importer.import_invoices(temp_workdir / "mandats")
    assert (result.imported, result.failed, result.total) == (1, 1, 2)
    assert result.failed_paths[0].endswith("bad.fab")


def _groups(temp_workdir: Path) -> list[Path]:
    root = temp_workdir / "files" / "invoice"
    return sorted(p for p in root.iterdir() if p.is_dir()) if root.is_dir() else []


def test_same_named_offers_are_both_kept(importer, seeded, temp_workdir: Path, make_fab):
    for folder, content in (("a", b"offer A"), ("b", b"offer B")):
        (temp_workdir / "mandats" / folder).mkdir(parents=True)
        (temp_workdir / "mandats" / folder / "Offre.pdf").write_bytes(content)
    path = temp_workdir / "mandats" / "F-3.fab"
    path.write_bytes(
        make_fab(
            **{
                "grdOffres1.4": "N:\\Mandats\\a\\Offre.pdf",
                "grdOffres2.0": "Offre.pdf",
                "grdOffres2.4": "N:\\Mandats\\b\\Offre.pdf",
            }
        ).encode("cp1252")
    )

    assert importer.import_document(path) is True

    offers = [row["file"] for row in seeded.select(tables.INVOICE_OFFERS, order_by="id")]
    assert len(set(offers)) == 2
    contents = [importer.file_storage.resolve(f).read_bytes() for f in offers]
    assert contents == [b"offer A", b"offer B"]


def test_reimport_removes_previous_files(importer, seeded, invoice_tree: Path, temp_workdir: Path):
    assert importer.import_document(invoice_tree)
    first = _groups(temp_workdir)
    assert importer.import_document(invoice_tree)

    groups = _groups(temp_workdir)
    assert len(first) == len(groups) == 1
    assert groups != first
    invoice = seeded.select(tables.INVOICES)[0]
    assert importer.file_storage.resolve(invoice["invoiceDocument"]).is_file()
    assert importer.file_storage.resolve(seeded.select(tables.INVOICE_OFFERS)[0]["file"]).is_file()


def test_failed_document_leaves_no_files(importer, seeded, invoice_tree: Path, temp_workdir: Path, monkeypatch):
    original = type(seeded).insert

    def broken_insert(self, table, rows, returning=None):
        if table == tables.INVOICE_DOCUMENTS and rows:
            raise RuntimeError("disk full")
        return original(self, table, rows, returning)

    monkeypatch.setattr(type(seeded), "insert", broken_insert)

    assert importer.import_document(invoice_tree) is False
    assert seeded.count(tables.INVOICES) == 0
    assert _groups(temp_workdir) == []


def test_failed_reimport_keeps_previous_files(importer, seeded, invoice_tree: Path, temp_workdir: Path, monkeypatch):
    assert importer.import_document(invoice_tree)
    before = _groups(temp_workdir)
    original = type(seeded).insert

    def broken_insert(self, table, rows, returning=None):
        if table == tables.INVOICE_DOCUMENTS and rows:
            raise RuntimeError("disk full")
        return original(self, table, rows, returning)

    monkeypatch.setattr(type(seeded), "insert", broken_insert)

    assert importer.import_document(invoice_tree) is False
    assert _groups(temp_workdir) == before
    assert seeded.count(tables.INVOICES) == 1
