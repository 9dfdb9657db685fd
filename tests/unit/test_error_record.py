from __future__ import annotations

import json

from beg_migration.models.error_record import ErrorRecord


def test_error_record_row_minus_one_support():
    """Invoice documents and file-level problems carry row=-1."""
    rec = ErrorRecord.create(
        stage="invoices",
        source="/mandats/7011/Factures/F-1.fab",
        row=-1,
        error_type="UNRESOLVED_REFERENCE",
        message="Project 7011 XYZ not found",
    )
    assert rec.row == -1
    data = json.loads(rec.to_json_line())
    assert data["row"] == -1
    assert data["source"].endswith("F-1.fab")
    assert data["timestamp"].endswith("Z")


def test_error_record_positive_row_number():
    rec = ErrorRecord.create("activities", "Heures", 42, "UNRESOLVED_REFERENCE", "activity 4: unknown users id 99")
    assert rec.row == 42
    assert json.loads(rec.to_json_line())["stage"] == "activities"
